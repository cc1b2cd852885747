import asyncio
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends

from kalavara.api.dependencies import get_pipeline_config, get_store
from kalavara.api.schemas import ParseRequest, ParseResponse
from kalavara.core.settings import PipelineConfig
from kalavara.domain.dates import to_naive
from kalavara.domain.mail import detect_bank_from_sender
from kalavara.models import Category
from kalavara.oracle.client import OracleClient
from kalavara.parsers.registry import parse_transaction_email
from kalavara.storage.store import LedgerStore

router = APIRouter(prefix="/api")


@router.post("/parse", response_model=ParseResponse)
async def parse_email(
    req: ParseRequest,
    config: Annotated[PipelineConfig, Depends(get_pipeline_config)],
) -> ParseResponse:
    """Run one pasted email through the parser. Nothing is persisted."""
    bank = detect_bank_from_sender(req.sender)
    email_date = to_naive(req.date) if req.date else datetime.now()
    oracle = OracleClient.from_api_key(None, timeout=config.oracle_timeout)
    outcome = await asyncio.to_thread(
        parse_transaction_email, req.body, req.subject, email_date, bank, oracle, config
    )
    return ParseResponse(bank=bank.value, outcome=outcome)


@router.get("/categories", response_model=list[Category])
async def list_categories(
    store: Annotated[LedgerStore, Depends(get_store)],
) -> list[Category]:
    return await asyncio.to_thread(store.list_categories)
