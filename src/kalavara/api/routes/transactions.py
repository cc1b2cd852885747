import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from kalavara.api.dependencies import get_store
from kalavara.api.schemas import TransactionPage
from kalavara.errors import UserNotFoundError
from kalavara.storage.store import LedgerStore

router = APIRouter(prefix="/api")


@router.get("/transactions", response_model=TransactionPage)
async def list_transactions(
    user_id: str,
    store: Annotated[LedgerStore, Depends(get_store)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> TransactionPage:
    try:
        await asyncio.to_thread(store.get_user, user_id)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    offset = (page - 1) * limit
    transactions = await asyncio.to_thread(
        store.list_transactions, user_id, limit=limit, offset=offset
    )
    total = await asyncio.to_thread(store.count_transactions, user_id)
    return TransactionPage(transactions=transactions, total=total, page=page, limit=limit)
