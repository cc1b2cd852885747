import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from kalavara.api.dependencies import get_store
from kalavara.api.schemas import SettingsUpdate, SettingsView
from kalavara.errors import UserNotFoundError
from kalavara.logger import get_logger
from kalavara.storage.store import LedgerStore, UserSettings

logger = get_logger(__name__)

router = APIRouter(prefix="/api")

MASK = "••••••••"


def mask_api_key(key: str | None) -> str | None:
    if not key:
        return None
    return MASK + key[-4:]


def _to_view(user_id: str, user_settings: UserSettings) -> SettingsView:
    return SettingsView(
        user_id=user_id,
        openai_api_key=mask_api_key(user_settings.openai_api_key),
        has_api_key=bool(user_settings.openai_api_key),
        default_currency=user_settings.default_currency,
        enabled_banks=user_settings.enabled_banks,
        auto_sync_on_load=user_settings.auto_sync_on_load,
    )


@router.get("/settings", response_model=SettingsView)
async def read_settings(
    user_id: str,
    store: Annotated[LedgerStore, Depends(get_store)],
) -> SettingsView:
    try:
        user_settings = await asyncio.to_thread(store.get_user_settings, user_id)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _to_view(user_id, user_settings)


@router.put("/settings", response_model=SettingsView)
async def update_settings(
    req: SettingsUpdate,
    store: Annotated[LedgerStore, Depends(get_store)],
) -> SettingsView:
    """Update the OpenAI key and enabled banks. A masked key echoed back is left as is."""
    api_key = req.openai_api_key
    if api_key is not None and api_key.startswith(MASK[:4]):
        api_key = None
    try:
        user_settings = await asyncio.to_thread(
            store.update_user_settings,
            req.user_id,
            openai_api_key=api_key,
            enabled_banks=req.enabled_banks,
        )
    except UserNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    logger.info("Updated settings for user %s", req.user_id)
    return _to_view(req.user_id, user_settings)
