import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status

from kalavara.api.dependencies import get_controller, get_store
from kalavara.api.schemas import SyncRequest, SyncStatus
from kalavara.core import settings
from kalavara.errors import UserNotFoundError
from kalavara.logger import SyncLog, get_logger
from kalavara.models import SyncResult
from kalavara.services.sync import SyncController
from kalavara.storage.store import LedgerStore

logger = get_logger(__name__)

router = APIRouter(prefix="/api")


@router.post("/sync", response_model=SyncResult)
async def run_sync(
    req: SyncRequest,
    response: Response,
    controller: Annotated[SyncController, Depends(get_controller)],
) -> SyncResult:
    """Run one sync. A run that aborts still returns its result body, with a 500."""
    sync_log = SyncLog(logger)
    try:
        result = await controller.run(req.user_id, full_sync=req.full_sync, sync_log=sync_log)
    finally:
        sync_log.flush(settings.SYNC_LOG_PATH)
    if not result.success:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return result


@router.get("/sync", response_model=SyncStatus)
async def sync_status(
    user_id: str,
    store: Annotated[LedgerStore, Depends(get_store)],
) -> SyncStatus:
    try:
        user = await asyncio.to_thread(store.get_user, user_id)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return SyncStatus(user_id=user_id, last_sync_at=user.last_sync_at)
