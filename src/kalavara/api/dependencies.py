from fastapi import HTTPException, Request

from kalavara.core.settings import PipelineConfig
from kalavara.services.sync import SyncController
from kalavara.storage.store import LedgerStore


def get_store(request: Request) -> LedgerStore:
    store = getattr(request.app.state, "store", None)
    if not store:
        raise HTTPException(status_code=500, detail="Store not initialized")
    return store


def get_controller(request: Request) -> SyncController:
    controller = getattr(request.app.state, "controller", None)
    if not controller:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return controller


def get_pipeline_config(request: Request) -> PipelineConfig:
    return getattr(request.app.state, "pipeline_config", None) or PipelineConfig()
