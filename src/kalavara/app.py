import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from kalavara.api.routes import parse, sync, transactions
from kalavara.api.routes import settings as settings_routes
from kalavara.core import settings
from kalavara.core.settings import PipelineConfig
from kalavara.integration.gmail import GmailClient
from kalavara.logger import get_logger, setup_logging
from kalavara.services.sync import SyncController
from kalavara.storage.store import LedgerStore

logger = get_logger(__name__)


def create_app(store: LedgerStore | None = None, gmail: GmailClient | None = None) -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing services...")
        settings.log_environment()

        if not os.getenv("OPENAI_API_KEY"):
            logger.info("OPENAI_API_KEY not set. Users without their own key get regex parsing only.")

        ledger = store or LedgerStore.from_url(settings.DATABASE_URL)
        ledger.create_all()
        ledger.seed_default_categories()

        mail = gmail or GmailClient()
        config = PipelineConfig.from_env()

        app.state.store = ledger
        app.state.gmail = mail
        app.state.pipeline_config = config
        app.state.controller = SyncController(ledger, mail, config=config)

        logger.info("Services initialized.")
        yield
        await mail.aclose()
        logger.info("Service shutting down.")

    app = FastAPI(title="Kalavara", lifespan=lifespan)
    app.include_router(sync.router)
    app.include_router(parse.router)
    app.include_router(transactions.router)
    app.include_router(settings_routes.router)
    return app
