import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request

from core.config import settings
from core.database import AsyncDatabaseConfig, AsyncDatabaseManager
from core.migration_runner import run_plugin_migrations
from core.MongoORJSONResponse import MongoORJSONResponse
from plugins.rent_ledger.plugin import init_plugin
from plugins.rent_ledger.services.ledger_service import LedgerService
from plugins.rent_ledger.services.notifications import NotificationDispatcher
from plugins.rent_ledger.store import LedgerStore

logging.basicConfig(level=settings.LOG_LEVEL)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database, apply plugin migrations and wire the ledger services."""
    logger.info("Starting rent ledger API...")

    db_manager = AsyncDatabaseManager(AsyncDatabaseConfig.from_env())
    await db_manager.open()
    db = db_manager.database

    await run_plugin_migrations("rent_ledger", db)

    store = LedgerStore(db)
    app.state.db_manager = db_manager
    app.state.ledger = LedgerService(store, NotificationDispatcher.from_settings(store))
    logger.info("Rent ledger ready", database=db_manager.config.database_name)

    try:
        yield
    finally:
        db_manager.close()
        logger.info("Rent ledger stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        lifespan=lifespan,
        default_response_class=MongoORJSONResponse,
    )
    plugin = init_plugin(app)
    app.include_router(plugin["router"])

    @app.get("/health")
    async def health(request: Request):
        return await request.app.state.db_manager.health_check()

    return app


app = create_app()
