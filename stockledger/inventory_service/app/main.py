from contextlib import asynccontextmanager

from fastapi import FastAPI

from stockledger.common import (
    DEFAULT_APP_NAME,
    ServiceSettings,
    build_app,
    configure_logging,
    create_schema,
    dispose_engines,
    get_session_factory,
    get_settings,
    resolve_database_url,
)

from .api.activity import router as activity_router
from .api.alerts import router as alerts_router
from .api.health import router as health_router
from .api.products import router as products_router
from .api.references import router as references_router
from .facade import InventoryFacade
from .ledger import StockLedgerEngine
from .locks import KeyedLock
from .models import Base
from .thresholds import AlertSettingsProvider

SERVICE_NAME = "Stock Ledger Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./stock_ledger.db"


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Create the Stock Ledger FastAPI application."""

    resolved_settings = settings or get_settings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if resolved_settings.create_schema_on_startup:
            await create_schema(database_url, Base.metadata)
        session_factory = get_session_factory(database_url)
        engine = StockLedgerEngine(session_factory, resolved_settings, locks=KeyedLock())
        app.state.session_factory = session_factory
        app.state.facade = InventoryFacade(
            engine, session_factory, AlertSettingsProvider(resolved_settings)
        )
        try:
            yield
        finally:
            await dispose_engines()

    app = build_app(resolved_settings, lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(products_router)
    app.include_router(alerts_router)
    app.include_router(activity_router)
    app.include_router(references_router)
    return app


app = create_app()
