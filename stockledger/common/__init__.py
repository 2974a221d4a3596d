"""Shared plumbing for the stock ledger service."""

from .config import DEFAULT_APP_NAME, ServiceSettings, get_settings
from .instrumentation import build_app, instrument_app
from .logging import actor_log_context, configure_logging
from .database import (
    create_engine,
    create_schema,
    dispose_engines,
    get_session_factory,
    lifespan_session,
    resolve_database_url,
)
from .tracing import get_tracer

__all__ = [
    "ServiceSettings",
    "get_settings",
    "build_app",
    "instrument_app",
    "configure_logging",
    "actor_log_context",
    "DEFAULT_APP_NAME",
    "create_engine",
    "create_schema",
    "dispose_engines",
    "get_session_factory",
    "lifespan_session",
    "resolve_database_url",
    "get_tracer",
]
