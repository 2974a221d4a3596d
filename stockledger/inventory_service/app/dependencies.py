"""Dependency wiring for the stock ledger service."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockledger.common import ServiceSettings, lifespan_session

from .domain import Actor
from .facade import InventoryFacade
from .repository import CatalogRepository

logger = logging.getLogger(__name__)


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an AsyncSession for the current request lifecycle."""

    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with lifespan_session(session_factory) as session:
        yield session


def get_catalog(session: AsyncSession = Depends(get_session)) -> CatalogRepository:
    """Provide a catalog repository bound to the active session."""

    return CatalogRepository(session)


def get_facade(request: Request) -> InventoryFacade:
    return request.app.state.facade


def get_actor(
    request: Request,
    actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
) -> Actor:
    """Resolve who is acting; fall back to the configured system actor, visibly."""

    cleaned = actor_id.strip() if actor_id else ""
    if cleaned:
        return Actor(id=cleaned)
    settings: ServiceSettings = request.app.state.settings
    logger.info(
        "No X-Actor-Id on %s %s; attributing to system actor %r",
        request.method,
        request.url.path,
        settings.system_actor_id,
    )
    return Actor.system_default(settings.system_actor_id)
