"""Public operation surface of the stock ledger.

Every method returns an :class:`OperationResult` rather than raising: input is
validated with the request schemas first, then exactly one engine call is made
for a mutation, and any :class:`~.errors.LedgerError` is folded into the result.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockledger.common import lifespan_session

from .alerts import Alert, AlertSummary, AlertType, evaluate_alerts, summarize_alerts
from .domain import Actor, LedgerRecord, ProductDetail, ProductRecord
from .errors import LedgerError, NotFound, StorageUnavailable, ValidationFailed
from .ledger import StockLedgerEngine
from .metrics import ALERTS_EVALUATED_TOTAL
from .repository import CatalogRepository, LedgerRepository, to_ledger_record, to_product_record
from .schemas import ProductDraft, ProductUpdate, StockAdjustment
from .thresholds import AlertSettingsProvider, AlertThresholds

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    success: bool
    message: str
    payload: T | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False

    @classmethod
    def ok(cls, message: str, payload: T | None = None) -> OperationResult[T]:
        return cls(success=True, message=message, payload=payload)

    @classmethod
    def failed(cls, exc: LedgerError) -> OperationResult[T]:
        return cls(
            success=False,
            message=exc.message,
            error=exc.code,
            details=dict(exc.details),
            retryable=exc.retryable,
        )


@dataclass(frozen=True)
class DashboardStats:
    total_products: int
    total_items: int
    total_inventory_value: Decimal
    low_stock_count: int
    expiring_soon_count: int
    expired_count: int
    total_categories: int
    total_suppliers: int
    today_activities: int


@dataclass(frozen=True)
class AlertReport:
    alerts: list[Alert]
    summary: AlertSummary


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"]) or "input"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def _parse(model: type[M], data: M | Mapping[str, Any]) -> M:
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ValidationFailed(_describe(exc), errors=exc.errors(include_url=False)) from exc


class InventoryFacade:
    def __init__(
        self,
        engine: StockLedgerEngine,
        session_factory: async_sessionmaker[AsyncSession],
        thresholds: AlertSettingsProvider,
        *,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.engine = engine
        self.session_factory = session_factory
        self.thresholds = thresholds
        self.today = today

    # Mutations -----------------------------------------------------------------------------

    async def create_product(
        self, data: ProductDraft | Mapping[str, Any], *, actor: Actor
    ) -> OperationResult[ProductRecord]:
        try:
            draft = _parse(ProductDraft, data)
            draft = await self._with_default_threshold(draft)
            outcome = await self.engine.create_product(draft, actor=actor)
        except LedgerError as exc:
            return OperationResult.failed(exc)
        return OperationResult.ok("Product created successfully", outcome.product)

    async def update_product(
        self, product_id: int, data: ProductUpdate | Mapping[str, Any], *, actor: Actor
    ) -> OperationResult[ProductRecord]:
        try:
            record = _parse(ProductUpdate, data)
            record = await self._with_default_threshold(record)
            outcome = await self.engine.update_product(product_id, record, actor=actor)
        except LedgerError as exc:
            return OperationResult.failed(exc)
        return OperationResult.ok("Product updated successfully", outcome.product)

    async def adjust_stock(
        self, product_id: int, delta: Any, reason: str | None = None, *, actor: Actor
    ) -> OperationResult[ProductRecord]:
        try:
            adjustment = _parse(StockAdjustment, {"delta": delta, "reason": reason})
            outcome = await self.engine.adjust_stock(
                product_id, adjustment.delta, adjustment.reason, actor=actor
            )
        except LedgerError as exc:
            return OperationResult.failed(exc)
        return OperationResult.ok("Stock adjusted successfully", outcome.product)

    async def delete_product(self, product_id: int, *, actor: Actor) -> OperationResult[None]:
        try:
            await self.engine.delete_product(product_id, actor=actor)
        except LedgerError as exc:
            return OperationResult.failed(exc)
        return OperationResult.ok("Product deleted successfully")

    # Reads ---------------------------------------------------------------------------------

    async def get_product(self, product_id: int) -> OperationResult[ProductDetail]:
        async def read(session: AsyncSession) -> ProductDetail:
            detail = await CatalogRepository(session).get_detail(product_id)
            if detail is None:
                raise NotFound(product_id)
            return detail

        return await self._execute(read, "Product found")

    async def get_product_by_sku(self, sku: str) -> OperationResult[ProductDetail]:
        async def read(session: AsyncSession) -> ProductDetail:
            catalog = CatalogRepository(session)
            product = await catalog.get_by_sku(sku.strip())
            detail = await catalog.get_detail(product.id) if product is not None else None
            if detail is None:
                raise NotFound(sku=sku)
            return detail

        return await self._execute(read, "Product found")

    async def list_products(
        self,
        *,
        search: str | None = None,
        category_id: int | None = None,
        supplier_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> OperationResult[tuple[list[ProductDetail], int]]:
        term = search.strip() if search else None

        async def read(session: AsyncSession) -> tuple[list[ProductDetail], int]:
            return await CatalogRepository(session).list_details(
                search=term or None,
                category_id=category_id,
                supplier_id=supplier_id,
                limit=limit,
                offset=offset,
            )

        return await self._execute(read, "Products listed")

    async def list_ledger(self, product_id: int) -> OperationResult[list[LedgerRecord]]:
        async def read(session: AsyncSession) -> list[LedgerRecord]:
            if await CatalogRepository(session).get_any(product_id) is None:
                raise NotFound(product_id)
            entries = await LedgerRepository(session).list_by_product(product_id)
            return [to_ledger_record(entry) for entry in entries]

        return await self._execute(read, "Ledger entries listed")

    async def recent_activity(self, limit: int) -> OperationResult[list[LedgerRecord]]:
        async def read(session: AsyncSession) -> list[LedgerRecord]:
            entries = await LedgerRepository(session).list_recent(limit)
            return [to_ledger_record(entry) for entry in entries]

        return await self._execute(read, "Recent activity listed")

    async def alerts(self) -> OperationResult[AlertReport]:
        async def read(session: AsyncSession) -> AlertReport:
            alerts = await self._evaluate(session)
            return AlertReport(alerts=alerts, summary=summarize_alerts(alerts))

        return await self._execute(read, "Alerts evaluated")

    async def alert_thresholds(self) -> OperationResult[AlertThresholds]:
        return await self._execute(self.thresholds.thresholds, "Alert settings loaded")

    async def update_alert_thresholds(
        self,
        *,
        low_stock_threshold: int | None = None,
        expiry_window_days: int | None = None,
    ) -> OperationResult[AlertThresholds]:
        async def write(session: AsyncSession) -> AlertThresholds:
            return await self.thresholds.update(
                session,
                low_stock_threshold=low_stock_threshold,
                expiry_window_days=expiry_window_days,
            )

        return await self._execute(write, "Alert settings updated")

    async def dashboard(self) -> OperationResult[DashboardStats]:
        async def read(session: AsyncSession) -> DashboardStats:
            catalog = CatalogRepository(session)
            products = [to_product_record(p) for p in await catalog.list_active()]
            alerts = await self._evaluate(session, products)
            counts = {alert_type: 0 for alert_type in AlertType}
            for alert in alerts:
                counts[alert.type] += 1
            return DashboardStats(
                total_products=len(products),
                total_items=sum(p.quantity for p in products),
                total_inventory_value=sum((p.total_value for p in products), Decimal("0.00")),
                low_stock_count=counts[AlertType.LOW_STOCK],
                expiring_soon_count=counts[AlertType.EXPIRING_SOON],
                expired_count=counts[AlertType.EXPIRED],
                total_categories=await catalog.count_categories(),
                total_suppliers=await catalog.count_suppliers(),
                today_activities=await LedgerRepository(session).count_today(),
            )

        return await self._execute(read, "Dashboard computed")

    # Helpers -------------------------------------------------------------------------------

    async def _evaluate(
        self, session: AsyncSession, products: list[ProductRecord] | None = None
    ) -> list[Alert]:
        thresholds = await self.thresholds.thresholds(session)
        if products is None:
            products = [to_product_record(p) for p in await CatalogRepository(session).list_active()]
        alerts = evaluate_alerts(
            products, today=self.today(), expiry_window_days=thresholds.expiry_window_days
        )
        for alert in alerts:
            ALERTS_EVALUATED_TOTAL.labels(type=alert.type.value, severity=alert.severity.value).inc()
        return alerts

    async def _with_default_threshold(self, draft: M) -> M:
        if getattr(draft, "low_stock_threshold", None) is not None:
            return draft
        thresholds = await self._load(self.thresholds.thresholds)
        return draft.model_copy(update={"low_stock_threshold": thresholds.low_stock_threshold})

    async def _load(self, read: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            async with lifespan_session(self.session_factory) as session:
                return await read(session)
        except DBAPIError as exc:
            logger.warning("Storage read failed: %s", exc)
            raise StorageUnavailable("Storage is unavailable; try again") from exc

    async def _execute(
        self, read: Callable[[AsyncSession], Awaitable[T]], message: str
    ) -> OperationResult[T]:
        try:
            payload = await self._load(read)
        except LedgerError as exc:
            return OperationResult.failed(exc)
        return OperationResult.ok(message, payload)
