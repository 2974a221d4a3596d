"""Stock ledger engine: validated product mutations paired with ledger entries.

Each public coroutine runs one unit of work:

1. take the per-product (and, where a SKU is claimed, per-SKU) locks,
2. open a session, read the product row ``FOR UPDATE``,
3. compute and write the new product state,
4. append the matching ledger entry,
5. commit both, or roll both back.

The locks serialize callers inside this process; the row lock and the
mapper's version counter cover writers in other processes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from decimal import Decimal
from time import monotonic

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from stockledger.common import ServiceSettings, actor_log_context, get_tracer, lifespan_session

from .domain import Actor, LedgerAction, LedgerOutcome, ProductStatus
from .errors import (
    DuplicateSku,
    InsufficientStock,
    LedgerError,
    NotFound,
    StorageUnavailable,
    ValidationFailed,
)
from .locks import KeyedLock, product_key, sku_key
from .metrics import (
    LEDGER_ENTRIES_TOTAL,
    LEDGER_OPERATION_FAILURES_TOTAL,
    LEDGER_OPERATION_LATENCY_SECONDS,
)
from .models import Product
from .repository import (
    CatalogRepository,
    LedgerRepository,
    to_cents,
    to_ledger_record,
    to_product_record,
)
from .schemas import ProductDraft

logger = logging.getLogger(__name__)

Apply = Callable[[CatalogRepository, LedgerRepository], Awaitable[LedgerOutcome]]


def _check_fields(draft: ProductDraft) -> str:
    """Return the normalised SKU or raise ``ValidationFailed``."""

    sku = (draft.sku or "").strip()
    if not sku:
        raise ValidationFailed("SKU is required", field="sku")
    if not (draft.name or "").strip():
        raise ValidationFailed("Product name is required", field="name")
    if draft.price is None or Decimal(draft.price) < 0:
        raise ValidationFailed("Price must be a positive number", field="price")
    if draft.cost_price is not None and Decimal(draft.cost_price) < 0:
        raise ValidationFailed("Cost price cannot be negative", field="cost_price")
    if isinstance(draft.quantity, bool) or not isinstance(draft.quantity, int) or draft.quantity < 0:
        raise ValidationFailed("Quantity cannot be negative", field="quantity")
    threshold = draft.low_stock_threshold
    if threshold is not None and threshold < 0:
        raise ValidationFailed("Low stock threshold cannot be negative", field="low_stock_threshold")
    return sku


class StockLedgerEngine:
    """Apply product mutations and write their ledger entries atomically."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: ServiceSettings,
        *,
        locks: KeyedLock | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings
        self.locks = locks or KeyedLock()

    async def create_product(self, draft: ProductDraft, *, actor: Actor) -> LedgerOutcome:
        sku = _check_fields(draft)
        threshold = self._threshold(draft)

        async def apply(catalog: CatalogRepository, ledger: LedgerRepository) -> LedgerOutcome:
            if await catalog.exists_active_sku(sku):
                raise DuplicateSku(sku)
            await self._check_references(catalog, draft)
            product = Product(status=ProductStatus.ACTIVE)
            self._assign(product, draft, sku=sku, threshold=threshold)
            try:
                product = await catalog.add(product)
            except IntegrityError as exc:
                raise DuplicateSku(sku) from exc
            entry = await ledger.append(
                product_id=product.id,
                actor=actor,
                action=LedgerAction.ADD,
                quantity_before=None,
                quantity_after=product.quantity,
                notes="Product created",
            )
            logger.info("Product created: %s (%s)", product.name, product.sku)
            return LedgerOutcome(to_product_record(product), to_ledger_record(entry))

        return await self._run("create_product", (sku_key(sku),), actor, apply)

    async def update_product(self, product_id: int, record: ProductDraft, *, actor: Actor) -> LedgerOutcome:
        sku = _check_fields(record)
        threshold = self._threshold(record)

        async def apply(catalog: CatalogRepository, ledger: LedgerRepository) -> LedgerOutcome:
            product = await catalog.get_for_update(product_id)
            if product is None:
                raise NotFound(product_id)
            if sku != product.sku and await catalog.exists_active_sku(sku):
                raise DuplicateSku(sku)
            await self._check_references(catalog, record)

            old_quantity = product.quantity
            self._assign(product, record, sku=sku, threshold=threshold)
            try:
                product = await catalog.put(product)
            except IntegrityError as exc:
                raise DuplicateSku(sku) from exc

            entry = None
            if product.quantity != old_quantity:
                entry = await ledger.append(
                    product_id=product.id,
                    actor=actor,
                    action=LedgerAction.UPDATE,
                    quantity_before=old_quantity,
                    quantity_after=product.quantity,
                    notes="Product updated",
                )
            elif self.settings.audit_field_edits:
                entry = await ledger.append(
                    product_id=product.id,
                    actor=actor,
                    action=LedgerAction.UPDATE,
                    quantity_before=old_quantity,
                    quantity_after=old_quantity,
                    notes="Product details updated",
                )
            logger.info("Product updated: %s (%s)", product.name, product.sku)
            return LedgerOutcome(
                to_product_record(product),
                to_ledger_record(entry) if entry is not None else None,
            )

        return await self._run("update_product", (product_key(product_id), sku_key(sku)), actor, apply)

    async def adjust_stock(
        self,
        product_id: int,
        delta: int,
        reason: str | None,
        *,
        actor: Actor,
    ) -> LedgerOutcome:
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationFailed("Quantity change must be a whole number", field="delta")

        async def apply(catalog: CatalogRepository, ledger: LedgerRepository) -> LedgerOutcome:
            product = await catalog.get_for_update(product_id)
            if product is None:
                raise NotFound(product_id)
            current = product.quantity
            new_quantity = current + delta
            if new_quantity < 0:
                logger.warning(
                    "Rejected adjustment of %d for %s: only %d available",
                    delta,
                    product.sku,
                    current,
                )
                raise InsufficientStock(product_id, available=current, requested=delta)

            product.quantity = new_quantity
            product = await catalog.put(product)
            entry = await ledger.append(
                product_id=product.id,
                actor=actor,
                action=LedgerAction.STOCK_IN if delta > 0 else LedgerAction.STOCK_OUT,
                quantity_before=current,
                quantity_after=new_quantity,
                notes=reason,
            )
            logger.info("Stock adjusted for product %s: %d -> %d", product.sku, current, new_quantity)
            return LedgerOutcome(to_product_record(product), to_ledger_record(entry))

        return await self._run("adjust_stock", (product_key(product_id),), actor, apply)

    async def delete_product(self, product_id: int, *, actor: Actor) -> LedgerOutcome:
        async def apply(catalog: CatalogRepository, ledger: LedgerRepository) -> LedgerOutcome:
            product = await catalog.get_for_update(product_id)
            if product is None:
                raise NotFound(product_id)
            quantity_before = product.quantity
            product.status = ProductStatus.RETIRED
            product = await catalog.put(product)
            entry = await ledger.append(
                product_id=product.id,
                actor=actor,
                action=LedgerAction.DELETE,
                quantity_before=quantity_before,
                quantity_after=0,
                notes="Product deleted",
            )
            logger.info("Product deleted: %s (%s)", product.name, product.sku)
            return LedgerOutcome(to_product_record(product), to_ledger_record(entry))

        return await self._run("delete_product", (product_key(product_id),), actor, apply)

    def _threshold(self, draft: ProductDraft) -> int:
        if draft.low_stock_threshold is None:
            return self.settings.default_low_stock_threshold
        return draft.low_stock_threshold

    @staticmethod
    def _assign(product: Product, draft: ProductDraft, *, sku: str, threshold: int) -> None:
        product.sku = sku
        product.name = draft.name.strip()
        product.description = draft.description
        product.category_id = draft.category_id
        product.supplier_id = draft.supplier_id
        product.quantity = draft.quantity
        product.unit = draft.unit
        product.price_cents = to_cents(Decimal(draft.price))
        product.cost_price_cents = to_cents(Decimal(draft.cost_price or 0))
        product.low_stock_threshold = threshold
        product.expiry_date = draft.expiry_date
        product.barcode = draft.barcode
        product.location = draft.location

    @staticmethod
    async def _check_references(catalog: CatalogRepository, draft: ProductDraft) -> None:
        if draft.category_id is not None and not await catalog.category_exists(draft.category_id):
            raise ValidationFailed("Unknown category", field="category_id", category_id=draft.category_id)
        if draft.supplier_id is not None and not await catalog.supplier_exists(draft.supplier_id):
            raise ValidationFailed("Unknown supplier", field="supplier_id", supplier_id=draft.supplier_id)

    async def _transact(self, apply: Apply) -> LedgerOutcome:
        async with lifespan_session(self.session_factory) as session:
            return await apply(CatalogRepository(session), LedgerRepository(session))

    async def _run(
        self,
        operation: str,
        keys: tuple[str, ...],
        actor: Actor,
        apply: Apply,
    ) -> LedgerOutcome:
        started = monotonic()
        tracer = get_tracer()
        with tracer.start_as_current_span(f"ledger.{operation}") as span, actor_log_context(actor.id):
            span.set_attribute("ledger.actor_id", actor.id)
            span.set_attribute("ledger.actor_source", actor.source.value)
            try:
                async with self.locks.hold(*keys):
                    outcome = await self._guarded(operation, apply)
            except LedgerError as exc:
                span.set_attribute("ledger.error", exc.code)
                LEDGER_OPERATION_FAILURES_TOTAL.labels(operation=operation, error=exc.code).inc()
                raise
            finally:
                LEDGER_OPERATION_LATENCY_SECONDS.labels(operation=operation).observe(monotonic() - started)

            span.set_attribute("ledger.product_id", outcome.product.id)
            if outcome.entry is not None:
                span.set_attribute("ledger.action", outcome.entry.action.value)
                LEDGER_ENTRIES_TOTAL.labels(action=outcome.entry.action.value).inc()
            return outcome

    async def _guarded(self, operation: str, apply: Apply) -> LedgerOutcome:
        """Run one transaction, translating storage failures into ``StorageUnavailable``."""

        try:
            return await asyncio.wait_for(
                self._transact(apply),
                timeout=self.settings.storage_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("%s timed out after %.2fs; nothing was applied", operation, self.settings.storage_timeout_seconds)
            raise StorageUnavailable("Storage timed out; the operation was not applied") from exc
        except StaleDataError as exc:
            logger.warning("%s lost a concurrent update race: %s", operation, exc)
            raise StorageUnavailable("Product was modified concurrently; retry the operation") from exc
        except DBAPIError as exc:
            logger.warning("%s failed in storage: %s", operation, exc)
            raise StorageUnavailable("Storage is unavailable; the operation was not applied") from exc
