import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from stockledger.common import (
    ServiceSettings,
    create_schema,
    dispose_engines,
    get_session_factory,
    lifespan_session,
)
from stockledger.inventory_service.app.domain import (
    Actor,
    ActorSource,
    LedgerAction,
    ProductStatus,
)
from stockledger.inventory_service.app.errors import (
    DuplicateSku,
    InsufficientStock,
    NotFound,
    StorageUnavailable,
    ValidationFailed,
)
from stockledger.inventory_service.app.ledger import StockLedgerEngine
from stockledger.inventory_service.app.models import (
    Base,
    Category,
    LedgerEntry,
    LedgerImmutabilityError,
    Product,
    Supplier,
)
from stockledger.inventory_service.app.repository import CatalogRepository, LedgerRepository
from stockledger.inventory_service.app.schemas import ProductDraft, ProductUpdate

ALICE = Actor(id="alice")


def _draft(sku: str = "ELEC-003", **overrides: Any) -> ProductDraft:
    fields: dict[str, Any] = {
        "sku": sku,
        "name": "USB-C Cable",
        "quantity": 5,
        "price": Decimal("12.50"),
        "cost_price": Decimal("7.25"),
        "low_stock_threshold": 10,
    }
    fields.update(overrides)
    return ProductDraft(**fields)


@asynccontextmanager
async def _ledger_store(tmp_path, **overrides: Any) -> AsyncIterator[StockLedgerEngine]:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"
    await create_schema(database_url, Base.metadata)
    settings = ServiceSettings(
        enable_metrics=False,
        enable_tracing=False,
        database_url=database_url,
        **overrides,
    )
    try:
        yield StockLedgerEngine(get_session_factory(database_url), settings)
    finally:
        await dispose_engines()


async def _entries(engine: StockLedgerEngine, product_id: int) -> list[LedgerEntry]:
    async with lifespan_session(engine.session_factory) as session:
        return await LedgerRepository(session).list_by_product(product_id)


async def _count(engine: StockLedgerEngine, model) -> int:
    async with lifespan_session(engine.session_factory) as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_create_product_round_trip_writes_add_entry(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        outcome = await engine.create_product(_draft(), actor=ALICE)

        async with lifespan_session(engine.session_factory) as session:
            stored = await CatalogRepository(session).get_by_sku("ELEC-003")
        assert stored is not None
        assert stored.id == outcome.product.id
        assert outcome.product.quantity == 5
        assert outcome.product.price == Decimal("12.50")
        assert outcome.product.cost_price == Decimal("7.25")
        assert outcome.product.status is ProductStatus.ACTIVE

        assert outcome.entry is not None
        assert outcome.entry.action is LedgerAction.ADD
        assert outcome.entry.quantity_before is None
        assert outcome.entry.quantity_after == 5
        assert outcome.entry.quantity_change is None
        assert outcome.entry.actor_id == "alice"
        assert outcome.entry.actor_source is ActorSource.AUTHENTICATED


@pytest.mark.asyncio
async def test_stock_out_to_zero_records_before_and_after(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        created = await engine.create_product(_draft(), actor=ALICE)

        outcome = await engine.adjust_stock(created.product.id, -5, "sold out", actor=ALICE)

        assert outcome.product.quantity == 0
        assert outcome.entry is not None
        assert outcome.entry.action is LedgerAction.STOCK_OUT
        assert (outcome.entry.quantity_before, outcome.entry.quantity_after) == (5, 0)
        assert outcome.entry.quantity_change == -5
        assert outcome.entry.notes == "sold out"


@pytest.mark.asyncio
async def test_duplicate_sku_writes_nothing(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        await engine.create_product(_draft(), actor=ALICE)

        with pytest.raises(DuplicateSku) as excinfo:
            await engine.create_product(_draft(name="Another cable"), actor=ALICE)

        assert excinfo.value.message == "SKU already exists"
        assert await _count(engine, Product) == 1
        assert await _count(engine, LedgerEntry) == 1


@pytest.mark.asyncio
async def test_delete_hides_product_but_keeps_history(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        created = await engine.create_product(_draft(), actor=ALICE)
        product_id = created.product.id
        await engine.adjust_stock(product_id, 3, "restock", actor=ALICE)

        deleted = await engine.delete_product(product_id, actor=ALICE)

        assert deleted.product.status is ProductStatus.RETIRED
        async with lifespan_session(engine.session_factory) as session:
            assert await CatalogRepository(session).get_by_sku("ELEC-003") is None
            assert await CatalogRepository(session).get(product_id) is None

        history = await _entries(engine, product_id)
        assert [entry.action for entry in history] == [
            LedgerAction.DELETE,
            LedgerAction.STOCK_IN,
            LedgerAction.ADD,
        ]
        assert (history[0].quantity_before, history[0].quantity_after) == (8, 0)

        with pytest.raises(NotFound):
            await engine.delete_product(product_id, actor=ALICE)
        with pytest.raises(NotFound):
            await engine.adjust_stock(product_id, 1, None, actor=ALICE)


@pytest.mark.asyncio
async def test_retired_sku_can_be_reused(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        first = await engine.create_product(_draft(), actor=ALICE)
        await engine.delete_product(first.product.id, actor=ALICE)

        second = await engine.create_product(_draft(quantity=2), actor=ALICE)

        assert second.product.id != first.product.id
        assert second.product.sku == "ELEC-003"


@pytest.mark.asyncio
async def test_concurrent_withdrawals_never_oversell(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        created = await engine.create_product(_draft(quantity=8), actor=ALICE)
        product_id = created.product.id

        results = await asyncio.gather(
            engine.adjust_stock(product_id, -5, "order 1", actor=Actor("picker-1")),
            engine.adjust_stock(product_id, -5, "order 2", actor=Actor("picker-2")),
            return_exceptions=True,
        )

        successes = [result for result in results if not isinstance(result, BaseException)]
        failures = [result for result in results if isinstance(result, BaseException)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert successes[0].product.quantity == 3
        assert isinstance(failures[0], InsufficientStock)
        assert failures[0].available == 3
        assert failures[0].message == "Insufficient stock. Available: 3"

        history = await _entries(engine, product_id)
        assert [entry.action for entry in history] == [LedgerAction.STOCK_OUT, LedgerAction.ADD]


@pytest.mark.asyncio
async def test_rejected_withdrawal_changes_nothing(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        created = await engine.create_product(_draft(quantity=2), actor=ALICE)

        with pytest.raises(InsufficientStock):
            await engine.adjust_stock(created.product.id, -3, None, actor=ALICE)

        async with lifespan_session(engine.session_factory) as session:
            stored = await CatalogRepository(session).get(created.product.id)
        assert stored is not None
        assert stored.quantity == 2
        assert await _count(engine, LedgerEntry) == 1


@pytest.mark.asyncio
async def test_zero_delta_is_logged_as_stock_out_with_no_change(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        created = await engine.create_product(_draft(), actor=ALICE)

        outcome = await engine.adjust_stock(created.product.id, 0, "cycle count", actor=ALICE)

        assert outcome.entry is not None
        assert outcome.entry.action is LedgerAction.STOCK_OUT
        assert (outcome.entry.quantity_before, outcome.entry.quantity_after) == (5, 5)
        assert outcome.entry.quantity_change == 0
        assert outcome.product.quantity == 5


@pytest.mark.asyncio
async def test_entries_satisfy_change_equals_after_minus_before(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        created = await engine.create_product(_draft(quantity=10), actor=ALICE)
        product_id = created.product.id
        for delta in (4, -7, 0, 2):
            await engine.adjust_stock(product_id, delta, None, actor=ALICE)
        await engine.update_product(product_id, ProductUpdate(**{**_draft().model_dump(), "quantity": 1}), actor=ALICE)

        for entry in await _entries(engine, product_id):
            if entry.quantity_before is None:
                assert entry.quantity_change is None
            else:
                assert entry.quantity_change == entry.quantity_after - entry.quantity_before


@pytest.mark.asyncio
async def test_non_integer_delta_is_rejected(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        created = await engine.create_product(_draft(), actor=ALICE)

        with pytest.raises(ValidationFailed):
            await engine.adjust_stock(created.product.id, True, None, actor=ALICE)  # type: ignore[arg-type]
        with pytest.raises(ValidationFailed):
            await engine.adjust_stock(created.product.id, 1.5, None, actor=ALICE)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_engine_rechecks_fields_that_bypassed_schema(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        invalid = ProductDraft.model_construct(
            sku="BAD-1", name="Broken", quantity=-1, unit="pcs", price=Decimal("1.00")
        )

        with pytest.raises(ValidationFailed) as excinfo:
            await engine.create_product(invalid, actor=ALICE)

        assert excinfo.value.message == "Quantity cannot be negative"
        assert await _count(engine, Product) == 0


@pytest.mark.asyncio
async def test_unknown_category_is_rejected(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        with pytest.raises(ValidationFailed) as excinfo:
            await engine.create_product(_draft(category_id=99), actor=ALICE)

        assert excinfo.value.message == "Unknown category"
        assert await _count(engine, LedgerEntry) == 0


@pytest.mark.asyncio
async def test_inactive_references_are_rejected(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        async with lifespan_session(engine.session_factory) as session:
            category = Category(name="Discontinued", color="#000000", is_active=False)
            supplier = Supplier(name="Closed Supplier Ltd", is_active=False)
            session.add_all([category, supplier])
            await session.flush()
            category_id, supplier_id = category.id, supplier.id

        with pytest.raises(ValidationFailed) as by_category:
            await engine.create_product(_draft(category_id=category_id), actor=ALICE)
        with pytest.raises(ValidationFailed) as by_supplier:
            await engine.create_product(_draft(supplier_id=supplier_id), actor=ALICE)

        assert by_category.value.message == "Unknown category"
        assert by_supplier.value.message == "Unknown supplier"
        assert await _count(engine, Product) == 0


@pytest.mark.asyncio
async def test_large_prices_keep_their_cents(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        outcome = await engine.create_product(
            _draft(price=Decimal("9999999999.99"), cost_price=Decimal("25000000.50")), actor=ALICE
        )

        async with lifespan_session(engine.session_factory) as session:
            stored = await CatalogRepository(session).get(outcome.product.id)
        assert stored is not None
        assert stored.price_cents == 999999999999
        assert outcome.product.price == Decimal("9999999999.99")
        assert outcome.product.cost_price == Decimal("25000000.50")


@pytest.mark.asyncio
async def test_failed_ledger_append_rolls_back_stock_change(tmp_path, monkeypatch) -> None:
    async with _ledger_store(tmp_path) as engine:
        created = await engine.create_product(_draft(quantity=8), actor=ALICE)
        product_id = created.product.id

        async def failing_append(self, **kwargs: Any) -> LedgerEntry:
            raise OperationalError("INSERT INTO inventory_logs", {}, Exception("disk I/O error"))

        monkeypatch.setattr(LedgerRepository, "append", failing_append)
        with pytest.raises(StorageUnavailable) as excinfo:
            await engine.adjust_stock(product_id, -3, "order", actor=ALICE)
        monkeypatch.undo()

        assert excinfo.value.retryable is True
        async with lifespan_session(engine.session_factory) as session:
            stored = await CatalogRepository(session).get(product_id)
        assert stored is not None
        assert stored.quantity == 8
        assert await _count(engine, LedgerEntry) == 1


@pytest.mark.asyncio
async def test_update_logs_only_quantity_changes_by_default(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        created = await engine.create_product(_draft(), actor=ALICE)
        product_id = created.product.id
        base = _draft().model_dump()

        renamed = await engine.update_product(
            product_id, ProductUpdate(**{**base, "name": "Braided cable"}), actor=ALICE
        )
        recounted = await engine.update_product(
            product_id, ProductUpdate(**{**base, "quantity": 9}), actor=ALICE
        )

        assert renamed.entry is None
        assert renamed.product.name == "Braided cable"
        assert recounted.entry is not None
        assert recounted.entry.action is LedgerAction.UPDATE
        assert (recounted.entry.quantity_before, recounted.entry.quantity_after) == (5, 9)
        assert len(await _entries(engine, product_id)) == 2


@pytest.mark.asyncio
async def test_field_edits_are_audited_when_enabled(tmp_path) -> None:
    async with _ledger_store(tmp_path, audit_field_edits=True) as engine:
        created = await engine.create_product(_draft(), actor=ALICE)

        outcome = await engine.update_product(
            created.product.id,
            ProductUpdate(**{**_draft().model_dump(), "price": Decimal("15.00")}),
            actor=ALICE,
        )

        assert outcome.entry is not None
        assert outcome.entry.quantity_change == 0
        assert outcome.entry.notes == "Product details updated"


@pytest.mark.asyncio
async def test_update_to_taken_sku_is_rejected(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        await engine.create_product(_draft("A-1"), actor=ALICE)
        second = await engine.create_product(_draft("B-1"), actor=ALICE)

        with pytest.raises(DuplicateSku):
            await engine.update_product(
                second.product.id, ProductUpdate(**_draft("A-1").model_dump()), actor=ALICE
            )
        with pytest.raises(NotFound):
            await engine.update_product(999, ProductUpdate(**_draft("C-1").model_dump()), actor=ALICE)


@pytest.mark.asyncio
async def test_system_default_actor_is_recorded_as_such(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        outcome = await engine.create_product(_draft(), actor=Actor.system_default("system"))

        assert outcome.entry is not None
        assert outcome.entry.actor_id == "system"
        assert outcome.entry.actor_source is ActorSource.SYSTEM_DEFAULT


@pytest.mark.asyncio
async def test_ledger_entries_cannot_be_modified(tmp_path) -> None:
    async with _ledger_store(tmp_path) as engine:
        created = await engine.create_product(_draft(), actor=ALICE)
        assert created.entry is not None

        with pytest.raises(LedgerImmutabilityError):
            async with lifespan_session(engine.session_factory) as session:
                entry = await session.get(LedgerEntry, created.entry.id)
                assert entry is not None
                entry.notes = "rewritten"
                await session.flush()

        with pytest.raises(LedgerImmutabilityError):
            async with lifespan_session(engine.session_factory) as session:
                entry = await session.get(LedgerEntry, created.entry.id)
                await session.delete(entry)
                await session.flush()

        history = await _entries(engine, created.product.id)
        assert history[0].notes == "Product created"


@pytest.mark.asyncio
async def test_unreachable_storage_is_reported_as_retryable(tmp_path) -> None:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'ledger.db'}"
    settings = ServiceSettings(enable_metrics=False, enable_tracing=False, database_url=database_url)
    engine = StockLedgerEngine(get_session_factory(database_url), settings)
    try:
        with pytest.raises(StorageUnavailable) as excinfo:
            await engine.create_product(_draft(), actor=ALICE)
    finally:
        await dispose_engines()

    assert excinfo.value.retryable is True
