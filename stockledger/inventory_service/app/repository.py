"""Data access for the catalog, the ledger and alert settings."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .domain import (
    Actor,
    LedgerAction,
    LedgerRecord,
    ProductDetail,
    ProductRecord,
    ProductStatus,
)
from .models import AlertSetting, Category, LedgerEntry, Product, Supplier

_CENT = Decimal("0.01")


def to_cents(amount: Decimal) -> int:
    """Convert a decimal currency amount into integer cents."""

    return int((amount * Decimal("100")).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / Decimal("100")).quantize(_CENT)


def to_product_record(product: Product) -> ProductRecord:
    return ProductRecord(
        id=product.id,
        sku=product.sku,
        name=product.name,
        description=product.description,
        category_id=product.category_id,
        supplier_id=product.supplier_id,
        quantity=product.quantity,
        unit=product.unit,
        price=from_cents(product.price_cents),
        cost_price=from_cents(product.cost_price_cents),
        low_stock_threshold=product.low_stock_threshold,
        expiry_date=product.expiry_date,
        barcode=product.barcode,
        location=product.location,
        status=product.status,
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


def to_ledger_record(entry: LedgerEntry) -> LedgerRecord:
    return LedgerRecord(
        id=entry.id,
        product_id=entry.product_id,
        actor_id=entry.actor_id,
        actor_source=entry.actor_source,
        action=entry.action,
        quantity_before=entry.quantity_before,
        quantity_after=entry.quantity_after,
        quantity_change=entry.quantity_change,
        notes=entry.notes,
        created_at=entry.created_at,
    )


class CatalogRepository:
    """Product, category and supplier persistence.

    Every lookup named without a qualifier only sees active products; retired
    rows are reachable through :meth:`get_any` so their history stays addressable.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, product_id: int) -> Product | None:
        result = await self.session.execute(
            select(Product).where(Product.id == product_id, Product.status == ProductStatus.ACTIVE)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, product_id: int) -> Product | None:
        """Load an active product and lock its row until the transaction ends."""

        result = await self.session.execute(
            select(Product)
            .where(Product.id == product_id, Product.status == ProductStatus.ACTIVE)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_any(self, product_id: int) -> Product | None:
        return await self.session.get(Product, product_id)

    async def get_by_sku(self, sku: str) -> Product | None:
        result = await self.session.execute(
            select(Product).where(Product.sku == sku, Product.status == ProductStatus.ACTIVE)
        )
        return result.scalar_one_or_none()

    async def exists_active_sku(self, sku: str) -> bool:
        result = await self.session.execute(
            select(func.count(Product.id)).where(
                Product.sku == sku, Product.status == ProductStatus.ACTIVE
            )
        )
        return result.scalar_one() > 0

    async def add(self, product: Product) -> Product:
        self.session.add(product)
        await self.session.flush()
        await self.session.refresh(product)
        return product

    async def put(self, product: Product) -> Product:
        await self.session.flush()
        await self.session.refresh(product, attribute_names=["updated_at", "version"])
        return product

    async def list_active(self) -> list[Product]:
        result = await self.session.execute(
            select(Product)
            .where(Product.status == ProductStatus.ACTIVE)
            .order_by(Product.updated_at.desc(), Product.id.desc())
        )
        return list(result.scalars())

    def _detail_query(self) -> Select[Any]:
        return (
            select(Product, Category.name, Supplier.name)
            .outerjoin(Category, Product.category_id == Category.id)
            .outerjoin(Supplier, Product.supplier_id == Supplier.id)
        )

    async def get_detail(self, product_id: int) -> ProductDetail | None:
        result = await self.session.execute(
            self._detail_query().where(
                Product.id == product_id, Product.status == ProductStatus.ACTIVE
            )
        )
        row = result.one_or_none()
        if row is None:
            return None
        product, category_name, supplier_name = row
        return ProductDetail(to_product_record(product), category_name, supplier_name)

    async def list_details(
        self,
        *,
        search: str | None,
        category_id: int | None,
        supplier_id: int | None,
        limit: int,
        offset: int,
    ) -> tuple[list[ProductDetail], int]:
        filters = [Product.status == ProductStatus.ACTIVE]
        if search:
            pattern = f"%{search}%"
            filters.append(
                or_(
                    Product.name.ilike(pattern),
                    Product.sku.ilike(pattern),
                    Product.description.ilike(pattern),
                    Product.barcode.ilike(pattern),
                )
            )
        if category_id is not None:
            filters.append(Product.category_id == category_id)
        if supplier_id is not None:
            filters.append(Product.supplier_id == supplier_id)

        clause = and_(*filters)
        count: Select[tuple[int]] = select(func.count(Product.id)).where(clause)
        ordering = (
            (Product.name.asc(), Product.id.asc())
            if search
            else (Product.updated_at.desc(), Product.id.desc())
        )
        base = self._detail_query().where(clause).order_by(*ordering)

        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        details = [
            ProductDetail(to_product_record(product), category_name, supplier_name)
            for product, category_name, supplier_name in result.all()
        ]
        return details, total

    async def create_category(self, *, name: str, description: str | None, color: str) -> Category:
        category = Category(name=name, description=description, color=color)
        self.session.add(category)
        await self.session.flush()
        await self.session.refresh(category)
        return category

    async def list_categories(self) -> list[Category]:
        result = await self.session.execute(
            select(Category).where(Category.is_active.is_(True)).order_by(Category.name)
        )
        return list(result.scalars())

    async def category_exists(self, category_id: int) -> bool:
        result = await self.session.execute(
            select(func.count(Category.id)).where(
                Category.id == category_id, Category.is_active.is_(True)
            )
        )
        return result.scalar_one() > 0

    async def find_category_by_name(self, name: str) -> Category | None:
        result = await self.session.execute(select(Category).where(Category.name == name))
        return result.scalar_one_or_none()

    async def create_supplier(
        self,
        *,
        name: str,
        contact_person: str | None,
        email: str | None,
        phone: str | None,
    ) -> Supplier:
        supplier = Supplier(name=name, contact_person=contact_person, email=email, phone=phone)
        self.session.add(supplier)
        await self.session.flush()
        await self.session.refresh(supplier)
        return supplier

    async def list_suppliers(self) -> list[Supplier]:
        result = await self.session.execute(
            select(Supplier).where(Supplier.is_active.is_(True)).order_by(Supplier.name)
        )
        return list(result.scalars())

    async def supplier_exists(self, supplier_id: int) -> bool:
        result = await self.session.execute(
            select(func.count(Supplier.id)).where(
                Supplier.id == supplier_id, Supplier.is_active.is_(True)
            )
        )
        return result.scalar_one() > 0

    async def count_categories(self) -> int:
        result = await self.session.execute(
            select(func.count(Category.id)).where(Category.is_active.is_(True))
        )
        return result.scalar_one()

    async def count_suppliers(self) -> int:
        result = await self.session.execute(
            select(func.count(Supplier.id)).where(Supplier.is_active.is_(True))
        )
        return result.scalar_one()


class LedgerRepository:
    """Append-only access to ledger entries; there is no update or delete."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def append(
        self,
        *,
        product_id: int,
        actor: Actor,
        action: LedgerAction,
        quantity_before: int | None,
        quantity_after: int | None,
        notes: str | None,
    ) -> LedgerEntry:
        change = None
        if quantity_before is not None and quantity_after is not None:
            change = quantity_after - quantity_before
        entry = LedgerEntry(
            product_id=product_id,
            actor_id=actor.id,
            actor_source=actor.source,
            action=action,
            quantity_before=quantity_before,
            quantity_after=quantity_after,
            quantity_change=change,
            notes=notes,
        )
        self.session.add(entry)
        await self.session.flush()
        await self.session.refresh(entry, attribute_names=["created_at"])
        return entry

    async def list_by_product(self, product_id: int) -> list[LedgerEntry]:
        result = await self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.product_id == product_id)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        )
        return list(result.scalars())

    async def list_recent(self, limit: int) -> list[LedgerEntry]:
        result = await self.session.execute(
            select(LedgerEntry)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
            .limit(limit)
        )
        return list(result.scalars())

    async def count_today(self) -> int:
        result = await self.session.execute(
            select(func.count(LedgerEntry.id)).where(
                func.date(LedgerEntry.created_at) == func.current_date()
            )
        )
        return result.scalar_one()


class AlertSettingsRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_all(self) -> dict[str, str]:
        result = await self.session.execute(select(AlertSetting))
        return {setting.setting_key: setting.setting_value for setting in result.scalars()}

    async def upsert(self, key: str, value: str, *, description: str | None = None) -> AlertSetting:
        result = await self.session.execute(select(AlertSetting).where(AlertSetting.setting_key == key))
        setting = result.scalar_one_or_none()
        if setting is None:
            setting = AlertSetting(setting_key=key, setting_value=value, description=description)
            self.session.add(setting)
        else:
            setting.setting_value = value
            if description is not None:
                setting.description = description
        await self.session.flush()
        return setting
