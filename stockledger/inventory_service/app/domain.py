"""Plain domain values shared by the ledger engine, evaluator and facade."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class ProductStatus(str, Enum):
    ACTIVE = "active"
    RETIRED = "retired"


class LedgerAction(str, Enum):
    ADD = "ADD"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    STOCK_IN = "STOCK_IN"
    STOCK_OUT = "STOCK_OUT"
    ADJUSTMENT = "ADJUSTMENT"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class ActorSource(str, Enum):
    AUTHENTICATED = "authenticated"
    SYSTEM_DEFAULT = "system-default"


@dataclass(frozen=True)
class Actor:
    """Who is performing a state-changing call."""

    id: str
    source: ActorSource = ActorSource.AUTHENTICATED

    @classmethod
    def system_default(cls, actor_id: str) -> Actor:
        return cls(id=actor_id, source=ActorSource.SYSTEM_DEFAULT)


@dataclass(frozen=True)
class ProductRecord:
    """Base product record as stored in the catalog."""

    id: int
    sku: str
    name: str
    description: str | None
    category_id: int | None
    supplier_id: int | None
    quantity: int
    unit: str
    price: Decimal
    cost_price: Decimal
    low_stock_threshold: int
    expiry_date: date | None
    barcode: str | None
    location: str | None
    status: ProductStatus
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status is ProductStatus.ACTIVE

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity <= 0

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.low_stock_threshold

    @property
    def stock_status(self) -> str:
        if self.is_out_of_stock:
            return "Out of Stock"
        if self.is_low_stock:
            return "Low Stock"
        return "In Stock"

    @property
    def total_value(self) -> Decimal:
        return self.price * self.quantity

    @property
    def profit_margin(self) -> Decimal:
        if not self.cost_price:
            return self.price
        return self.price - self.cost_price

    def days_until_expiry(self, today: date) -> int | None:
        if self.expiry_date is None:
            return None
        return (self.expiry_date - today).days


@dataclass(frozen=True)
class ProductDetail:
    """Product record enriched with display names from joined references."""

    product: ProductRecord
    category_name: str | None
    supplier_name: str | None


@dataclass(frozen=True)
class LedgerRecord:
    id: int
    product_id: int
    actor_id: str
    actor_source: ActorSource
    action: LedgerAction
    quantity_before: int | None
    quantity_after: int | None
    quantity_change: int | None
    notes: str | None
    created_at: datetime


@dataclass(frozen=True)
class LedgerOutcome:
    """Result of one engine mutation: the product and the entry written with it."""

    product: ProductRecord
    entry: LedgerRecord | None
