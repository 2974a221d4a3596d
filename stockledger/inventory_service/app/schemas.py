"""Pydantic schemas for the stock ledger service."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt, field_validator

_MONEY = {"ge": Decimal("0"), "max_digits": 12, "decimal_places": 2}


def _strip_required(value: str, field: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        msg = f"{field} must be non-empty"
        raise ValueError(msg)
    return cleaned


def _strip_optional(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class ProductDraft(BaseModel):
    """Fields accepted when creating a product."""

    sku: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    category_id: PositiveInt | None = Field(default=None, alias="categoryId")
    supplier_id: PositiveInt | None = Field(default=None, alias="supplierId")
    quantity: NonNegativeInt = 0
    unit: str = Field(default="pcs", min_length=1, max_length=20)
    price: Decimal = Field(default=Decimal("0.00"), **_MONEY)
    cost_price: Decimal = Field(default=Decimal("0.00"), alias="costPrice", **_MONEY)
    low_stock_threshold: NonNegativeInt | None = Field(default=None, alias="lowStockThreshold")
    expiry_date: date | None = Field(default=None, alias="expiryDate")
    barcode: str | None = Field(default=None, max_length=50)
    location: str | None = Field(default=None, max_length=100)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("sku")
    @classmethod
    def _strip_sku(cls, value: str) -> str:
        return _strip_required(value, "sku")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _strip_required(value, "name")

    @field_validator("unit")
    @classmethod
    def _strip_unit(cls, value: str) -> str:
        return _strip_required(value, "unit")

    @field_validator("description", "barcode", "location")
    @classmethod
    def _strip_optional_text(cls, value: str | None) -> str | None:
        return _strip_optional(value)


class ProductUpdate(ProductDraft):
    """Full replacement record; every mutable field is overwritten."""

    quantity: NonNegativeInt


class StockAdjustment(BaseModel):
    delta: int
    reason: str | None = Field(default=None, max_length=500)

    @field_validator("reason")
    @classmethod
    def _strip_reason(cls, value: str | None) -> str | None:
        return _strip_optional(value)


class ProductResponse(BaseModel):
    id: PositiveInt
    sku: str
    name: str
    description: str | None
    category_id: int | None = Field(alias="categoryId")
    category_name: str | None = Field(default=None, alias="categoryName")
    supplier_id: int | None = Field(alias="supplierId")
    supplier_name: str | None = Field(default=None, alias="supplierName")
    quantity: int
    unit: str
    price: Decimal
    cost_price: Decimal = Field(alias="costPrice")
    profit_margin: Decimal = Field(alias="profitMargin")
    low_stock_threshold: int = Field(alias="lowStockThreshold")
    stock_status: str = Field(alias="stockStatus")
    expiry_date: date | None = Field(alias="expiryDate")
    barcode: str | None
    location: str | None
    status: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class ProductListResponse(BaseModel):
    items: list[ProductResponse]
    total: int


class LedgerEntryResponse(BaseModel):
    id: PositiveInt
    product_id: int = Field(alias="productId")
    actor_id: str = Field(alias="actorId")
    actor_source: str = Field(alias="actorSource")
    action: str
    action_label: str = Field(alias="actionLabel")
    quantity_before: int | None = Field(alias="quantityBefore")
    quantity_after: int | None = Field(alias="quantityAfter")
    quantity_change: int | None = Field(alias="quantityChange")
    notes: str | None
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)


class AlertResponse(BaseModel):
    type: str
    severity: str
    message: str
    product_id: int = Field(alias="productId")
    sku: str
    quantity: int
    expiry_date: date | None = Field(alias="expiryDate")
    days_until_expiry: int | None = Field(alias="daysUntilExpiry")

    model_config = ConfigDict(populate_by_name=True)


class AlertSummaryResponse(BaseModel):
    critical: int
    warning: int
    info: int
    total: int


class AlertListResponse(BaseModel):
    alerts: list[AlertResponse]
    summary: AlertSummaryResponse


class AlertSettingsUpdate(BaseModel):
    low_stock_threshold: NonNegativeInt | None = Field(default=None, alias="lowStockThreshold")
    expiry_window_days: NonNegativeInt | None = Field(default=None, alias="expiryWindowDays")

    model_config = ConfigDict(populate_by_name=True)


class AlertSettingsResponse(BaseModel):
    low_stock_threshold: int = Field(alias="lowStockThreshold")
    expiry_window_days: int = Field(alias="expiryWindowDays")

    model_config = ConfigDict(populate_by_name=True)


class DashboardResponse(BaseModel):
    total_products: int = Field(alias="totalProducts")
    total_items: int = Field(alias="totalItems")
    total_inventory_value: Decimal = Field(alias="totalInventoryValue")
    low_stock_count: int = Field(alias="lowStockCount")
    expiring_soon_count: int = Field(alias="expiringSoonCount")
    expired_count: int = Field(alias="expiredCount")
    total_categories: int = Field(alias="totalCategories")
    total_suppliers: int = Field(alias="totalSuppliers")
    today_activities: int = Field(alias="todayActivities")

    model_config = ConfigDict(populate_by_name=True)


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    color: str = Field(default="#3498db", pattern=r"^#[0-9a-fA-F]{6}$")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _strip_required(value, "name")


class CategoryResponse(BaseModel):
    id: PositiveInt
    name: str
    description: str | None
    color: str

    model_config = ConfigDict(from_attributes=True)


class SupplierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=150)
    contact_person: str | None = Field(default=None, alias="contactPerson", max_length=100)
    email: str | None = Field(default=None, max_length=100)
    phone: str | None = Field(default=None, max_length=20)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _strip_required(value, "name")


class SupplierResponse(BaseModel):
    id: PositiveInt
    name: str
    contact_person: str | None = Field(alias="contactPerson")
    email: str | None
    phone: str | None

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)
