"""Error taxonomy raised by the stock ledger engine."""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for every failure the engine reports to callers."""

    code = "ledger_error"
    retryable = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details


class ValidationFailed(LedgerError):
    code = "validation_failed"


class DuplicateSku(LedgerError):
    code = "duplicate_sku"

    def __init__(self, sku: str) -> None:
        super().__init__("SKU already exists", sku=sku)
        self.sku = sku


class NotFound(LedgerError):
    code = "not_found"

    def __init__(self, product_id: int | None = None, *, sku: str | None = None) -> None:
        details = {"product_id": product_id} if sku is None else {"sku": sku}
        super().__init__("Product not found", **details)
        self.product_id = product_id
        self.sku = sku


class InsufficientStock(LedgerError):
    code = "insufficient_stock"

    def __init__(self, product_id: int, *, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient stock. Available: {available}",
            product_id=product_id,
            available=available,
            requested=requested,
        )
        self.available = available


class StorageUnavailable(LedgerError):
    """The catalog or ledger store failed or timed out; nothing was applied."""

    code = "storage_unavailable"
    retryable = True
