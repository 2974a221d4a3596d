"""Translate facade results into HTTP responses."""

from __future__ import annotations

from typing import Any, TypeVar

from fastapi import HTTPException, status

from ..facade import OperationResult

T = TypeVar("T")

_STATUS_BY_ERROR = {
    "validation_failed": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "duplicate_sku": status.HTTP_409_CONFLICT,
    "not_found": status.HTTP_404_NOT_FOUND,
    "insufficient_stock": status.HTTP_409_CONFLICT,
    "storage_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _jsonable(details: dict[str, Any]) -> dict[str, Any]:
    cleaned = dict(details)
    # pydantic error dicts can carry exception objects under ``ctx``.
    if "errors" in cleaned:
        cleaned["errors"] = [
            {"loc": list(error["loc"]), "msg": error["msg"]} for error in cleaned["errors"]
        ]
    return cleaned


def unwrap(result: OperationResult[T]) -> T:
    """Return the payload of a successful result or raise the matching HTTP error."""

    if result.success:
        return result.payload  # type: ignore[return-value]
    status_code = _STATUS_BY_ERROR.get(result.error or "", status.HTTP_400_BAD_REQUEST)
    headers = {"Retry-After": "1"} if result.retryable else None
    raise HTTPException(
        status_code=status_code,
        detail={
            "code": result.error,
            "message": result.message,
            "retryable": result.retryable,
            "details": _jsonable(result.details),
        },
        headers=headers,
    )
