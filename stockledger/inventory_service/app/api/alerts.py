"""HTTP routes for derived stock and expiry alerts."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..alerts import Alert, AlertSummary
from ..dependencies import get_facade
from ..facade import InventoryFacade
from ..schemas import (
    AlertListResponse,
    AlertResponse,
    AlertSettingsResponse,
    AlertSettingsUpdate,
    AlertSummaryResponse,
)
from ..thresholds import AlertThresholds
from .results import unwrap

router = APIRouter(prefix="/alerts", tags=["alerts"])


def _serialize_alert(alert: Alert) -> AlertResponse:
    return AlertResponse.model_validate(
        {
            "type": alert.type.value,
            "severity": alert.severity.value,
            "message": alert.message,
            "productId": alert.product.id,
            "sku": alert.product.sku,
            "quantity": alert.product.quantity,
            "expiryDate": alert.product.expiry_date,
            "daysUntilExpiry": alert.days_until_expiry,
        }
    )


def _serialize_summary(summary: AlertSummary) -> AlertSummaryResponse:
    return AlertSummaryResponse(
        critical=summary.critical,
        warning=summary.warning,
        info=summary.info,
        total=summary.total,
    )


def _serialize_thresholds(thresholds: AlertThresholds) -> AlertSettingsResponse:
    return AlertSettingsResponse(
        low_stock_threshold=thresholds.low_stock_threshold,
        expiry_window_days=thresholds.expiry_window_days,
    )


@router.get("", response_model=AlertListResponse)
async def list_alerts(facade: InventoryFacade = Depends(get_facade)) -> AlertListResponse:
    report = unwrap(await facade.alerts())
    return AlertListResponse(
        alerts=[_serialize_alert(alert) for alert in report.alerts],
        summary=_serialize_summary(report.summary),
    )


@router.get("/summary", response_model=AlertSummaryResponse)
async def alert_summary(facade: InventoryFacade = Depends(get_facade)) -> AlertSummaryResponse:
    return _serialize_summary(unwrap(await facade.alerts()).summary)


@router.get("/settings", response_model=AlertSettingsResponse)
async def get_alert_settings(
    facade: InventoryFacade = Depends(get_facade),
) -> AlertSettingsResponse:
    return _serialize_thresholds(unwrap(await facade.alert_thresholds()))


@router.put("/settings", response_model=AlertSettingsResponse)
async def update_alert_settings(
    payload: AlertSettingsUpdate,
    facade: InventoryFacade = Depends(get_facade),
) -> AlertSettingsResponse:
    thresholds = unwrap(
        await facade.update_alert_thresholds(
            low_stock_threshold=payload.low_stock_threshold,
            expiry_window_days=payload.expiry_window_days,
        )
    )
    return _serialize_thresholds(thresholds)
