"""Alert evaluation over a product snapshot.

Alerts are never stored. :func:`evaluate_alerts` is a pure function of the
products it is handed, the evaluation date and the expiry window, so it can be
called concurrently and repeatedly with identical results. Counts come from
:func:`summarize_alerts` over the same list, never from separate queries.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

from .domain import ProductRecord

logger = logging.getLogger(__name__)

# Expiring-soon alerts at or inside this many days are raised to WARNING.
_URGENT_EXPIRY_DAYS = 3


class AlertType(str, Enum):
    LOW_STOCK = "LOW_STOCK"
    EXPIRING_SOON = "EXPIRING_SOON"
    EXPIRED = "EXPIRED"


class AlertSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class Alert:
    type: AlertType
    severity: AlertSeverity
    message: str
    product: ProductRecord
    days_until_expiry: int | None = None


@dataclass(frozen=True)
class AlertSummary:
    critical: int
    warning: int
    info: int
    total: int


def _low_stock_alert(product: ProductRecord) -> Alert | None:
    if product.quantity > product.low_stock_threshold:
        return None
    if product.quantity <= 0:
        return Alert(
            AlertType.LOW_STOCK,
            AlertSeverity.CRITICAL,
            f"OUT OF STOCK: {product.name} ({product.sku})",
            product,
        )
    return Alert(
        AlertType.LOW_STOCK,
        AlertSeverity.WARNING,
        f"Low stock: {product.name} ({product.sku}) - Only {product.quantity} {product.unit} "
        f"remaining (threshold: {product.low_stock_threshold})",
        product,
    )


def _expiry_alert(product: ProductRecord, *, today: date, window_end: date) -> Alert | None:
    days = product.days_until_expiry(today)
    expiry = product.expiry_date
    if days is None or expiry is None:
        return None
    if expiry < today:
        return Alert(
            AlertType.EXPIRED,
            AlertSeverity.CRITICAL,
            f"EXPIRED: {product.name} ({product.sku}) - Expired on {expiry.isoformat()}",
            product,
            days,
        )
    if expiry <= window_end:
        severity = AlertSeverity.WARNING if days <= _URGENT_EXPIRY_DAYS else AlertSeverity.INFO
        return Alert(
            AlertType.EXPIRING_SOON,
            severity,
            f"Expiring soon: {product.name} ({product.sku}) - Expires in {days} days on {expiry.isoformat()}",
            product,
            days,
        )
    return None


def evaluate_alerts(
    products: Iterable[ProductRecord],
    *,
    today: date,
    expiry_window_days: int,
) -> list[Alert]:
    """Return every alert raised by ``products`` as of ``today``.

    Low-stock alerts come first ordered by ascending quantity, followed by
    expired and expiring-soon alerts ordered by ascending expiry date. Product
    id breaks ties so the order never depends on input order. Retired products
    are skipped.
    """

    window_end = today + timedelta(days=expiry_window_days)
    low_stock: list[Alert] = []
    expiry: list[Alert] = []
    for product in products:
        if not product.is_active:
            continue
        stock_alert = _low_stock_alert(product)
        if stock_alert is not None:
            low_stock.append(stock_alert)
        expiry_alert = _expiry_alert(product, today=today, window_end=window_end)
        if expiry_alert is not None:
            expiry.append(expiry_alert)

    low_stock.sort(key=lambda alert: (alert.product.quantity, alert.product.id))
    expiry.sort(key=lambda alert: (alert.product.expiry_date, alert.product.id))
    logger.debug("Evaluated %d low stock and %d expiry alerts", len(low_stock), len(expiry))
    return low_stock + expiry


def summarize_alerts(alerts: Iterable[Alert]) -> AlertSummary:
    critical = warning = info = 0
    for alert in alerts:
        if alert.severity is AlertSeverity.CRITICAL:
            critical += 1
        elif alert.severity is AlertSeverity.WARNING:
            warning += 1
        else:
            info += 1
    return AlertSummary(critical=critical, warning=warning, info=info, total=critical + warning + info)
