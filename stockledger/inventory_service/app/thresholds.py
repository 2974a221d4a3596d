"""Runtime-reloadable alert thresholds."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from stockledger.common import ServiceSettings

from .repository import AlertSettingsRepository

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD_KEY = "low_stock_threshold"
EXPIRY_ALERT_DAYS_KEY = "expiry_alert_days"


@dataclass(frozen=True)
class AlertThresholds:
    low_stock_threshold: int
    expiry_window_days: int


def _parse_non_negative(raw: str | None, fallback: int, *, key: str) -> int:
    if raw is None:
        return fallback
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer alert setting %s=%r", key, raw)
        return fallback
    if value < 0:
        logger.warning("Ignoring negative alert setting %s=%r", key, raw)
        return fallback
    return value


class AlertSettingsProvider:
    """Resolve thresholds from the ``alert_settings`` table on every call.

    Stored rows win over the service settings, so an update through
    :meth:`update` takes effect on the next evaluation without a restart.
    """

    def __init__(self, settings: ServiceSettings) -> None:
        self.settings = settings

    async def thresholds(self, session: AsyncSession) -> AlertThresholds:
        stored = await AlertSettingsRepository(session).get_all()
        return AlertThresholds(
            low_stock_threshold=_parse_non_negative(
                stored.get(LOW_STOCK_THRESHOLD_KEY),
                self.settings.default_low_stock_threshold,
                key=LOW_STOCK_THRESHOLD_KEY,
            ),
            expiry_window_days=_parse_non_negative(
                stored.get(EXPIRY_ALERT_DAYS_KEY),
                self.settings.expiry_window_days,
                key=EXPIRY_ALERT_DAYS_KEY,
            ),
        )

    async def update(
        self,
        session: AsyncSession,
        *,
        low_stock_threshold: int | None = None,
        expiry_window_days: int | None = None,
    ) -> AlertThresholds:
        repository = AlertSettingsRepository(session)
        if low_stock_threshold is not None:
            await repository.upsert(
                LOW_STOCK_THRESHOLD_KEY,
                str(low_stock_threshold),
                description="Default threshold for low stock alerts",
            )
        if expiry_window_days is not None:
            await repository.upsert(
                EXPIRY_ALERT_DAYS_KEY,
                str(expiry_window_days),
                description="Number of days before expiry to trigger alert",
            )
        thresholds = await self.thresholds(session)
        logger.info(
            "Alert thresholds now low_stock=%d expiry_window_days=%d",
            thresholds.low_stock_threshold,
            thresholds.expiry_window_days,
        )
        return thresholds
