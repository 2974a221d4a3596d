"""HTTP routes for recent ledger activity and the dashboard."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from stockledger.common import ServiceSettings

from ..dependencies import get_facade
from ..facade import InventoryFacade
from ..schemas import DashboardResponse, LedgerEntryResponse
from .products import serialize_entry
from .results import unwrap

router = APIRouter(tags=["activity"])


@router.get("/activity/recent", response_model=list[LedgerEntryResponse])
async def recent_activity(
    request: Request,
    limit: int | None = Query(default=None, ge=1, le=500),
    facade: InventoryFacade = Depends(get_facade),
) -> list[LedgerEntryResponse]:
    settings: ServiceSettings = request.app.state.settings
    entries = unwrap(await facade.recent_activity(limit or settings.recent_activity_limit))
    return [serialize_entry(entry) for entry in entries]


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(facade: InventoryFacade = Depends(get_facade)) -> DashboardResponse:
    stats = unwrap(await facade.dashboard())
    return DashboardResponse(
        total_products=stats.total_products,
        total_items=stats.total_items,
        total_inventory_value=stats.total_inventory_value,
        low_stock_count=stats.low_stock_count,
        expiring_soon_count=stats.expiring_soon_count,
        expired_count=stats.expired_count,
        total_categories=stats.total_categories,
        total_suppliers=stats.total_suppliers,
        today_activities=stats.today_activities,
    )
