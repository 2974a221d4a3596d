"""HTTP routes for products, stock adjustments and their ledger."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from ..dependencies import get_actor, get_facade
from ..domain import Actor, LedgerRecord, ProductDetail, ProductRecord
from ..facade import InventoryFacade
from ..schemas import (
    LedgerEntryResponse,
    ProductDraft,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
    StockAdjustment,
)
from .results import unwrap

router = APIRouter(prefix="/products", tags=["products"])


def _serialize_product(
    product: ProductRecord,
    *,
    category_name: str | None = None,
    supplier_name: str | None = None,
) -> dict[str, object]:
    return {
        "id": product.id,
        "sku": product.sku,
        "name": product.name,
        "description": product.description,
        "categoryId": product.category_id,
        "categoryName": category_name,
        "supplierId": product.supplier_id,
        "supplierName": supplier_name,
        "quantity": product.quantity,
        "unit": product.unit,
        "price": product.price,
        "costPrice": product.cost_price,
        "profitMargin": product.profit_margin,
        "lowStockThreshold": product.low_stock_threshold,
        "stockStatus": product.stock_status,
        "expiryDate": product.expiry_date,
        "barcode": product.barcode,
        "location": product.location,
        "status": product.status.value,
        "createdAt": product.created_at,
        "updatedAt": product.updated_at,
    }


def _serialize_detail(detail: ProductDetail) -> ProductResponse:
    return ProductResponse.model_validate(
        _serialize_product(
            detail.product,
            category_name=detail.category_name,
            supplier_name=detail.supplier_name,
        )
    )


def serialize_entry(entry: LedgerRecord) -> LedgerEntryResponse:
    return LedgerEntryResponse.model_validate(
        {
            "id": entry.id,
            "productId": entry.product_id,
            "actorId": entry.actor_id,
            "actorSource": entry.actor_source.value,
            "action": entry.action.value,
            "actionLabel": entry.action.display_name,
            "quantityBefore": entry.quantity_before,
            "quantityAfter": entry.quantity_after,
            "quantityChange": entry.quantity_change,
            "notes": entry.notes,
            "createdAt": entry.created_at,
        }
    )


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductDraft,
    facade: InventoryFacade = Depends(get_facade),
    actor: Actor = Depends(get_actor),
) -> ProductResponse:
    product = unwrap(await facade.create_product(payload, actor=actor))
    return ProductResponse.model_validate(_serialize_product(product))


@router.get("", response_model=ProductListResponse)
async def list_products(
    search: str | None = Query(default=None, max_length=100),
    category_id: int | None = Query(default=None, alias="categoryId", ge=1),
    supplier_id: int | None = Query(default=None, alias="supplierId", ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    facade: InventoryFacade = Depends(get_facade),
) -> ProductListResponse:
    details, total = unwrap(
        await facade.list_products(
            search=search,
            category_id=category_id,
            supplier_id=supplier_id,
            limit=limit,
            offset=offset,
        )
    )
    return ProductListResponse(items=[_serialize_detail(detail) for detail in details], total=total)


@router.get("/by-sku/{sku}", response_model=ProductResponse)
async def get_product_by_sku(
    sku: str,
    facade: InventoryFacade = Depends(get_facade),
) -> ProductResponse:
    return _serialize_detail(unwrap(await facade.get_product_by_sku(sku)))


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    facade: InventoryFacade = Depends(get_facade),
) -> ProductResponse:
    return _serialize_detail(unwrap(await facade.get_product(product_id)))


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    payload: ProductUpdate,
    facade: InventoryFacade = Depends(get_facade),
    actor: Actor = Depends(get_actor),
) -> ProductResponse:
    product = unwrap(await facade.update_product(product_id, payload, actor=actor))
    return ProductResponse.model_validate(_serialize_product(product))


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    facade: InventoryFacade = Depends(get_facade),
    actor: Actor = Depends(get_actor),
) -> Response:
    unwrap(await facade.delete_product(product_id, actor=actor))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{product_id}/adjustments", response_model=ProductResponse)
async def adjust_stock(
    product_id: int,
    payload: StockAdjustment,
    facade: InventoryFacade = Depends(get_facade),
    actor: Actor = Depends(get_actor),
) -> ProductResponse:
    product = unwrap(
        await facade.adjust_stock(product_id, payload.delta, payload.reason, actor=actor)
    )
    return ProductResponse.model_validate(_serialize_product(product))


@router.get("/{product_id}/ledger", response_model=list[LedgerEntryResponse])
async def list_ledger(
    product_id: int,
    facade: InventoryFacade = Depends(get_facade),
) -> list[LedgerEntryResponse]:
    return [serialize_entry(entry) for entry in unwrap(await facade.list_ledger(product_id))]
