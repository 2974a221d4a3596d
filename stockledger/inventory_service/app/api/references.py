"""HTTP routes for the category and supplier reference data."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_catalog
from ..repository import CatalogRepository
from ..schemas import CategoryCreate, CategoryResponse, SupplierCreate, SupplierResponse

router = APIRouter(tags=["references"])


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    repository: CatalogRepository = Depends(get_catalog),
) -> CategoryResponse:
    if await repository.find_category_by_name(payload.name):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Category already exists")
    category = await repository.create_category(
        name=payload.name,
        description=payload.description,
        color=payload.color,
    )
    return CategoryResponse.model_validate(category)


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(
    repository: CatalogRepository = Depends(get_catalog),
) -> list[CategoryResponse]:
    return [CategoryResponse.model_validate(category) for category in await repository.list_categories()]


@router.post("/suppliers", response_model=SupplierResponse, status_code=status.HTTP_201_CREATED)
async def create_supplier(
    payload: SupplierCreate,
    repository: CatalogRepository = Depends(get_catalog),
) -> SupplierResponse:
    supplier = await repository.create_supplier(
        name=payload.name,
        contact_person=payload.contact_person,
        email=payload.email,
        phone=payload.phone,
    )
    return SupplierResponse.model_validate(supplier)


@router.get("/suppliers", response_model=list[SupplierResponse])
async def list_suppliers(
    repository: CatalogRepository = Depends(get_catalog),
) -> list[SupplierResponse]:
    return [SupplierResponse.model_validate(supplier) for supplier in await repository.list_suppliers()]
