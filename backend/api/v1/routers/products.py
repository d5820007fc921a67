"""
Products Router — CRUD for product catalog.
"""

import math
from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import TenantContext, get_tenant, get_tenant_db
from api.v1.routers.movements import MovementResponse
from db.models import Category, Product
from inventory import catalog, movements
from inventory.metrics import stock_score, summarize_products

router = APIRouter(prefix="/api/v1/products", tags=["products"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    sku: str | None = Field(None, max_length=100)
    description: str | None = None
    image_url: str | None = None
    price: float | None = Field(None, ge=0)
    stock_current: int | None = Field(None, ge=0)
    stock_min: int | None = Field(None, ge=0)
    stock_max: int | None = Field(None, ge=0)
    category_id: UUID | None = None
    supplier_name: str | None = None
    is_perishable: bool = False
    track_stock: bool = True


class ProductUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    sku: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    image_url: str | None = None
    price: float | None = Field(None, ge=0)
    stock_min: int | None = Field(None, ge=0)
    stock_max: int | None = Field(None, ge=0)
    category_id: UUID | None = None
    supplier_name: str | None = None
    is_perishable: bool | None = None
    track_stock: bool | None = None


class ProductResponse(BaseModel):
    product_id: UUID
    organization_id: UUID
    name: str
    sku: str
    description: str | None
    image_url: str | None
    price: float | None
    stock_current: int
    stock_min: int
    stock_max: int
    stock_score: int
    category_id: UUID | None
    category_name: str | None = None
    supplier_name: str | None
    is_perishable: bool
    track_stock: bool
    archived_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseModel):
    items: list[ProductResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class ProductsStatsResponse(BaseModel):
    total: int
    low_stock: int
    out_of_stock: int
    total_value: float


class RestockableProduct(BaseModel):
    product_id: UUID
    name: str
    sku: str
    image_url: str | None
    stock_current: int
    stock_max: int


class MovementStatPoint(BaseModel):
    date: str
    entries: int
    exits: int
    balance: int


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=ProductListResponse)
async def list_products(
    search: str | None = None,
    category_id: UUID | None = None,
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    stock_status: Literal["low", "normal", "high", "all"] = "all",
    include_archived: bool = False,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """
    Paginated catalog, newest first.

    stock_status:
      low     stock_current <= stock_min
      normal  stock_min < stock_current < stock_max
      high    stock_current >= stock_max
    """
    conditions = [Product.organization_id == tenant.organization_id]
    if not include_archived:
        conditions.append(Product.archived_at.is_(None))
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(Product.name.ilike(pattern), Product.sku.ilike(pattern), Product.description.ilike(pattern))
        )
    if category_id:
        conditions.append(Product.category_id == category_id)
    if min_price is not None:
        conditions.append(Product.price >= min_price)
    if max_price is not None:
        conditions.append(Product.price <= max_price)
    if stock_status == "low":
        conditions.append(Product.stock_current <= Product.stock_min)
    elif stock_status == "normal":
        conditions.append(Product.stock_current > Product.stock_min)
        conditions.append(Product.stock_current < Product.stock_max)
    elif stock_status == "high":
        conditions.append(Product.stock_current >= Product.stock_max)

    count_result = await db.execute(select(func.count()).select_from(Product).where(*conditions))
    total = int(count_result.scalar_one() or 0)

    result = await db.execute(
        select(Product, Category.name.label("category_name"))
        .outerjoin(Category, Category.category_id == Product.category_id)
        .where(*conditions)
        .order_by(Product.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return {
        "items": [_serialize_product(row.Product, row.category_name) for row in result.all()],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total / page_size),
    }


@router.get("/stats", response_model=ProductsStatsResponse)
async def get_products_stats(
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Catalog counts and total stock value."""
    result = await db.execute(
        select(Product.stock_current, Product.stock_min, Product.price).where(
            Product.organization_id == tenant.organization_id,
            Product.archived_at.is_(None),
        )
    )
    return summarize_products(result.all())


@router.get("/available-for-restock", response_model=list[RestockableProduct])
async def list_available_for_restock(
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Products with stock on hand, for the technician restock picker."""
    result = await db.execute(
        select(Product)
        .where(
            Product.organization_id == tenant.organization_id,
            Product.archived_at.is_(None),
            Product.stock_current > 0,
        )
        .order_by(Product.name)
    )
    return [
        {
            "product_id": p.product_id,
            "name": p.name,
            "sku": p.sku,
            "image_url": p.image_url,
            "stock_current": p.stock_current,
            "stock_max": p.stock_max,
        }
        for p in result.scalars().all()
    ]


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Get a single product by ID."""
    product = await catalog.get_product(db, tenant.organization_id, product_id)
    return await _with_category_name(db, product)


@router.post("/", response_model=ProductResponse, status_code=201)
async def create_product(
    product: ProductCreate,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Create a new product. A missing SKU is generated from the name."""
    db_product = await catalog.create_product(db, tenant.organization_id, **product.model_dump())
    return await _with_category_name(db, db_product)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: UUID,
    update: ProductUpdate,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Update a product. Stock levels change only through movements."""
    product = await catalog.update_product(
        db, tenant.organization_id, product_id, update.model_dump(exclude_unset=True)
    )
    return await _with_category_name(db, product)


@router.delete("/{product_id}", status_code=204)
async def delete_product(
    product_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Delete a product."""
    product = await catalog.get_product(db, tenant.organization_id, product_id)
    await db.delete(product)
    await db.commit()


@router.post("/{product_id}/archive", response_model=ProductResponse)
async def archive_product(
    product_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    product = await catalog.set_product_archived(db, tenant.organization_id, product_id, True)
    return await _with_category_name(db, product)


@router.post("/{product_id}/unarchive", response_model=ProductResponse)
async def unarchive_product(
    product_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    product = await catalog.set_product_archived(db, tenant.organization_id, product_id, False)
    return await _with_category_name(db, product)


@router.get("/{product_id}/movements", response_model=list[MovementResponse])
async def get_product_movements(
    product_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Latest movements of one product."""
    await catalog.get_product(db, tenant.organization_id, product_id)
    return await movements.get_product_movements(db, tenant.organization_id, product_id, limit)


@router.get("/{product_id}/movement-stats", response_model=list[MovementStatPoint])
async def get_product_movement_stats(
    product_id: UUID,
    months: int = Query(3, ge=1, le=24),
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Daily entries, exits and balance over the last months."""
    await catalog.get_product(db, tenant.organization_id, product_id)
    return await movements.get_product_movement_stats(db, tenant.organization_id, product_id, months)


async def _with_category_name(db: AsyncSession, product: Product) -> dict:
    category_name = None
    if product.category_id is not None:
        result = await db.execute(select(Category.name).where(Category.category_id == product.category_id))
        category_name = result.scalar_one_or_none()
    return _serialize_product(product, category_name)


def _serialize_product(product: Product, category_name: str | None) -> dict:
    return {
        "product_id": product.product_id,
        "organization_id": product.organization_id,
        "name": product.name,
        "sku": product.sku,
        "description": product.description,
        "image_url": product.image_url,
        "price": product.price,
        "stock_current": product.stock_current,
        "stock_min": product.stock_min,
        "stock_max": product.stock_max,
        "stock_score": stock_score(product.stock_current or 0, product.stock_max),
        "category_id": product.category_id,
        "category_name": category_name,
        "supplier_name": product.supplier_name,
        "is_perishable": product.is_perishable,
        "track_stock": product.track_stock,
        "archived_at": product.archived_at,
        "created_at": product.created_at,
        "updated_at": product.updated_at,
    }
