"""
Dashboard Router — aggregated stock metrics, evolution and breakdown.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import TenantContext, get_tenant, get_tenant_db
from api.v1.routers.movements import MovementResponse
from core.config import get_settings
from db.models import Product
from inventory import evolution, movements
from inventory import technicians as technician_service
from inventory.breakdown import (
    BreakdownItem,
    ProductRecord,
    build_category_breakdown,
    build_global_breakdown,
)
from inventory.catalog import get_category, load_category_records
from inventory.metrics import calculate_stock_health

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])
settings = get_settings()


# ─── Schemas ────────────────────────────────────────────────────────────────


class DashboardStats(BaseModel):
    total_stock: int
    total_value: float
    monthly_entries: int
    monthly_exits: int
    total_products: int
    low_stock_count: int


class ProductNeedingRestock(BaseModel):
    product_id: UUID
    name: str
    sku: str
    image_url: str | None
    stock_current: int
    stock_min: int
    stock_max: int
    score: int


class TechnicianNeedingRestock(BaseModel):
    technician_id: UUID
    first_name: str
    last_name: str
    last_restock: datetime | None
    days_since_restock: int
    inventory_count: int


class TechnicianDashboardStats(BaseModel):
    total: int
    with_good_stock: int
    with_low_stock: int
    needing_restock: int


class StockEvolutionPoint(BaseModel):
    date: str
    total_stock: int
    entries: int
    exits: int


class BreakdownNode(BaseModel):
    id: UUID
    name: str
    type: str
    stock: int
    depth: int
    children: list["BreakdownNode"] | None = None
    uncategorized: bool = False


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """
    Headline numbers: stock on hand and its value, this month's entries and
    exits, and products whose stock health is below the low-score threshold.
    """
    result = await db.execute(
        select(Product.stock_current, Product.stock_min, Product.stock_max, Product.price).where(
            Product.organization_id == tenant.organization_id
        )
    )
    rows = result.all()

    total_stock = 0
    total_value = 0.0
    low_stock_count = 0
    for row in rows:
        current = row.stock_current or 0
        total_stock += current
        total_value += current * (row.price or 0)
        if calculate_stock_health(row.stock_current, row.stock_min, row.stock_max) < settings.low_stock_score_threshold:
            low_stock_count += 1

    now = datetime.utcnow()
    month_totals = await movements.sum_movements_since(db, tenant.organization_id, datetime(now.year, now.month, 1))

    return {
        "total_stock": total_stock,
        "total_value": total_value,
        "monthly_entries": month_totals["entries"],
        "monthly_exits": month_totals["exits"],
        "total_products": len(rows),
        "low_stock_count": low_stock_count,
    }


@router.get("/restock/products", response_model=list[ProductNeedingRestock])
async def get_products_needing_restock(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Products below the low-score threshold, worst first."""
    result = await db.execute(
        select(Product)
        .where(Product.organization_id == tenant.organization_id)
        .order_by(Product.stock_current.asc())
    )
    scored = []
    for product in result.scalars().all():
        score = calculate_stock_health(product.stock_current, product.stock_min, product.stock_max)
        if score < settings.low_stock_score_threshold:
            scored.append(
                {
                    "product_id": product.product_id,
                    "name": product.name,
                    "sku": product.sku,
                    "image_url": product.image_url,
                    "stock_current": product.stock_current,
                    "stock_min": product.stock_min,
                    "stock_max": product.stock_max,
                    "score": score,
                }
            )
    scored.sort(key=lambda p: p["score"])
    return scored[:limit]


@router.get("/restock/technicians", response_model=list[TechnicianNeedingRestock])
async def get_technicians_needing_restock(
    days: int | None = Query(None, ge=0, le=365),
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Technicians not restocked for more than `days` days (default from settings)."""
    threshold = settings.restock_days_threshold if days is None else days
    return await technician_service.get_technicians_needing_restock(db, tenant.organization_id, threshold)


@router.get("/technicians/stats", response_model=TechnicianDashboardStats)
async def get_technician_stats(
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    return await technician_service.get_dashboard_technician_stats(
        db, tenant.organization_id, settings.restock_days_threshold
    )


@router.get("/recent-movements", response_model=list[MovementResponse])
async def get_recent_movements(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    return await movements.get_recent_movements(db, tenant.organization_id, limit)


@router.get("/evolution", response_model=list[StockEvolutionPoint])
async def get_global_evolution(
    months: int | None = Query(None, ge=1, le=36),
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Monthly total stock for the whole organization, oldest month first."""
    return await evolution.get_global_stock_evolution(
        db, tenant.organization_id, months or settings.evolution_default_months
    )


@router.get("/evolution/products/{product_id}", response_model=list[StockEvolutionPoint])
async def get_product_evolution(
    product_id: UUID,
    months: int | None = Query(None, ge=1, le=36),
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    return await evolution.get_product_stock_evolution(
        db, tenant.organization_id, product_id, months or settings.evolution_default_months
    )


@router.get("/evolution/categories/{category_id}", response_model=list[StockEvolutionPoint])
async def get_category_evolution(
    category_id: UUID,
    months: int | None = Query(None, ge=1, le=36),
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Monthly stock of a category, sub-categories included."""
    return await evolution.get_category_stock_evolution(
        db, tenant.organization_id, category_id, months or settings.evolution_default_months
    )


@router.get("/breakdown", response_model=list[BreakdownNode])
async def get_global_breakdown(
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Root categories with recursive stock totals, then uncategorized products."""
    categories = await load_category_records(db, tenant.organization_id)
    products = await _load_product_records(db, tenant.organization_id)
    return [_serialize_item(item) for item in build_global_breakdown(categories, products)]


@router.get("/breakdown/categories/{category_id}", response_model=list[BreakdownNode])
async def get_category_breakdown(
    category_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Drill-down into one category: sub-categories, then direct products."""
    await get_category(db, tenant.organization_id, category_id)
    categories = await load_category_records(db, tenant.organization_id)
    products = await _load_product_records(db, tenant.organization_id)
    return [_serialize_item(item) for item in build_category_breakdown(category_id, categories, products)]


async def _load_product_records(db: AsyncSession, organization_id: UUID) -> list[ProductRecord]:
    result = await db.execute(
        select(Product.product_id, Product.name, Product.category_id, Product.stock_current)
        .where(Product.organization_id == organization_id)
        .order_by(Product.name)
    )
    return [ProductRecord(row.product_id, row.name, row.category_id, row.stock_current) for row in result.all()]


def _serialize_item(item: BreakdownItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "type": item.type,
        "stock": item.stock,
        "depth": item.depth,
        "children": [_serialize_item(child) for child in item.children] if item.children else None,
        "uncategorized": item.uncategorized,
    }
