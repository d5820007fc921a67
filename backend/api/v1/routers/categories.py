"""
Categories Router — hierarchical product categories.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import TenantContext, get_tenant, get_tenant_db
from db.models import Category
from inventory import catalog
from inventory.breakdown import CategoryTreeNode, build_category_tree

router = APIRouter(prefix="/api/v1/categories", tags=["categories"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: UUID | None = None


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    parent_id: UUID | None = None


class CategoryResponse(BaseModel):
    category_id: UUID
    organization_id: UUID
    name: str
    parent_id: UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class CategoryTreeResponse(BaseModel):
    category_id: UUID
    name: str
    parent_id: UUID | None
    children: list["CategoryTreeResponse"] = []

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[CategoryResponse])
async def list_categories(
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """All categories of the organization, ordered by name."""
    result = await db.execute(
        select(Category).where(Category.organization_id == tenant.organization_id).order_by(Category.name)
    )
    return result.scalars().all()


@router.get("/tree", response_model=list[CategoryTreeResponse])
async def get_category_tree(
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Categories nested under their parents; orphans appear at the root."""
    records = await catalog.load_category_records(db, tenant.organization_id)
    return [_serialize_tree(node) for node in build_category_tree(records)]


@router.get("/parents", response_model=list[CategoryResponse])
async def list_parent_categories(
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Top-level categories only."""
    result = await db.execute(
        select(Category)
        .where(Category.organization_id == tenant.organization_id, Category.parent_id.is_(None))
        .order_by(Category.name)
    )
    return result.scalars().all()


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    return await catalog.get_category(db, tenant.organization_id, category_id)


@router.get("/{category_id}/children", response_model=list[CategoryResponse])
async def list_child_categories(
    category_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Direct sub-categories of a category."""
    await catalog.get_category(db, tenant.organization_id, category_id)
    result = await db.execute(
        select(Category)
        .where(Category.organization_id == tenant.organization_id, Category.parent_id == category_id)
        .order_by(Category.name)
    )
    return result.scalars().all()


@router.post("/", response_model=CategoryResponse, status_code=201)
async def create_category(
    category: CategoryCreate,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    return await catalog.create_category(db, tenant.organization_id, category.name, category.parent_id)


@router.patch("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: UUID,
    update: CategoryUpdate,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Rename or move a category. Moving it under one of its descendants is rejected."""
    return await catalog.update_category(
        db, tenant.organization_id, category_id, update.model_dump(exclude_unset=True)
    )


@router.delete("/{category_id}", status_code=204)
async def delete_category(
    category_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Delete a category. Refused (409) while it has sub-categories."""
    await catalog.delete_category(db, tenant.organization_id, category_id)


def _serialize_tree(node: CategoryTreeNode) -> dict:
    return {
        "category_id": node.category_id,
        "name": node.name,
        "parent_id": node.parent_id,
        "children": [_serialize_tree(child) for child in node.children],
    }
