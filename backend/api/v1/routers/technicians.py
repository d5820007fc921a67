"""
Technicians Router — field technicians, their inventories and restocks.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import TenantContext, get_tenant, get_tenant_db
from core.errors import db_errors
from inventory import catalog, restock
from inventory import technicians as technician_service
from inventory.catalog import DUPLICATE_TECHNICIAN_MESSAGE

router = APIRouter(prefix="/api/v1/technicians", tags=["technicians"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class TechnicianCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    city: str | None = Field(None, max_length=100)


class TechnicianUpdate(BaseModel):
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    city: str | None = Field(None, max_length=100)


class InventoryLine(BaseModel):
    inventory_id: UUID
    product_id: UUID
    quantity: int
    assigned_at: datetime
    product_name: str
    product_sku: str
    product_image_url: str | None
    stock_max: int


class TechnicianResponse(BaseModel):
    technician_id: UUID
    organization_id: UUID
    first_name: str
    last_name: str
    email: str | None
    phone: str | None
    city: str | None
    archived_at: datetime | None
    created_at: datetime
    inventory: list[InventoryLine] = []
    inventory_count: int = 0
    last_restock_at: datetime | None = None


class HistoryResponse(BaseModel):
    history_id: UUID
    technician_id: UUID
    snapshot: dict
    created_at: datetime

    model_config = {"from_attributes": True}


class TechnicianMovementProduct(BaseModel):
    product_id: UUID
    name: str
    sku: str
    image_url: str | None


class TechnicianMovement(BaseModel):
    movement_id: UUID
    product_id: UUID
    quantity: int
    movement_type: str
    notes: str | None
    created_at: datetime
    product: TechnicianMovementProduct


class RestockLine(BaseModel):
    product_id: UUID
    quantity: int = Field(..., gt=0)


class RestockRequest(BaseModel):
    items: list[RestockLine] = Field(..., min_length=1)


class RestockResponse(BaseModel):
    success: bool
    items_count: int
    previous_items_count: int


class TechniciansStats(BaseModel):
    total_technicians: int
    empty_inventory: int
    total_items: int
    recent_restocks: int


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[TechnicianResponse])
async def list_technicians(
    include_archived: bool = False,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Technicians with inventory totals. Archived ones are hidden by default."""
    return await technician_service.list_technicians(db, tenant.organization_id, include_archived)


@router.get("/stats", response_model=TechniciansStats)
async def get_technicians_stats(
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    return await technician_service.get_technicians_stats(db, tenant.organization_id)


@router.get("/{technician_id}", response_model=TechnicianResponse)
async def get_technician(
    technician_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Technician with current inventory lines and last restock date."""
    return await technician_service.get_technician_detail(db, tenant.organization_id, technician_id)


@router.post("/", response_model=TechnicianResponse, status_code=201)
async def create_technician(
    technician: TechnicianCreate,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    created = await catalog.create_technician(db, tenant.organization_id, **technician.model_dump())
    return technician_service.serialize_technician(created, inventory=[], inventory_count=0, last_restock_at=None)


@router.patch("/{technician_id}", response_model=TechnicianResponse)
async def update_technician(
    technician_id: UUID,
    update: TechnicianUpdate,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    technician = await technician_service.get_technician(db, tenant.organization_id, technician_id)
    changes = catalog.drop_null_required(
        update.model_dump(exclude_unset=True), catalog.TECHNICIAN_NULLABLE_FIELDS
    )
    for field, value in changes.items():
        if field == "email" and value:
            value = value.lower()
        setattr(technician, field, value)

    async with db_errors(db, "la mise à jour du technicien", conflict_message=DUPLICATE_TECHNICIAN_MESSAGE):
        await db.commit()
    return await technician_service.get_technician_detail(db, tenant.organization_id, technician_id)


@router.delete("/{technician_id}", status_code=204)
async def delete_technician(
    technician_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Delete a technician along with their inventory and history."""
    technician = await technician_service.get_technician(db, tenant.organization_id, technician_id)
    await db.delete(technician)
    await db.commit()


@router.post("/{technician_id}/archive", response_model=TechnicianResponse)
async def archive_technician(
    technician_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    technician = await technician_service.get_technician(db, tenant.organization_id, technician_id)
    technician.archived_at = datetime.utcnow()
    await db.commit()
    return await technician_service.get_technician_detail(db, tenant.organization_id, technician_id)


@router.post("/{technician_id}/unarchive", response_model=TechnicianResponse)
async def unarchive_technician(
    technician_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    technician = await technician_service.get_technician(db, tenant.organization_id, technician_id)
    technician.archived_at = None
    await db.commit()
    return await technician_service.get_technician_detail(db, tenant.organization_id, technician_id)


@router.get("/{technician_id}/history", response_model=list[HistoryResponse])
async def get_technician_history(
    technician_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Inventory snapshots taken before each restock, newest first."""
    return await technician_service.get_inventory_history(db, tenant.organization_id, technician_id)


@router.get("/{technician_id}/movements", response_model=list[TechnicianMovement])
async def get_technician_movements(
    technician_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    return await technician_service.get_technician_movements(db, tenant.organization_id, technician_id)


@router.post("/{technician_id}/restock", response_model=RestockResponse)
async def restock_technician(
    technician_id: UUID,
    request: RestockRequest,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Replace the technician's inventory. All or nothing."""
    items = [restock.RestockItem(line.product_id, line.quantity) for line in request.items]
    return await restock.restock_technician(db, tenant.organization_id, technician_id, items)


@router.post("/{technician_id}/inventory", response_model=RestockResponse)
async def add_to_technician_inventory(
    technician_id: UUID,
    request: RestockRequest,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Add quantities on top of the technician's current inventory."""
    items = [restock.RestockItem(line.product_id, line.quantity) for line in request.items]
    return await restock.add_to_technician_inventory(db, tenant.organization_id, technician_id, items)
