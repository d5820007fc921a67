"""
Stock Movements Router — entries, exits and the movement log.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import TenantContext, get_tenant, get_tenant_db
from inventory import movements

router = APIRouter(prefix="/api/v1/movements", tags=["movements"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class EntryCreate(BaseModel):
    product_id: UUID
    quantity: int
    notes: str | None = None


class ExitCreate(BaseModel):
    product_id: UUID
    quantity: int
    movement_type: Literal["exit_technician", "exit_anonymous", "exit_loss"]
    technician_id: UUID | None = None
    notes: str | None = None


class MovementProduct(BaseModel):
    product_id: UUID
    name: str
    sku: str
    image_url: str | None = None
    price: float | None = None


class MovementTechnician(BaseModel):
    technician_id: UUID
    first_name: str
    last_name: str


class MovementResponse(BaseModel):
    movement_id: UUID
    product_id: UUID
    quantity: int
    movement_type: str
    technician_id: UUID | None
    notes: str | None
    created_at: datetime
    product: MovementProduct | None = None
    technician: MovementTechnician | None = None


class CreatedMovementResponse(BaseModel):
    movement_id: UUID
    product_id: UUID
    quantity: int
    movement_type: str
    technician_id: UUID | None
    notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class MovementListResponse(BaseModel):
    items: list[MovementResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class MovementsSummary(BaseModel):
    total_entries: int
    total_exits: int
    recent_movements: int


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=MovementListResponse)
async def list_movements(
    product_id: UUID | None = None,
    technician_id: UUID | None = None,
    movement_type: Literal["entry", "exit_technician", "exit_anonymous", "exit_loss"] | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Movement log, newest first."""
    return await movements.list_movements(
        db,
        tenant.organization_id,
        product_id=product_id,
        technician_id=technician_id,
        movement_type=movement_type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )


@router.get("/summary", response_model=MovementsSummary)
async def get_movements_summary(
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Entry and exit totals over the last `days` days."""
    return await movements.get_movements_summary(db, tenant.organization_id, days)


@router.post("/entry", response_model=CreatedMovementResponse, status_code=201)
async def create_entry(
    entry: EntryCreate,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Receive stock for a product."""
    return await movements.create_entry(db, tenant.organization_id, entry.product_id, entry.quantity, entry.notes)


@router.post("/exit", response_model=CreatedMovementResponse, status_code=201)
async def create_exit(
    exit_: ExitCreate,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Take stock out. exit_technician requires technician_id."""
    return await movements.create_exit(
        db,
        tenant.organization_id,
        exit_.product_id,
        exit_.quantity,
        exit_.movement_type,
        technician_id=exit_.technician_id,
        notes=exit_.notes,
    )
