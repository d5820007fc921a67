"""
Technician read models — detail with inventory, history, restock status and stats.
"""

import uuid
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Product, StockMovement, Technician, TechnicianInventory, TechnicianInventoryHistory
from inventory.metrics import stock_score
from inventory.movements import get_technician

DEFAULT_STOCK_MAX = 100
GOOD_FILL_SCORE = 50


async def _last_restocks(db: AsyncSession, organization_id: uuid.UUID) -> dict[uuid.UUID, datetime]:
    result = await db.execute(
        select(TechnicianInventoryHistory.technician_id, func.max(TechnicianInventoryHistory.created_at))
        .where(TechnicianInventoryHistory.organization_id == organization_id)
        .group_by(TechnicianInventoryHistory.technician_id)
    )
    return {row[0]: row[1] for row in result.all()}


async def list_technicians(
    db: AsyncSession, organization_id: uuid.UUID, include_archived: bool = False
) -> list[dict]:
    """Technicians ordered by last name, with inventory totals and last restock."""
    query = select(Technician).where(Technician.organization_id == organization_id)
    if not include_archived:
        query = query.where(Technician.archived_at.is_(None))
    result = await db.execute(query.order_by(Technician.last_name, Technician.first_name))
    technicians = result.scalars().all()

    counts_result = await db.execute(
        select(TechnicianInventory.technician_id, func.coalesce(func.sum(TechnicianInventory.quantity), 0))
        .where(TechnicianInventory.organization_id == organization_id)
        .group_by(TechnicianInventory.technician_id)
    )
    counts = {row[0]: int(row[1]) for row in counts_result.all()}
    last_restocks = await _last_restocks(db, organization_id)

    return [
        serialize_technician(
            t,
            inventory=[],
            inventory_count=counts.get(t.technician_id, 0),
            last_restock_at=last_restocks.get(t.technician_id),
        )
        for t in technicians
    ]


async def get_technician_detail(db: AsyncSession, organization_id: uuid.UUID, technician_id: uuid.UUID) -> dict:
    technician = await get_technician(db, organization_id, technician_id)

    result = await db.execute(
        select(TechnicianInventory, Product)
        .join(Product, Product.product_id == TechnicianInventory.product_id)
        .where(TechnicianInventory.technician_id == technician_id)
        .order_by(Product.name)
    )
    inventory = [
        {
            "inventory_id": row.TechnicianInventory.inventory_id,
            "product_id": row.Product.product_id,
            "quantity": row.TechnicianInventory.quantity,
            "assigned_at": row.TechnicianInventory.assigned_at,
            "product_name": row.Product.name,
            "product_sku": row.Product.sku,
            "product_image_url": row.Product.image_url,
            "stock_max": row.Product.stock_max,
        }
        for row in result.all()
    ]

    last_result = await db.execute(
        select(func.max(TechnicianInventoryHistory.created_at)).where(
            TechnicianInventoryHistory.technician_id == technician_id
        )
    )
    return serialize_technician(
        technician,
        inventory=inventory,
        inventory_count=sum(line["quantity"] for line in inventory),
        last_restock_at=last_result.scalar_one_or_none(),
    )


def serialize_technician(
    technician: Technician,
    inventory: list[dict],
    inventory_count: int,
    last_restock_at: datetime | None,
) -> dict:
    return {
        "technician_id": technician.technician_id,
        "organization_id": technician.organization_id,
        "first_name": technician.first_name,
        "last_name": technician.last_name,
        "email": technician.email,
        "phone": technician.phone,
        "city": technician.city,
        "archived_at": technician.archived_at,
        "created_at": technician.created_at,
        "inventory": inventory,
        "inventory_count": inventory_count,
        "last_restock_at": last_restock_at,
    }


async def get_inventory_history(
    db: AsyncSession, organization_id: uuid.UUID, technician_id: uuid.UUID
) -> list[TechnicianInventoryHistory]:
    await get_technician(db, organization_id, technician_id)
    result = await db.execute(
        select(TechnicianInventoryHistory)
        .where(TechnicianInventoryHistory.technician_id == technician_id)
        .order_by(TechnicianInventoryHistory.created_at.desc())
    )
    return list(result.scalars().all())


async def get_technician_movements(
    db: AsyncSession, organization_id: uuid.UUID, technician_id: uuid.UUID
) -> list[dict]:
    """Stock handed to this technician, newest first."""
    await get_technician(db, organization_id, technician_id)
    result = await db.execute(
        select(StockMovement, Product.name, Product.sku, Product.image_url)
        .join(Product, Product.product_id == StockMovement.product_id)
        .where(
            StockMovement.technician_id == technician_id,
            StockMovement.movement_type == "exit_technician",
        )
        .order_by(StockMovement.created_at.desc())
    )
    return [
        {
            "movement_id": row.StockMovement.movement_id,
            "product_id": row.StockMovement.product_id,
            "quantity": row.StockMovement.quantity,
            "movement_type": row.StockMovement.movement_type,
            "notes": row.StockMovement.notes,
            "created_at": row.StockMovement.created_at,
            "product": {
                "product_id": row.StockMovement.product_id,
                "name": row.name,
                "sku": row.sku,
                "image_url": row.image_url,
            },
        }
        for row in result.all()
    ]


async def get_technicians_stats(
    db: AsyncSession, organization_id: uuid.UUID, now: datetime | None = None
) -> dict:
    """Team overview: size, empty inventories, items held, technicians restocked this week."""
    now = now or datetime.utcnow()
    ids_result = await db.execute(
        select(Technician.technician_id).where(Technician.organization_id == organization_id)
    )
    technician_ids = [row[0] for row in ids_result.all()]
    if not technician_ids:
        return {"total_technicians": 0, "empty_inventory": 0, "total_items": 0, "recent_restocks": 0}

    inv_result = await db.execute(
        select(TechnicianInventory.technician_id, TechnicianInventory.quantity).where(
            TechnicianInventory.technician_id.in_(technician_ids)
        )
    )
    per_technician: dict[uuid.UUID, int] = {}
    total_items = 0
    for row in inv_result.all():
        per_technician[row.technician_id] = per_technician.get(row.technician_id, 0) + row.quantity
        total_items += row.quantity

    restocked_result = await db.execute(
        select(func.count(func.distinct(StockMovement.technician_id))).where(
            StockMovement.movement_type == "exit_technician",
            StockMovement.technician_id.in_(technician_ids),
            StockMovement.created_at >= now - timedelta(days=7),
        )
    )
    return {
        "total_technicians": len(technician_ids),
        "empty_inventory": sum(1 for tid in technician_ids if not per_technician.get(tid)),
        "total_items": total_items,
        "recent_restocks": int(restocked_result.scalar_one() or 0),
    }


async def get_technicians_needing_restock(
    db: AsyncSession,
    organization_id: uuid.UUID,
    days_threshold: int = 7,
    now: datetime | None = None,
) -> list[dict]:
    """
    Technicians never restocked or last restocked more than `days_threshold`
    days ago, longest wait first. Never-restocked technicians report
    days_threshold + 1 days.
    """
    now = now or datetime.utcnow()
    tech_result = await db.execute(
        select(Technician.technician_id, Technician.first_name, Technician.last_name).where(
            Technician.organization_id == organization_id
        )
    )
    lines_result = await db.execute(
        select(TechnicianInventory.technician_id, func.count())
        .where(TechnicianInventory.organization_id == organization_id)
        .group_by(TechnicianInventory.technician_id)
    )
    line_counts = {row[0]: int(row[1]) for row in lines_result.all()}
    last_restocks = await _last_restocks(db, organization_id)

    needing = []
    for row in tech_result.all():
        last_restock = last_restocks.get(row.technician_id)
        if last_restock is None:
            days_since = days_threshold + 1
        else:
            days_since = (now - last_restock).days
        if last_restock is None or days_since > days_threshold:
            needing.append(
                {
                    "technician_id": row.technician_id,
                    "first_name": row.first_name,
                    "last_name": row.last_name,
                    "last_restock": last_restock,
                    "days_since_restock": days_since,
                    "inventory_count": line_counts.get(row.technician_id, 0),
                }
            )
    needing.sort(key=lambda t: t["days_since_restock"], reverse=True)
    return needing


async def get_dashboard_technician_stats(
    db: AsyncSession,
    organization_id: uuid.UUID,
    days_threshold: int = 7,
    now: datetime | None = None,
) -> dict:
    """
    Split technicians by average inventory fill. Each line scores
    round(quantity / stock_max * 100) with stock_max defaulting to 100; an
    average of 50 or more is good stock, an empty inventory counts as low.
    """
    tech_result = await db.execute(
        select(Technician.technician_id).where(Technician.organization_id == organization_id)
    )
    technician_ids = [row[0] for row in tech_result.all()]

    lines_result = await db.execute(
        select(TechnicianInventory.technician_id, TechnicianInventory.quantity, Product.stock_max)
        .join(Product, Product.product_id == TechnicianInventory.product_id)
        .where(TechnicianInventory.organization_id == organization_id)
    )
    scores: dict[uuid.UUID, list[int]] = {}
    for row in lines_result.all():
        scores.setdefault(row.technician_id, []).append(
            stock_score(row.quantity, row.stock_max or DEFAULT_STOCK_MAX)
        )

    with_good_stock = with_low_stock = 0
    for technician_id in technician_ids:
        line_scores = scores.get(technician_id)
        if not line_scores:
            with_low_stock += 1
        elif sum(line_scores) / len(line_scores) >= GOOD_FILL_SCORE:
            with_good_stock += 1
        else:
            with_low_stock += 1

    needing = await get_technicians_needing_restock(db, organization_id, days_threshold, now)
    return {
        "total": len(technician_ids),
        "with_good_stock": with_good_stock,
        "with_low_stock": with_low_stock,
        "needing_restock": len(needing),
    }
