"""
Stock Movements — the append-only stock event log.

Every change of products.stock_current goes through here so the cached total
and the movement log stay in sync: the movement insert and the stock update
share one transaction, with the product row locked (FOR UPDATE on PostgreSQL).

Movement types:
  entry            stock received (+)
  exit_technician  handed to a technician, also credited to their inventory (-)
  exit_anonymous   counter sale / unassigned exit (-)
  exit_loss        breakage, loss (-)
"""

import math
import uuid
from datetime import datetime, timedelta

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import InsufficientStockError, NotFoundError, ValidationError, db_errors
from db.models import EXIT_TYPES, MOVEMENT_TYPES, Product, StockMovement, Technician, TechnicianInventory

logger = structlog.get_logger()

MOVEMENT_TYPE_LABELS = {
    "entry": "Entrée",
    "exit_technician": "Sortie technicien",
    "exit_anonymous": "Sortie anonyme",
    "exit_loss": "Perte/Casse",
}


def insufficient_stock_message(product_name: str, available: int, requested: int) -> str:
    return f'Stock insuffisant pour "{product_name}". Disponible: {available}, demandé: {requested}'


async def lock_product(db: AsyncSession, organization_id: uuid.UUID, product_id: uuid.UUID) -> Product:
    result = await db.execute(
        select(Product)
        .where(Product.organization_id == organization_id, Product.product_id == product_id)
        .with_for_update()
    )
    product = result.scalar_one_or_none()
    if product is None:
        raise NotFoundError("Produit non trouvé")
    return product


async def get_technician(db: AsyncSession, organization_id: uuid.UUID, technician_id: uuid.UUID) -> Technician:
    result = await db.execute(
        select(Technician).where(
            Technician.organization_id == organization_id,
            Technician.technician_id == technician_id,
        )
    )
    technician = result.scalar_one_or_none()
    if technician is None:
        raise NotFoundError("Technicien non trouvé")
    return technician


async def credit_technician_inventory(
    db: AsyncSession,
    organization_id: uuid.UUID,
    technician_id: uuid.UUID,
    product_id: uuid.UUID,
    quantity: int,
) -> TechnicianInventory:
    """Add quantity to the technician's line for this product, creating it if needed."""
    result = await db.execute(
        select(TechnicianInventory).where(
            TechnicianInventory.technician_id == technician_id,
            TechnicianInventory.product_id == product_id,
        )
    )
    line = result.scalar_one_or_none()
    if line is None:
        line = TechnicianInventory(
            organization_id=organization_id,
            technician_id=technician_id,
            product_id=product_id,
            quantity=quantity,
        )
        db.add(line)
    else:
        line.quantity += quantity
    return line


# ─── Writes ─────────────────────────────────────────────────────────────────


async def create_entry(
    db: AsyncSession,
    organization_id: uuid.UUID,
    product_id: uuid.UUID,
    quantity: int,
    notes: str | None = None,
) -> StockMovement:
    """Record received stock and increment stock_current."""
    if quantity <= 0:
        raise ValidationError("La quantité doit être positive")

    async with db_errors(db, "la création du mouvement"):
        product = await lock_product(db, organization_id, product_id)
        movement = StockMovement(
            organization_id=organization_id,
            product_id=product_id,
            quantity=quantity,
            movement_type="entry",
            notes=notes or None,
        )
        db.add(movement)
        product.stock_current = (product.stock_current or 0) + quantity
        product.updated_at = datetime.utcnow()
        await db.commit()

    await db.refresh(movement)
    logger.info(
        "movement.entry_created",
        product_id=str(product_id),
        quantity=quantity,
        stock_current=product.stock_current,
    )
    return movement


async def create_exit(
    db: AsyncSession,
    organization_id: uuid.UUID,
    product_id: uuid.UUID,
    quantity: int,
    movement_type: str,
    technician_id: uuid.UUID | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Record an exit and decrement stock_current.

    exit_technician requires a technician and credits their inventory.
    The requested quantity can never exceed the available stock.
    """
    if quantity <= 0:
        raise ValidationError("La quantité doit être positive")
    if movement_type not in EXIT_TYPES:
        raise ValidationError(f"Type de sortie invalide: {movement_type}")
    if movement_type == "exit_technician" and not technician_id:
        raise ValidationError("Un technicien doit être sélectionné pour ce type de sortie")

    async with db_errors(db, "la création du mouvement"):
        product = await lock_product(db, organization_id, product_id)
        available = product.stock_current or 0
        if available < quantity:
            raise InsufficientStockError(insufficient_stock_message(product.name, available, quantity))

        if movement_type == "exit_technician":
            await get_technician(db, organization_id, technician_id)
        else:
            technician_id = None

        movement = StockMovement(
            organization_id=organization_id,
            product_id=product_id,
            quantity=quantity,
            movement_type=movement_type,
            technician_id=technician_id,
            notes=notes or None,
        )
        db.add(movement)
        product.stock_current = available - quantity
        product.updated_at = datetime.utcnow()

        if technician_id is not None:
            await credit_technician_inventory(db, organization_id, technician_id, product_id, quantity)

        await db.commit()

    await db.refresh(movement)
    logger.info(
        "movement.exit_created",
        product_id=str(product_id),
        movement_type=movement_type,
        quantity=quantity,
        stock_current=product.stock_current,
    )
    return movement


# ─── Reads ──────────────────────────────────────────────────────────────────


def _movement_query():
    return (
        select(
            StockMovement,
            Product.name.label("product_name"),
            Product.sku.label("product_sku"),
            Product.image_url.label("product_image_url"),
            Product.price.label("product_price"),
            Technician.first_name.label("technician_first_name"),
            Technician.last_name.label("technician_last_name"),
        )
        .join(Product, Product.product_id == StockMovement.product_id)
        .outerjoin(Technician, Technician.technician_id == StockMovement.technician_id)
    )


def serialize_movement(row) -> dict:
    movement = row.StockMovement
    technician = None
    if movement.technician_id is not None and row.technician_first_name is not None:
        technician = {
            "technician_id": movement.technician_id,
            "first_name": row.technician_first_name,
            "last_name": row.technician_last_name,
        }
    return {
        "movement_id": movement.movement_id,
        "product_id": movement.product_id,
        "quantity": movement.quantity,
        "movement_type": movement.movement_type,
        "technician_id": movement.technician_id,
        "notes": movement.notes,
        "created_at": movement.created_at,
        "product": {
            "product_id": movement.product_id,
            "name": row.product_name,
            "sku": row.product_sku,
            "image_url": row.product_image_url,
            "price": row.product_price,
        },
        "technician": technician,
    }


async def list_movements(
    db: AsyncSession,
    organization_id: uuid.UUID,
    product_id: uuid.UUID | None = None,
    technician_id: uuid.UUID | None = None,
    movement_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    page_size: int = 20,
) -> dict:
    """Filtered, paginated movement log, newest first."""
    if movement_type is not None and movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Type de mouvement invalide: {movement_type}")

    conditions = [StockMovement.organization_id == organization_id]
    if product_id:
        conditions.append(StockMovement.product_id == product_id)
    if technician_id:
        conditions.append(StockMovement.technician_id == technician_id)
    if movement_type:
        conditions.append(StockMovement.movement_type == movement_type)
    if start_date:
        conditions.append(StockMovement.created_at >= start_date)
    if end_date:
        conditions.append(StockMovement.created_at <= end_date)

    count_result = await db.execute(select(func.count()).select_from(StockMovement).where(*conditions))
    total = int(count_result.scalar_one() or 0)

    result = await db.execute(
        _movement_query()
        .where(*conditions)
        .order_by(StockMovement.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return {
        "items": [serialize_movement(row) for row in result.all()],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total / page_size) if page_size else 0,
    }


async def get_product_movements(
    db: AsyncSession,
    organization_id: uuid.UUID,
    product_id: uuid.UUID,
    limit: int = 50,
) -> list[dict]:
    result = await db.execute(
        _movement_query()
        .where(
            StockMovement.organization_id == organization_id,
            StockMovement.product_id == product_id,
        )
        .order_by(StockMovement.created_at.desc())
        .limit(limit)
    )
    return [serialize_movement(row) for row in result.all()]


async def get_recent_movements(db: AsyncSession, organization_id: uuid.UUID, limit: int = 10) -> list[dict]:
    result = await db.execute(
        _movement_query()
        .where(StockMovement.organization_id == organization_id)
        .order_by(StockMovement.created_at.desc())
        .limit(limit)
    )
    return [serialize_movement(row) for row in result.all()]


async def get_product_movement_stats(
    db: AsyncSession,
    organization_id: uuid.UUID,
    product_id: uuid.UUID,
    months: int = 3,
    now: datetime | None = None,
) -> list[dict]:
    """Daily entries/exits/balance for one product over the last `months` months."""
    now = now or datetime.utcnow()
    since = now - timedelta(days=30 * months)
    result = await db.execute(
        select(StockMovement.quantity, StockMovement.movement_type, StockMovement.created_at)
        .where(
            StockMovement.organization_id == organization_id,
            StockMovement.product_id == product_id,
            StockMovement.created_at >= since,
        )
        .order_by(StockMovement.created_at.asc())
    )

    daily: dict[str, dict[str, int]] = {}
    for row in result.all():
        day = daily.setdefault(row.created_at.date().isoformat(), {"entries": 0, "exits": 0})
        if row.movement_type == "entry":
            day["entries"] += row.quantity
        else:
            day["exits"] += row.quantity

    return [
        {
            "date": day,
            "entries": stats["entries"],
            "exits": stats["exits"],
            "balance": stats["entries"] - stats["exits"],
        }
        for day, stats in sorted(daily.items())
    ]


async def sum_movements_since(db: AsyncSession, organization_id: uuid.UUID, since: datetime) -> dict:
    """Entries, exits and movement count since a point in time."""
    result = await db.execute(
        select(StockMovement.quantity, StockMovement.movement_type).where(
            StockMovement.organization_id == organization_id,
            StockMovement.created_at >= since,
        )
    )
    entries = exits = count = 0
    for row in result.all():
        count += 1
        if row.movement_type == "entry":
            entries += row.quantity
        else:
            exits += row.quantity
    return {"entries": entries, "exits": exits, "count": count}


async def get_movements_summary(
    db: AsyncSession,
    organization_id: uuid.UUID,
    days: int = 30,
    now: datetime | None = None,
) -> dict:
    now = now or datetime.utcnow()
    totals = await sum_movements_since(db, organization_id, now - timedelta(days=days))
    return {
        "total_entries": totals["entries"],
        "total_exits": totals["exits"],
        "recent_movements": totals["count"],
    }
