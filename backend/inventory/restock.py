"""
Technician Restock — replace or top up a technician's personal inventory.

Both operations run in a single transaction:
  1. snapshot the current inventory into technician_inventory_history
  2. write the new inventory lines
  3. log one exit_technician movement per product
  4. decrement products.stock_current

If any product lacks stock the whole transaction is rolled back.
"""

import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import NamedTuple

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import InsufficientStockError, NotFoundError, ValidationError, db_errors
from db.models import Product, StockMovement, Technician, TechnicianInventory, TechnicianInventoryHistory

logger = structlog.get_logger()

INSUFFICIENT_STOCK_MESSAGE = "Stock insuffisant pour un ou plusieurs produits"


class RestockItem(NamedTuple):
    product_id: uuid.UUID
    quantity: int


def merge_items(items: Iterable[RestockItem]) -> dict[uuid.UUID, int]:
    """Sum quantities per product, dropping non-positive lines."""
    merged: dict[uuid.UUID, int] = {}
    for item in items:
        if item.quantity is None or item.quantity <= 0:
            continue
        merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
    return merged


async def _lock_technician(db: AsyncSession, organization_id: uuid.UUID, technician_id: uuid.UUID) -> Technician:
    result = await db.execute(
        select(Technician)
        .where(Technician.organization_id == organization_id, Technician.technician_id == technician_id)
        .with_for_update()
    )
    technician = result.scalar_one_or_none()
    if technician is None:
        raise NotFoundError("Technicien non trouvé")
    return technician


async def _lock_products(
    db: AsyncSession, organization_id: uuid.UUID, quantities: dict[uuid.UUID, int]
) -> dict[uuid.UUID, Product]:
    result = await db.execute(
        select(Product)
        .where(Product.organization_id == organization_id, Product.product_id.in_(list(quantities)))
        .with_for_update()
    )
    products = {p.product_id: p for p in result.scalars().all()}
    if len(products) != len(quantities):
        raise NotFoundError("Produit non trouvé")
    for product_id, quantity in quantities.items():
        if (products[product_id].stock_current or 0) < quantity:
            raise InsufficientStockError(INSUFFICIENT_STOCK_MESSAGE)
    return products


async def snapshot_inventory(
    db: AsyncSession, organization_id: uuid.UUID, technician_id: uuid.UUID
) -> tuple[list[TechnicianInventory], TechnicianInventoryHistory]:
    """Copy the technician's current lines into a history row. Returns (lines, history)."""
    result = await db.execute(
        select(TechnicianInventory, Product.name, Product.sku)
        .join(Product, Product.product_id == TechnicianInventory.product_id)
        .where(TechnicianInventory.technician_id == technician_id)
    )
    rows = result.all()
    items = [
        {
            "product_id": str(row.TechnicianInventory.product_id),
            "product_name": row.name,
            "product_sku": row.sku,
            "quantity": row.TechnicianInventory.quantity,
        }
        for row in rows
    ]
    history = TechnicianInventoryHistory(
        organization_id=organization_id,
        technician_id=technician_id,
        snapshot={"items": items, "total_items": sum(i["quantity"] for i in items)},
    )
    db.add(history)
    return [row.TechnicianInventory for row in rows], history


def _exit_movements(
    organization_id: uuid.UUID,
    technician_id: uuid.UUID,
    quantities: dict[uuid.UUID, int],
    products: dict[uuid.UUID, Product],
    notes: str,
) -> list[StockMovement]:
    now = datetime.utcnow()
    movements = []
    for product_id, quantity in quantities.items():
        product = products[product_id]
        product.stock_current = (product.stock_current or 0) - quantity
        product.updated_at = now
        movements.append(
            StockMovement(
                organization_id=organization_id,
                product_id=product_id,
                quantity=quantity,
                movement_type="exit_technician",
                technician_id=technician_id,
                notes=notes,
            )
        )
    return movements


async def restock_technician(
    db: AsyncSession,
    organization_id: uuid.UUID,
    technician_id: uuid.UUID,
    items: Iterable[RestockItem],
) -> dict:
    """Replace the technician's inventory with `items`."""
    quantities = merge_items(items)
    if not quantities:
        raise ValidationError("Aucun produit sélectionné")

    async with db_errors(db, "le réassort du technicien"):
        await _lock_technician(db, organization_id, technician_id)
        products = await _lock_products(db, organization_id, quantities)

        previous, _ = await snapshot_inventory(db, organization_id, technician_id)
        await db.execute(delete(TechnicianInventory).where(TechnicianInventory.technician_id == technician_id))

        for product_id, quantity in quantities.items():
            db.add(
                TechnicianInventory(
                    organization_id=organization_id,
                    technician_id=technician_id,
                    product_id=product_id,
                    quantity=quantity,
                )
            )
        db.add_all(_exit_movements(organization_id, technician_id, quantities, products, "Réassort technicien"))
        await db.commit()

    logger.info(
        "restock.completed",
        technician_id=str(technician_id),
        items_count=len(quantities),
        previous_items_count=len(previous),
    )
    return {"success": True, "items_count": len(quantities), "previous_items_count": len(previous)}


async def add_to_technician_inventory(
    db: AsyncSession,
    organization_id: uuid.UUID,
    technician_id: uuid.UUID,
    items: Iterable[RestockItem],
) -> dict:
    """Top up the technician's inventory, keeping existing lines."""
    quantities = merge_items(items)
    if not quantities:
        raise ValidationError("Aucun produit sélectionné")

    async with db_errors(db, "l'ajout à l'inventaire du technicien"):
        await _lock_technician(db, organization_id, technician_id)
        products = await _lock_products(db, organization_id, quantities)

        previous, _ = await snapshot_inventory(db, organization_id, technician_id)
        existing = {line.product_id: line for line in previous}
        for product_id, quantity in quantities.items():
            line = existing.get(product_id)
            if line is None:
                db.add(
                    TechnicianInventory(
                        organization_id=organization_id,
                        technician_id=technician_id,
                        product_id=product_id,
                        quantity=quantity,
                    )
                )
            else:
                line.quantity += quantity
        db.add_all(
            _exit_movements(organization_id, technician_id, quantities, products, "Ajout inventaire technicien")
        )
        await db.commit()

    logger.info("restock.items_added", technician_id=str(technician_id), items_count=len(quantities))
    return {"success": True, "items_count": len(quantities), "previous_items_count": len(previous)}
