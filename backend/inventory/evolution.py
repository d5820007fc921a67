"""
Stock Evolution Reconstructor — Monthly Stock Time Series.

Only the current stock total is stored (products.stock_current); past totals
are rebuilt from the movement log. Starting from the known present value we
walk backward one calendar month at a time, undoing each month's movements:

    stock[m] = stock[m+1] - entries[m+1] + exits[m+1]

Only entry vs. non-entry matters here; the three exit subtypes are summed.
Reconstructed totals are not clamped and can go negative when the log and the
cached total disagree.
"""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError
from db.models import Category, Product, StockMovement
from inventory.breakdown import CategoryRecord, descendant_category_ids

logger = structlog.get_logger()

DEFAULT_MONTHS = 6


class MovementEvent(NamedTuple):
    quantity: int
    movement_type: str
    created_at: datetime


@dataclass
class MonthTotals:
    entries: int = 0
    exits: int = 0


@dataclass
class StockEvolutionPoint:
    date: str  # YYYY-MM
    total_stock: int
    entries: int
    exits: int


def month_key(moment: datetime) -> str:
    return f"{moment.year:04d}-{moment.month:02d}"


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def trailing_month_keys(months: int, today: datetime | None = None) -> list[str]:
    """Month keys for the trailing window, oldest first, ending with the current month."""
    today = today or datetime.utcnow()
    keys = []
    for offset in range(months - 1, -1, -1):
        year, month = _shift_month(today.year, today.month, -offset)
        keys.append(f"{year:04d}-{month:02d}")
    return keys


def window_start(months: int, today: datetime | None = None) -> datetime:
    """First day (midnight) of the month `months` months before the current one."""
    today = today or datetime.utcnow()
    year, month = _shift_month(today.year, today.month, -months)
    return datetime(year, month, 1)


def bucket_movements(movements: Iterable[MovementEvent]) -> dict[str, MonthTotals]:
    """Sum entries and exits per YYYY-MM month key."""
    buckets: dict[str, MonthTotals] = {}
    for movement in movements:
        totals = buckets.setdefault(month_key(movement.created_at), MonthTotals())
        if movement.movement_type == "entry":
            totals.entries += movement.quantity
        else:
            totals.exits += movement.quantity
    return buckets


def reconstruct_stock_evolution(
    current_total: int,
    movements: Iterable[MovementEvent],
    months: int = DEFAULT_MONTHS,
    today: datetime | None = None,
) -> list[StockEvolutionPoint]:
    """
    Rebuild one point per calendar month, oldest to newest.

    The current month carries `current_total`; each earlier month is derived
    from the month after it. Months without movements report zero entries and
    exits and inherit the neighbouring total unchanged.
    """
    if months < 1:
        raise ValueError("months must be >= 1")

    keys = trailing_month_keys(months, today)
    buckets = bucket_movements(movements)

    stock_by_month: dict[str, int] = {keys[-1]: current_total}
    for index in range(len(keys) - 2, -1, -1):
        following = keys[index + 1]
        totals = buckets.get(following, MonthTotals())
        stock_by_month[keys[index]] = stock_by_month[following] - totals.entries + totals.exits

    points = []
    for key in keys:
        totals = buckets.get(key, MonthTotals())
        points.append(
            StockEvolutionPoint(
                date=key,
                total_stock=stock_by_month[key],
                entries=totals.entries,
                exits=totals.exits,
            )
        )
    return points


# ─── Loaders ────────────────────────────────────────────────────────────────


async def _load_movements(
    db: AsyncSession,
    organization_id: uuid.UUID,
    since: datetime,
    product_ids: list[uuid.UUID] | None = None,
) -> list[MovementEvent]:
    query = select(
        StockMovement.quantity,
        StockMovement.movement_type,
        StockMovement.created_at,
    ).where(
        StockMovement.organization_id == organization_id,
        StockMovement.created_at >= since,
    )
    if product_ids is not None:
        if not product_ids:
            return []
        query = query.where(StockMovement.product_id.in_(product_ids))
    result = await db.execute(query.order_by(StockMovement.created_at.asc()))
    return [MovementEvent(row.quantity, row.movement_type, row.created_at) for row in result.all()]


async def get_global_stock_evolution(
    db: AsyncSession,
    organization_id: uuid.UUID,
    months: int = DEFAULT_MONTHS,
    today: datetime | None = None,
) -> list[StockEvolutionPoint]:
    """Whole-organization evolution, anchored on the sum of stock_current."""
    total_result = await db.execute(
        select(func.coalesce(func.sum(Product.stock_current), 0)).where(
            Product.organization_id == organization_id
        )
    )
    current_total = int(total_result.scalar_one() or 0)
    movements = await _load_movements(db, organization_id, window_start(months, today))
    return reconstruct_stock_evolution(current_total, movements, months, today)


async def get_product_stock_evolution(
    db: AsyncSession,
    organization_id: uuid.UUID,
    product_id: uuid.UUID,
    months: int = DEFAULT_MONTHS,
    today: datetime | None = None,
) -> list[StockEvolutionPoint]:
    result = await db.execute(
        select(Product.stock_current).where(
            Product.organization_id == organization_id,
            Product.product_id == product_id,
        )
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("Produit non trouvé")

    movements = await _load_movements(db, organization_id, window_start(months, today), [product_id])
    return reconstruct_stock_evolution(int(row.stock_current or 0), movements, months, today)


async def get_category_stock_evolution(
    db: AsyncSession,
    organization_id: uuid.UUID,
    category_id: uuid.UUID,
    months: int = DEFAULT_MONTHS,
    today: datetime | None = None,
) -> list[StockEvolutionPoint]:
    """Evolution over the products of a category and all of its descendants."""
    cat_result = await db.execute(
        select(Category.category_id, Category.name, Category.parent_id).where(
            Category.organization_id == organization_id
        )
    )
    categories = [CategoryRecord(row.category_id, row.name, row.parent_id) for row in cat_result.all()]
    if not any(c.category_id == category_id for c in categories):
        raise NotFoundError("Catégorie non trouvée")

    scope = descendant_category_ids(category_id, categories) | {category_id}
    prod_result = await db.execute(
        select(Product.product_id, Product.stock_current).where(
            Product.organization_id == organization_id,
            Product.category_id.in_(scope),
        )
    )
    rows = prod_result.all()
    current_total = sum(int(row.stock_current or 0) for row in rows)
    product_ids = [row.product_id for row in rows]

    movements = await _load_movements(db, organization_id, window_start(months, today), product_ids)
    logger.debug(
        "evolution.category",
        category_id=str(category_id),
        products=len(product_ids),
        movements=len(movements),
    )
    return reconstruct_stock_evolution(current_total, movements, months, today)
