"""
Derived Stock Metrics — scores, bands, trends and catalog aggregates.

Small formulas shared by the dashboard, the product list and technician views.
Rounding is half-up (0.5 → 1) everywhere so scores match what the web client
displays.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass

LOW_SCORE = 30
MEDIUM_SCORE = 60


def round_half_up(value: float, ndigits: int = 0) -> float:
    factor = 10**ndigits
    return math.floor(value * factor + 0.5) / factor


def stock_score(current: int, stock_max: int | None) -> int:
    """Percentage of stock_max currently held. 0 when stock_max <= 0."""
    if not stock_max or stock_max <= 0:
        return 0
    return int(round_half_up(current / stock_max * 100))


def inventory_percentage(quantity: int, stock_max: int | None) -> int:
    """Technician inventory fill, capped at 100."""
    return min(100, stock_score(quantity, stock_max))


def calculate_stock_health(current: int | None, stock_min: int | None, stock_max: int | None) -> int:
    """
    Min/max-aware stock health between 0 and 100.

      - current ≤ min                → 0   (critically low)
      - min < current ≤ max          → linear position between min and max
      - max < current < 2 × max      → falls from 100 back to 0
      - current ≥ 2 × max            → 0   (critical overstock)

    Invalid inputs (max ≤ 0, negative min or current) score 0.
    """
    current = current or 0
    stock_min = stock_min or 0
    stock_max = stock_max or 0
    if stock_max <= 0 or stock_min < 0 or current < 0:
        return 0

    if current <= stock_min:
        return 0

    if current <= stock_max:
        spread = stock_max - stock_min
        if spread == 0:
            return 100
        return int(round_half_up((current - stock_min) / spread * 100))

    if current >= stock_max * 2:
        return 0

    overstock_ratio = (current - stock_max) / stock_max
    return int(round_half_up(max(0.0, 100 - overstock_ratio * 100)))


def stock_score_band(score: int) -> str:
    if score < LOW_SCORE:
        return "red"
    if score < MEDIUM_SCORE:
        return "orange"
    return "green"


def stock_status_label(score: int) -> str:
    if score == 0:
        return "Critique"
    if score < LOW_SCORE:
        return "Bas"
    if score < MEDIUM_SCORE:
        return "Attention"
    if score < 90:
        return "Bon"
    return "Optimal"


@dataclass
class TrendResult:
    direction: str  # "up" | "down" | "stable"
    percentage: float


def compute_trend(current: float, previous: float) -> TrendResult:
    """Relative change from previous to current, one decimal of precision."""
    if previous == 0:
        if current == 0:
            return TrendResult("stable", 0)
        return TrendResult("up", 100)

    change = (current - previous) / abs(previous) * 100
    if abs(change) < 0.5:
        return TrendResult("stable", 0)

    return TrendResult("up" if change > 0 else "down", round_half_up(abs(change), 1))


@dataclass
class ProductsStats:
    total: int
    low_stock: int
    out_of_stock: int
    total_value: float


def summarize_products(rows: Iterable) -> ProductsStats:
    """
    Aggregate catalog rows exposing stock_current, stock_min and price.

    low_stock counts 0 < stock_current <= stock_min; out_of_stock counts exactly 0.
    """
    total = low_stock = out_of_stock = 0
    total_value = 0.0
    for row in rows:
        current = row.stock_current or 0
        total += 1
        if 0 < current <= (row.stock_min or 0):
            low_stock += 1
        if current == 0:
            out_of_stock += 1
        total_value += current * (row.price or 0)
    return ProductsStats(total=total, low_stock=low_stock, out_of_stock=out_of_stock, total_value=total_value)
