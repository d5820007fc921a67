"""
Category Stock Breakdown — Recursive Stock Aggregation over the Category Tree.

Categories form a parent-pointer tree. A category's stock is the stock of its
direct products plus the stock of every descendant category:

    total_stock(c) = Σ direct products' stock_current + Σ total_stock(child)

Rules:
  - A category whose parent_id points to a missing category is treated as a root.
  - Products without a category (or with a missing one) are listed at the root
    level of the global breakdown, flagged as uncategorized.
  - A cyclic parent chain raises CategoryCycleError instead of recursing forever.
"""

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Optional

from core.errors import CategoryCycleError


@dataclass(frozen=True)
class CategoryRecord:
    category_id: uuid.UUID
    name: str
    parent_id: uuid.UUID | None = None


@dataclass(frozen=True)
class ProductRecord:
    product_id: uuid.UUID
    name: str
    category_id: uuid.UUID | None
    stock_current: int | None = 0


@dataclass
class BreakdownItem:
    id: uuid.UUID
    name: str
    type: str  # "category" | "product"
    stock: int
    depth: int
    children: Optional[list["BreakdownItem"]] = None
    uncategorized: bool = False


@dataclass
class CategoryTreeNode:
    category_id: uuid.UUID
    name: str
    parent_id: uuid.UUID | None
    children: list["CategoryTreeNode"] = field(default_factory=list)


# ─── Tree helpers ───────────────────────────────────────────────────────────


def _children_index(categories: Iterable[CategoryRecord]) -> dict[uuid.UUID, list[CategoryRecord]]:
    index: dict[uuid.UUID, list[CategoryRecord]] = {}
    for category in categories:
        if category.parent_id is not None:
            index.setdefault(category.parent_id, []).append(category)
    return index


def _products_index(products: Iterable[ProductRecord]) -> dict[uuid.UUID | None, list[ProductRecord]]:
    index: dict[uuid.UUID | None, list[ProductRecord]] = {}
    for product in products:
        index.setdefault(product.category_id, []).append(product)
    return index


def ensure_acyclic(categories: Sequence[CategoryRecord]) -> None:
    """Raise CategoryCycleError if any parent chain loops back on itself."""
    parents = {c.category_id: c.parent_id for c in categories}
    cleared: set[uuid.UUID] = set()
    for start in parents:
        path: set[uuid.UUID] = set()
        current = start
        while current is not None and current in parents and current not in cleared:
            if current in path:
                raise CategoryCycleError(current)
            path.add(current)
            current = parents[current]
        cleared |= path


def root_categories(categories: Sequence[CategoryRecord]) -> list[CategoryRecord]:
    """Categories without a parent, plus orphans whose parent no longer exists."""
    known = {c.category_id for c in categories}
    return [c for c in categories if c.parent_id is None or c.parent_id not in known]


def descendant_category_ids(category_id: uuid.UUID, categories: Sequence[CategoryRecord]) -> set[uuid.UUID]:
    ensure_acyclic(categories)
    children = _children_index(categories)
    found: set[uuid.UUID] = set()
    stack = [category_id]
    while stack:
        for child in children.get(stack.pop(), []):
            found.add(child.category_id)
            stack.append(child.category_id)
    return found


def _total_stock(
    category_id: uuid.UUID,
    children: dict[uuid.UUID, list[CategoryRecord]],
    products_by_category: dict[uuid.UUID | None, list[ProductRecord]],
) -> int:
    total = sum(p.stock_current or 0 for p in products_by_category.get(category_id, []))
    for child in children.get(category_id, []):
        total += _total_stock(child.category_id, children, products_by_category)
    return total


def category_total_stock(
    category_id: uuid.UUID,
    categories: Sequence[CategoryRecord],
    products: Sequence[ProductRecord],
) -> int:
    ensure_acyclic(categories)
    return _total_stock(category_id, _children_index(categories), _products_index(products))


# ─── Breakdown ──────────────────────────────────────────────────────────────


def _breakdown_level(
    category_id: uuid.UUID,
    children: dict[uuid.UUID, list[CategoryRecord]],
    products_by_category: dict[uuid.UUID | None, list[ProductRecord]],
    depth: int,
) -> list[BreakdownItem]:
    items: list[BreakdownItem] = []
    for child in children.get(category_id, []):
        nested = _breakdown_level(child.category_id, children, products_by_category, depth + 1)
        items.append(
            BreakdownItem(
                id=child.category_id,
                name=child.name,
                type="category",
                stock=_total_stock(child.category_id, children, products_by_category),
                depth=depth,
                children=nested or None,
            )
        )
    for product in products_by_category.get(category_id, []):
        items.append(
            BreakdownItem(
                id=product.product_id,
                name=product.name,
                type="product",
                stock=product.stock_current or 0,
                depth=depth,
            )
        )
    return items


def build_category_breakdown(
    category_id: uuid.UUID,
    categories: Sequence[CategoryRecord],
    products: Sequence[ProductRecord],
    depth: int = 0,
) -> list[BreakdownItem]:
    """Breakdown of one category: its sub-categories, then its direct products."""
    ensure_acyclic(categories)
    return _breakdown_level(category_id, _children_index(categories), _products_index(products), depth)


def build_global_breakdown(
    categories: Sequence[CategoryRecord],
    products: Sequence[ProductRecord],
) -> list[BreakdownItem]:
    """Root categories with recursive totals, then uncategorized products."""
    ensure_acyclic(categories)
    children = _children_index(categories)
    products_by_category = _products_index(products)
    known = {c.category_id for c in categories}

    items: list[BreakdownItem] = []
    for root in root_categories(categories):
        nested = _breakdown_level(root.category_id, children, products_by_category, 1)
        items.append(
            BreakdownItem(
                id=root.category_id,
                name=root.name,
                type="category",
                stock=_total_stock(root.category_id, children, products_by_category),
                depth=0,
                children=nested or None,
            )
        )

    for product in products:
        if product.category_id is None or product.category_id not in known:
            items.append(
                BreakdownItem(
                    id=product.product_id,
                    name=product.name,
                    type="product",
                    stock=product.stock_current or 0,
                    depth=0,
                    uncategorized=True,
                )
            )
    return items


def build_category_tree(categories: Sequence[CategoryRecord]) -> list[CategoryTreeNode]:
    """Nest categories under their parents; orphans are promoted to the root."""
    ensure_acyclic(categories)
    nodes = {c.category_id: CategoryTreeNode(c.category_id, c.name, c.parent_id) for c in categories}
    roots: list[CategoryTreeNode] = []
    for category in categories:
        node = nodes[category.category_id]
        if category.parent_id is not None and category.parent_id in nodes:
            nodes[category.parent_id].children.append(node)
        else:
            roots.append(node)
    return roots
