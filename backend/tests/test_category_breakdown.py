"""
Tests for recursive category stock aggregation and tree building.
"""

import uuid

import pytest

from core.errors import CategoryCycleError
from inventory.breakdown import (
    CategoryRecord,
    ProductRecord,
    build_category_breakdown,
    build_category_tree,
    build_global_breakdown,
    category_total_stock,
    descendant_category_ids,
    root_categories,
)

PEINTURES = uuid.uuid4()
INTERIEUR = uuid.uuid4()
MURS = uuid.uuid4()
OUTILLAGE = uuid.uuid4()

CATEGORIES = [
    CategoryRecord(PEINTURES, "Peintures"),
    CategoryRecord(INTERIEUR, "Intérieur", PEINTURES),
    CategoryRecord(MURS, "Murs", INTERIEUR),
    CategoryRecord(OUTILLAGE, "Outillage"),
]


def _product(name, category_id, stock):
    return ProductRecord(uuid.uuid4(), name, category_id, stock)


PRODUCTS = [
    _product("Sous-couche", PEINTURES, 3),
    _product("Blanc mat", INTERIEUR, 40),
    _product("Velours", MURS, 7),
    _product("Rouleau", OUTILLAGE, 0),
    _product("Diluant", None, 12),
]


class TestTotals:
    def test_total_includes_all_descendants(self):
        assert category_total_stock(PEINTURES, CATEGORIES, PRODUCTS) == 50
        assert category_total_stock(INTERIEUR, CATEGORIES, PRODUCTS) == 47
        assert category_total_stock(MURS, CATEGORIES, PRODUCTS) == 7

    def test_empty_category_totals_zero(self):
        assert category_total_stock(OUTILLAGE, CATEGORIES, PRODUCTS) == 0

    def test_null_stock_counts_as_zero(self):
        products = [ProductRecord(uuid.uuid4(), "Vide", MURS, None)]
        assert category_total_stock(PEINTURES, CATEGORIES, products) == 0

    def test_descendants(self):
        assert descendant_category_ids(PEINTURES, CATEGORIES) == {INTERIEUR, MURS}
        assert descendant_category_ids(MURS, CATEGORIES) == set()


class TestGlobalBreakdown:
    def test_roots_then_uncategorized(self):
        items = build_global_breakdown(CATEGORIES, PRODUCTS)
        assert [(i.name, i.type, i.stock) for i in items] == [
            ("Peintures", "category", 50),
            ("Outillage", "category", 0),
            ("Diluant", "product", 12),
        ]
        assert items[-1].uncategorized is True
        assert all(i.depth == 0 for i in items)

    def test_sum_of_roots_and_uncategorized_equals_catalog_total(self):
        items = build_global_breakdown(CATEGORIES, PRODUCTS)
        assert sum(i.stock for i in items) == sum(p.stock_current for p in PRODUCTS)

    def test_nested_children_carry_depth(self):
        peintures = build_global_breakdown(CATEGORIES, PRODUCTS)[0]
        interieur, sous_couche = peintures.children
        assert (interieur.name, interieur.depth, interieur.stock) == ("Intérieur", 1, 47)
        assert (sous_couche.type, sous_couche.depth) == ("product", 1)
        murs = interieur.children[0]
        assert (murs.name, murs.depth) == ("Murs", 2)
        assert murs.children[0].depth == 3

    def test_leaf_category_without_products_has_no_children(self):
        outillage = build_global_breakdown(CATEGORIES, [])[1]
        assert outillage.children is None

    def test_dangling_parent_is_root_and_dangling_category_is_uncategorized(self):
        orphan = CategoryRecord(uuid.uuid4(), "Orpheline", uuid.uuid4())
        lost = _product("Perdu", uuid.uuid4(), 4)
        items = build_global_breakdown([orphan], [lost])
        assert items[0].name == "Orpheline"
        assert items[1].uncategorized is True
        assert items[1].stock == 4


class TestCategoryBreakdown:
    def test_subcategories_before_products(self):
        items = build_category_breakdown(PEINTURES, CATEGORIES, PRODUCTS)
        assert [(i.type, i.name) for i in items] == [
            ("category", "Intérieur"),
            ("product", "Sous-couche"),
        ]

    def test_unknown_category_is_empty(self):
        assert build_category_breakdown(uuid.uuid4(), CATEGORIES, PRODUCTS) == []


class TestCycles:
    def test_cycle_raises(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        cyclic = [CategoryRecord(a, "A", b), CategoryRecord(b, "B", a)]
        with pytest.raises(CategoryCycleError):
            build_global_breakdown(cyclic, [])

    def test_self_parent_raises(self):
        a = uuid.uuid4()
        with pytest.raises(CategoryCycleError):
            category_total_stock(a, [CategoryRecord(a, "A", a)], [])


class TestTree:
    def test_roots_and_orphans(self):
        orphan = CategoryRecord(uuid.uuid4(), "Orpheline", uuid.uuid4())
        roots = root_categories(CATEGORIES + [orphan])
        assert {r.name for r in roots} == {"Peintures", "Outillage", "Orpheline"}

    def test_tree_nests_children(self):
        tree = build_category_tree(CATEGORIES)
        assert [n.name for n in tree] == ["Peintures", "Outillage"]
        assert tree[0].children[0].name == "Intérieur"
        assert tree[0].children[0].children[0].name == "Murs"
