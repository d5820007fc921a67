"""
Catalog writes shared by the API routers and the onboarding wizard.

Categories, products and technicians are created here so that uniqueness
conflicts, defaults and the initial stock entry behave the same everywhere.
"""

import uuid
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConflictError, NotFoundError, ValidationError, db_errors
from db.models import Category, Product, StockMovement, Technician
from inventory.breakdown import CategoryRecord, descendant_category_ids
from inventory.sku import generate_sku

logger = structlog.get_logger()

DUPLICATE_SKU_MESSAGE = "Un produit avec ce SKU existe déjà"
DUPLICATE_TECHNICIAN_MESSAGE = "Un technicien avec cet email existe déjà"
CATEGORY_HAS_CHILDREN_MESSAGE = "Impossible de supprimer une catégorie qui contient des sous-catégories"

# Columns an update may clear; every other column is NOT NULL.
PRODUCT_NULLABLE_FIELDS = {"description", "image_url", "price", "category_id", "supplier_name"}
CATEGORY_NULLABLE_FIELDS = {"parent_id"}
TECHNICIAN_NULLABLE_FIELDS = {"email", "phone", "city"}


def drop_null_required(changes: dict, nullable: set[str]) -> dict:
    """Ignore explicit nulls sent for NOT NULL columns in a partial update."""
    return {field: value for field, value in changes.items() if value is not None or field in nullable}


# ─── Categories ─────────────────────────────────────────────────────────────


async def load_category_records(db: AsyncSession, organization_id: uuid.UUID) -> list[CategoryRecord]:
    result = await db.execute(
        select(Category.category_id, Category.name, Category.parent_id)
        .where(Category.organization_id == organization_id)
        .order_by(Category.name)
    )
    return [CategoryRecord(row.category_id, row.name, row.parent_id) for row in result.all()]


async def get_category(db: AsyncSession, organization_id: uuid.UUID, category_id: uuid.UUID) -> Category:
    result = await db.execute(
        select(Category).where(
            Category.organization_id == organization_id,
            Category.category_id == category_id,
        )
    )
    category = result.scalar_one_or_none()
    if category is None:
        raise NotFoundError("Catégorie non trouvée")
    return category


async def create_category(
    db: AsyncSession,
    organization_id: uuid.UUID,
    name: str,
    parent_id: uuid.UUID | None = None,
) -> Category:
    if parent_id is not None:
        await get_category(db, organization_id, parent_id)

    category = Category(organization_id=organization_id, name=name.strip(), parent_id=parent_id)
    async with db_errors(db, "la création de la catégorie"):
        db.add(category)
        await db.commit()
    await db.refresh(category)
    logger.info("category.created", category_id=str(category.category_id), parent_id=str(parent_id))
    return category


async def update_category(
    db: AsyncSession,
    organization_id: uuid.UUID,
    category_id: uuid.UUID,
    changes: dict,
) -> Category:
    """Rename and/or re-parent. A category cannot be moved under itself or its descendants."""
    changes = drop_null_required(changes, CATEGORY_NULLABLE_FIELDS)
    category = await get_category(db, organization_id, category_id)

    if "parent_id" in changes and changes["parent_id"] is not None:
        parent_id = changes["parent_id"]
        if parent_id == category_id:
            raise ValidationError("Une catégorie ne peut pas être son propre parent")
        await get_category(db, organization_id, parent_id)
        records = await load_category_records(db, organization_id)
        if parent_id in descendant_category_ids(category_id, records):
            raise ValidationError("Une catégorie ne peut pas être déplacée dans une de ses sous-catégories")

    for field, value in changes.items():
        setattr(category, field, value.strip() if field == "name" and value else value)

    async with db_errors(db, "la mise à jour de la catégorie"):
        await db.commit()
    await db.refresh(category)
    return category


async def delete_category(db: AsyncSession, organization_id: uuid.UUID, category_id: uuid.UUID) -> None:
    """Refused while sub-categories exist. Products fall back to uncategorized."""
    category = await get_category(db, organization_id, category_id)
    children = await db.execute(
        select(func.count())
        .select_from(Category)
        .where(Category.organization_id == organization_id, Category.parent_id == category_id)
    )
    if children.scalar_one() > 0:
        raise ConflictError(CATEGORY_HAS_CHILDREN_MESSAGE)

    async with db_errors(db, "la suppression de la catégorie"):
        products = await db.execute(
            select(Product).where(Product.organization_id == organization_id, Product.category_id == category_id)
        )
        for product in products.scalars().all():
            product.category_id = None
        await db.delete(category)
        await db.commit()
    logger.info("category.deleted", category_id=str(category_id))


# ─── Products ───────────────────────────────────────────────────────────────


async def create_product(
    db: AsyncSession,
    organization_id: uuid.UUID,
    name: str,
    sku: str | None = None,
    description: str | None = None,
    image_url: str | None = None,
    price: float | None = None,
    stock_current: int | None = None,
    stock_min: int | None = None,
    stock_max: int | None = None,
    category_id: uuid.UUID | None = None,
    supplier_name: str | None = None,
    is_perishable: bool = False,
    track_stock: bool = True,
    record_initial_entry: bool = False,
) -> Product:
    """
    Insert a product with catalog defaults.

    A missing sku is generated from the name. A price of 0 is stored as NULL.
    With record_initial_entry, a positive initial stock is also logged as an
    entry movement in the same transaction.
    """
    if category_id is not None:
        await get_category(db, organization_id, category_id)

    initial_stock = stock_current or 0
    product = Product(
        organization_id=organization_id,
        name=name.strip(),
        sku=(sku or "").strip() or generate_sku(name),
        description=description or None,
        image_url=image_url or None,
        price=price or None,
        stock_current=initial_stock,
        stock_min=10 if stock_min is None else stock_min,
        stock_max=100 if stock_max is None else stock_max,
        category_id=category_id,
        supplier_name=supplier_name or None,
        is_perishable=is_perishable,
        track_stock=track_stock,
    )
    async with db_errors(db, "la création du produit", conflict_message=DUPLICATE_SKU_MESSAGE):
        db.add(product)
        await db.flush()
        if record_initial_entry and initial_stock > 0:
            db.add(
                StockMovement(
                    organization_id=organization_id,
                    product_id=product.product_id,
                    quantity=initial_stock,
                    movement_type="entry",
                    notes="Stock initial",
                )
            )
        await db.commit()
    await db.refresh(product)
    logger.info("product.created", product_id=str(product.product_id), sku=product.sku)
    return product


async def get_product(db: AsyncSession, organization_id: uuid.UUID, product_id: uuid.UUID) -> Product:
    result = await db.execute(
        select(Product).where(Product.organization_id == organization_id, Product.product_id == product_id)
    )
    product = result.scalar_one_or_none()
    if product is None:
        raise NotFoundError("Produit non trouvé")
    return product


async def update_product(
    db: AsyncSession,
    organization_id: uuid.UUID,
    product_id: uuid.UUID,
    changes: dict,
) -> Product:
    changes = drop_null_required(changes, PRODUCT_NULLABLE_FIELDS)
    product = await get_product(db, organization_id, product_id)
    if changes.get("category_id") is not None:
        await get_category(db, organization_id, changes["category_id"])
    for field, value in changes.items():
        setattr(product, field, value)
    product.updated_at = datetime.utcnow()
    async with db_errors(db, "la mise à jour du produit", conflict_message=DUPLICATE_SKU_MESSAGE):
        await db.commit()
    await db.refresh(product)
    return product


async def set_product_archived(
    db: AsyncSession, organization_id: uuid.UUID, product_id: uuid.UUID, archived: bool
) -> Product:
    product = await get_product(db, organization_id, product_id)
    product.archived_at = datetime.utcnow() if archived else None
    product.updated_at = datetime.utcnow()
    await db.commit()
    await db.refresh(product)
    logger.info("product.archived" if archived else "product.unarchived", product_id=str(product_id))
    return product


# ─── Technicians ────────────────────────────────────────────────────────────


async def create_technician(
    db: AsyncSession,
    organization_id: uuid.UUID,
    first_name: str,
    last_name: str,
    email: str | None = None,
    phone: str | None = None,
    city: str | None = None,
) -> Technician:
    technician = Technician(
        organization_id=organization_id,
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        email=(email or "").strip().lower() or None,
        phone=phone or None,
        city=city or None,
    )
    async with db_errors(db, "la création du technicien", conflict_message=DUPLICATE_TECHNICIAN_MESSAGE):
        db.add(technician)
        await db.commit()
    await db.refresh(technician)
    logger.info("technician.created", technician_id=str(technician.technician_id))
    return technician
