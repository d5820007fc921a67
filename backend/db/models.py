"""
Stockroom Database Models

9 tables for the stock management platform.
Multi-tenant via organization_id on all tables except organizations.

Tables:
  Tenancy (1-3):
  1. organizations                 - Tenant workspaces
  2. user_organizations            - Memberships (user ↔ organization, role)
  3. organization_invitations      - Pending email invitations

  Catalog (4-5):
  4. categories                    - Hierarchical product categories (parent_id tree)
  5. products                      - Product catalog with cached stock_current

  Field (6-9):
  6. technicians                   - Field technicians
  7. stock_movements               - Append-only stock event log
  8. technician_inventory          - Current per-technician stock snapshot
  9. technician_inventory_history  - JSON snapshot taken at each restock
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


# Alias so Column(UUID(as_uuid=True)) reads like the PostgreSQL dialect type
def UUID(as_uuid=True):
    return GUID()


from sqlalchemy.orm import relationship

from db.session import Base

MOVEMENT_TYPES = ("entry", "exit_technician", "exit_anonymous", "exit_loss")
EXIT_TYPES = ("exit_technician", "exit_anonymous", "exit_loss")
MEMBER_ROLES = ("owner", "admin", "member")

# ─── 1. Organizations ──────────────────────────────────────────────────────


class Organization(Base):
    __tablename__ = "organizations"

    organization_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False, unique=True)
    logo_url = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = relationship("UserOrganization", back_populates="organization")


# ─── 2. Memberships ─────────────────────────────────────────────────────────


class UserOrganization(Base):
    __tablename__ = "user_organizations"

    membership_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.organization_id", ondelete="CASCADE"), nullable=False
    )
    email = Column(String(255))
    role = Column(String(20), nullable=False, default="member")
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", name="uq_membership_user_org"),
        Index("ix_user_organizations_user", "user_id"),
        CheckConstraint("role IN ('owner', 'admin', 'member')", name="ck_membership_role"),
    )

    organization = relationship("Organization", back_populates="memberships", lazy="joined")


# ─── 3. Invitations ─────────────────────────────────────────────────────────


class OrganizationInvitation(Base):
    __tablename__ = "organization_invitations"

    invitation_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.organization_id", ondelete="CASCADE"), nullable=False
    )
    email = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="member")
    token = Column(String(64), nullable=False, unique=True)
    invited_by = Column(String(255))
    expires_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("organization_id", "email", name="uq_invitation_org_email"),
        CheckConstraint("role IN ('admin', 'member')", name="ck_invitation_role"),
    )


# ─── 4. Categories ──────────────────────────────────────────────────────────


class Category(Base):
    __tablename__ = "categories"

    category_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.organization_id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=False)
    # Plain column, not a FK: a dangling parent is read back as a root category
    parent_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_categories_organization", "organization_id"),
        Index("ix_categories_parent", "parent_id"),
    )


# ─── 5. Products ────────────────────────────────────────────────────────────


class Product(Base):
    __tablename__ = "products"

    product_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.organization_id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=False)
    description = Column(Text)
    image_url = Column(Text)
    price = Column(Float)
    stock_current = Column(Integer, nullable=False, default=0)
    stock_min = Column(Integer, nullable=False, default=10)
    stock_max = Column(Integer, nullable=False, default=100)
    category_id = Column(
        UUID(as_uuid=True), ForeignKey("categories.category_id", ondelete="SET NULL"), nullable=True
    )
    supplier_name = Column(String(255))
    is_perishable = Column(Boolean, nullable=False, default=False)
    track_stock = Column(Boolean, nullable=False, default=True)
    archived_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("organization_id", "sku", name="uq_product_sku_per_organization"),
        Index("ix_products_organization", "organization_id"),
        Index("ix_products_category", "category_id"),
    )


# ─── 6. Technicians ─────────────────────────────────────────────────────────


class Technician(Base):
    __tablename__ = "technicians"

    technician_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.organization_id", ondelete="CASCADE"), nullable=False
    )
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255))
    phone = Column(String(50))
    city = Column(String(100))
    archived_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("organization_id", "email", name="uq_technician_email_per_organization"),
        Index("ix_technicians_organization", "organization_id"),
    )


# ─── 7. Stock Movements ─────────────────────────────────────────────────────


class StockMovement(Base):
    __tablename__ = "stock_movements"

    movement_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.organization_id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(
        UUID(as_uuid=True), ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False
    )
    quantity = Column(Integer, nullable=False)
    movement_type = Column(String(30), nullable=False)
    technician_id = Column(
        UUID(as_uuid=True), ForeignKey("technicians.technician_id", ondelete="SET NULL"), nullable=True
    )
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_movements_org_created", "organization_id", "created_at"),
        Index("ix_movements_product_created", "product_id", "created_at"),
        Index("ix_movements_technician", "technician_id"),
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        CheckConstraint(
            "movement_type IN ('entry', 'exit_technician', 'exit_anonymous', 'exit_loss')",
            name="ck_movement_type",
        ),
    )


# ─── 8. Technician Inventory ────────────────────────────────────────────────


class TechnicianInventory(Base):
    __tablename__ = "technician_inventory"

    inventory_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.organization_id", ondelete="CASCADE"), nullable=False
    )
    technician_id = Column(
        UUID(as_uuid=True), ForeignKey("technicians.technician_id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(
        UUID(as_uuid=True), ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False
    )
    quantity = Column(Integer, nullable=False, default=0)
    assigned_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("technician_id", "product_id", name="uq_technician_inventory_line"),
        CheckConstraint("quantity >= 0", name="ck_technician_inventory_quantity"),
    )


# ─── 9. Technician Inventory History ────────────────────────────────────────


class TechnicianInventoryHistory(Base):
    __tablename__ = "technician_inventory_history"

    history_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.organization_id", ondelete="CASCADE"), nullable=False
    )
    technician_id = Column(
        UUID(as_uuid=True), ForeignKey("technicians.technician_id", ondelete="CASCADE"), nullable=False
    )
    # {"items": [{product_id, product_name, product_sku, quantity}], "total_items": int}
    snapshot = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_technician_history_technician_created", "technician_id", "created_at"),)
