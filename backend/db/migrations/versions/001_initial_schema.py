"""
Initial schema - all 9 tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Stock tables isolated per organization. Membership and invitation tables are
# read before the tenant is known, so they stay outside RLS.
TENANT_TABLES = [
    "categories",
    "products",
    "technicians",
    "stock_movements",
    "technician_inventory",
    "technician_inventory_history",
]


def _organization_fk() -> sa.Column:
    return sa.Column(
        "organization_id",
        UUID(as_uuid=True),
        sa.ForeignKey("organizations.organization_id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    # 1. Organizations
    op.create_table(
        "organizations",
        sa.Column("organization_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("logo_url", sa.Text),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # 2. Memberships
    op.create_table(
        "user_organizations",
        sa.Column("membership_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", sa.String(255), nullable=False),
        _organization_fk(),
        sa.Column("email", sa.String(255)),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("is_default", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "organization_id", name="uq_membership_user_org"),
        sa.CheckConstraint("role IN ('owner', 'admin', 'member')", name="ck_membership_role"),
    )
    op.create_index("ix_user_organizations_user", "user_organizations", ["user_id"])

    # 3. Invitations
    op.create_table(
        "organization_invitations",
        sa.Column("invitation_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        _organization_fk(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("token", sa.String(64), nullable=False, unique=True),
        sa.Column("invited_by", sa.String(255)),
        sa.Column("expires_at", sa.DateTime, nullable=False),
        sa.Column("accepted_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("organization_id", "email", name="uq_invitation_org_email"),
        sa.CheckConstraint("role IN ('admin', 'member')", name="ck_invitation_role"),
    )

    # 4. Categories (parent_id is not a FK: dangling parents read back as roots)
    op.create_table(
        "categories",
        sa.Column("category_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        _organization_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("parent_id", UUID(as_uuid=True)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_categories_organization", "categories", ["organization_id"])
    op.create_index("ix_categories_parent", "categories", ["parent_id"])

    # 5. Products
    op.create_table(
        "products",
        sa.Column("product_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        _organization_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(100), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("image_url", sa.Text),
        sa.Column("price", sa.Float),
        sa.Column("stock_current", sa.Integer, nullable=False, server_default="0"),
        sa.Column("stock_min", sa.Integer, nullable=False, server_default="10"),
        sa.Column("stock_max", sa.Integer, nullable=False, server_default="100"),
        sa.Column(
            "category_id",
            UUID(as_uuid=True),
            sa.ForeignKey("categories.category_id", ondelete="SET NULL"),
        ),
        sa.Column("supplier_name", sa.String(255)),
        sa.Column("is_perishable", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("track_stock", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("archived_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("organization_id", "sku", name="uq_product_sku_per_organization"),
    )
    op.create_index("ix_products_organization", "products", ["organization_id"])
    op.create_index("ix_products_category", "products", ["category_id"])

    # 6. Technicians
    op.create_table(
        "technicians",
        sa.Column("technician_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        _organization_fk(),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("city", sa.String(100)),
        sa.Column("archived_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("organization_id", "email", name="uq_technician_email_per_organization"),
    )
    op.create_index("ix_technicians_organization", "technicians", ["organization_id"])

    # 7. Stock movements
    op.create_table(
        "stock_movements",
        sa.Column("movement_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        _organization_fk(),
        sa.Column(
            "product_id",
            UUID(as_uuid=True),
            sa.ForeignKey("products.product_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("movement_type", sa.String(30), nullable=False),
        sa.Column(
            "technician_id",
            UUID(as_uuid=True),
            sa.ForeignKey("technicians.technician_id", ondelete="SET NULL"),
        ),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        sa.CheckConstraint(
            "movement_type IN ('entry', 'exit_technician', 'exit_anonymous', 'exit_loss')",
            name="ck_movement_type",
        ),
    )
    op.create_index("ix_movements_org_created", "stock_movements", ["organization_id", "created_at"])
    op.create_index("ix_movements_product_created", "stock_movements", ["product_id", "created_at"])
    op.create_index("ix_movements_technician", "stock_movements", ["technician_id"])

    # 8. Technician inventory
    op.create_table(
        "technician_inventory",
        sa.Column("inventory_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        _organization_fk(),
        sa.Column(
            "technician_id",
            UUID(as_uuid=True),
            sa.ForeignKey("technicians.technician_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            UUID(as_uuid=True),
            sa.ForeignKey("products.product_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("assigned_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("technician_id", "product_id", name="uq_technician_inventory_line"),
        sa.CheckConstraint("quantity >= 0", name="ck_technician_inventory_quantity"),
    )

    # 9. Technician inventory history
    op.create_table(
        "technician_inventory_history",
        sa.Column("history_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        _organization_fk(),
        sa.Column(
            "technician_id",
            UUID(as_uuid=True),
            sa.ForeignKey("technicians.technician_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("snapshot", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_technician_history_technician_created",
        "technician_inventory_history",
        ["technician_id", "created_at"],
    )

    # Row-Level Security
    for table in TENANT_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY tenant_isolation ON {table} "
            f"USING (organization_id::text = current_setting('app.current_organization_id', true))"
        )


def downgrade() -> None:
    tables = [
        "technician_inventory_history",
        "technician_inventory",
        "stock_movements",
        "technicians",
        "products",
        "categories",
        "organization_invitations",
        "user_organizations",
        "organizations",
    ]
    for table in tables:
        op.drop_table(table)
