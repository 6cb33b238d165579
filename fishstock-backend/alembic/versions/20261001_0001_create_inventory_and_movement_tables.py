"""create inventory and movement tables

Revision ID: 20261001_0001
Revises:
Create Date: 2026-10-01 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261001_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MOVEMENT_TYPES = (
    "new_stock",
    "stock_correction",
    "damaged",
    "product_edit",
    "product_delete",
    "product_create",
)
MOVEMENT_STATUSES = ("pending", "completed", "rejected", "cancelled")

INDEXES: tuple[tuple[str, str, list[str]], ...] = (
    ("ix_products_name", "products", ["name"]),
    ("ix_products_category_name", "products", ["category", "name"]),
    ("ix_stock_additions_product_id", "stock_additions", ["product_id"]),
    ("ix_stock_corrections_product_id", "stock_corrections", ["product_id"]),
    ("ix_damaged_products_product_id", "damaged_products", ["product_id"]),
    ("ix_stock_movements_product_id", "stock_movements", ["product_id"]),
    ("ix_stock_movements_stock_addition_id", "stock_movements", ["stock_addition_id"]),
    ("ix_stock_movements_correction_id", "stock_movements", ["correction_id"]),
    ("ix_stock_movements_damaged_id", "stock_movements", ["damaged_id"]),
    ("ix_stock_movements_performed_by", "stock_movements", ["performed_by"]),
    ("ix_stock_movements_status_created_at", "stock_movements", ["status", "created_at"]),
    ("ix_stock_movements_product_created_at", "stock_movements", ["product_id", "created_at"]),
    ("ix_stock_movements_type_status", "stock_movements", ["movement_type", "status"]),
)

ACTIVE_REFERENCE_WHERE = "status IN ('pending', 'completed')"
ACTIVE_REFERENCE_INDEXES = (
    ("uq_stock_movements_active_stock_addition_id", "stock_addition_id"),
    ("uq_stock_movements_active_correction_id", "correction_id"),
    ("uq_stock_movements_active_damaged_id", "damaged_id"),
)


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _in_list(values: tuple[str, ...]) -> str:
    return ", ".join(f"'{value}'" for value in values)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "products"):
        op.create_table(
            "products",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("quantity_box", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("quantity_kg", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("box_to_kg_ratio", sa.Numeric(10, 2), nullable=False, server_default="20"),
            sa.Column("cost_per_box", sa.Numeric(12, 2), nullable=False),
            sa.Column("cost_per_kg", sa.Numeric(12, 2), nullable=False),
            sa.Column("price_per_box", sa.Numeric(12, 2), nullable=False),
            sa.Column("price_per_kg", sa.Numeric(12, 2), nullable=False),
            sa.Column("boxed_low_stock_threshold", sa.Integer(), nullable=False, server_default="10"),
            sa.Column("expiry_date", sa.Date(), nullable=True),
            _created_at(),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.CheckConstraint("quantity_box >= 0", name="ck_products_quantity_box_non_negative"),
            sa.CheckConstraint("quantity_kg >= 0", name="ck_products_quantity_kg_non_negative"),
            sa.CheckConstraint("box_to_kg_ratio > 0", name="ck_products_box_to_kg_ratio_positive"),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "stock_additions"):
        op.create_table(
            "stock_additions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("boxes_added", sa.Integer(), nullable=False),
            sa.Column("kg_added", sa.Numeric(10, 2), nullable=False),
            sa.Column("total_cost", sa.Numeric(12, 2), nullable=False),
            sa.Column("delivery_date", sa.Date(), nullable=False),
            sa.Column("performed_by", sa.String(length=64), nullable=False),
            _created_at(),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "stock_corrections"):
        op.create_table(
            "stock_corrections",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("box_adjustment", sa.Integer(), nullable=False),
            sa.Column("kg_adjustment", sa.Numeric(10, 2), nullable=False),
            sa.Column("correction_reason", sa.String(length=255), nullable=False),
            sa.Column("correction_date", sa.Date(), nullable=False),
            sa.Column("performed_by", sa.String(length=64), nullable=False),
            _created_at(),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "damaged_products"):
        op.create_table(
            "damaged_products",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("damaged_boxes", sa.Integer(), nullable=False),
            sa.Column("damaged_kg", sa.Numeric(10, 2), nullable=False),
            sa.Column("damaged_reason", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("loss_value", sa.Numeric(12, 2), nullable=False),
            sa.Column("damaged_approval", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("damaged_date", sa.Date(), nullable=False),
            sa.Column("reported_by", sa.String(length=64), nullable=False),
            _created_at(),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "stock_movements"):
        op.create_table(
            "stock_movements",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=True),
            sa.Column("movement_type", sa.String(length=30), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("box_change", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("kg_change", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("stock_addition_id", sa.String(length=36), nullable=True),
            sa.Column("correction_id", sa.String(length=36), nullable=True),
            sa.Column("damaged_id", sa.String(length=36), nullable=True),
            sa.Column("field_changed", sa.String(length=50), nullable=True),
            sa.Column("old_value", sa.Text(), nullable=True),
            sa.Column("new_value", sa.Text(), nullable=True),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("performed_by", sa.String(length=64), nullable=False),
            sa.Column("resolved_by", sa.String(length=64), nullable=True),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            _created_at(),
            sa.CheckConstraint(
                f"movement_type IN ({_in_list(MOVEMENT_TYPES)})",
                name="ck_stock_movements_movement_type",
            ),
            sa.CheckConstraint(
                f"status IN ({_in_list(MOVEMENT_STATUSES)})",
                name="ck_stock_movements_status",
            ),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.ForeignKeyConstraint(["stock_addition_id"], ["stock_additions.id"]),
            sa.ForeignKeyConstraint(["correction_id"], ["stock_corrections.id"]),
            sa.ForeignKeyConstraint(["damaged_id"], ["damaged_products.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    inspector = sa.inspect(bind)
    for index_name, table_name, columns in INDEXES:
        if not _index_exists(inspector, table_name, index_name):
            op.create_index(index_name, table_name, columns, unique=False)
    for index_name, column in ACTIVE_REFERENCE_INDEXES:
        if not _index_exists(inspector, "stock_movements", index_name):
            op.create_index(
                index_name,
                "stock_movements",
                [column],
                unique=True,
                sqlite_where=sa.text(ACTIVE_REFERENCE_WHERE),
                postgresql_where=sa.text(ACTIVE_REFERENCE_WHERE),
            )


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if _table_exists(inspector, "stock_movements"):
        for index_name, _column in ACTIVE_REFERENCE_INDEXES:
            if _index_exists(inspector, "stock_movements", index_name):
                op.drop_index(index_name, table_name="stock_movements")

    for index_name, table_name, _columns in reversed(INDEXES):
        if _table_exists(inspector, table_name) and _index_exists(inspector, table_name, index_name):
            op.drop_index(index_name, table_name=table_name)

    for table_name in ("stock_movements", "damaged_products", "stock_corrections", "stock_additions", "products"):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
