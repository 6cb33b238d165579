"""add sales and audit logs

Revision ID: 20261001_0002
Revises: 20261001_0001
Create Date: 2026-10-01 09:30:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261001_0002"
down_revision: Union[str, None] = "20261001_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


INDEXES: tuple[tuple[str, str, list[str]], ...] = (
    ("ix_sales_product_id", "sales", ["product_id"]),
    ("ix_sales_created_at", "sales", ["created_at"]),
    ("ix_sales_payment_status_created_at", "sales", ["payment_status", "created_at"]),
    ("ix_sales_product_created_at", "sales", ["product_id", "created_at"]),
    ("ix_audit_logs_actor_id", "audit_logs", ["actor_id"]),
    ("ix_audit_logs_target_id", "audit_logs", ["target_id"]),
    ("ix_audit_logs_created_at", "audit_logs", ["created_at"]),
    ("ix_audit_logs_action_created_at", "audit_logs", ["action", "created_at"]),
)


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "sales"):
        op.create_table(
            "sales",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("boxes_quantity", sa.Integer(), nullable=False),
            sa.Column("kg_quantity", sa.Numeric(10, 2), nullable=False),
            sa.Column("boxes_unboxed", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("box_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("kg_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("profit_per_box", sa.Numeric(12, 2), nullable=False),
            sa.Column("profit_per_kg", sa.Numeric(12, 2), nullable=False),
            sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("total_cost", sa.Numeric(12, 2), nullable=False),
            sa.Column("profit", sa.Numeric(12, 2), nullable=False),
            sa.Column("payment_method", sa.String(length=30), nullable=False),
            sa.Column("payment_status", sa.String(length=20), nullable=False),
            sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False),
            sa.Column("remaining_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("client_name", sa.String(length=255), nullable=True),
            sa.Column("email_address", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=50), nullable=True),
            sa.Column("performed_by", sa.String(length=64), nullable=False),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("actor_id", sa.String(length=64), nullable=False),
            sa.Column("action", sa.String(length=100), nullable=False),
            sa.Column("target_type", sa.String(length=100), nullable=False),
            sa.Column("target_id", sa.String(length=36), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.PrimaryKeyConstraint("id"),
        )

    inspector = sa.inspect(bind)
    for index_name, table_name, columns in INDEXES:
        if not _index_exists(inspector, table_name, index_name):
            op.create_index(index_name, table_name, columns, unique=False)


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for index_name, table_name, _columns in reversed(INDEXES):
        if _table_exists(inspector, table_name) and _index_exists(inspector, table_name, index_name):
            op.drop_index(index_name, table_name=table_name)

    for table_name in ("audit_logs", "sales"):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
