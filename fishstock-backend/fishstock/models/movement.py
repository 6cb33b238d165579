from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from fishstock.db.base import Base, generate_shortuuid


class MovementType(str, Enum):
    NEW_STOCK = "new_stock"
    STOCK_CORRECTION = "stock_correction"
    DAMAGED = "damaged"
    PRODUCT_EDIT = "product_edit"
    PRODUCT_DELETE = "product_delete"
    PRODUCT_CREATE = "product_create"


class MovementStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


def _sql_in(values) -> str:
    return ", ".join(f"'{value.value}'" for value in values)


REFERENCE_COLUMNS = ("stock_addition_id", "correction_id", "damaged_id")
# A stock record backs at most one movement that is still pending or already applied.
ACTIVE_REFERENCE_WHERE = "status IN ('pending', 'completed')"


class StockMovement(Base):
    """
    One proposed inventory change. Stock only moves when the row goes pending -> completed.
    product_id is empty for a product_create awaiting approval and for a completed
    product_delete whose product no longer exists.
    """
    __tablename__ = "stock_movements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    product_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("products.id"), nullable=True, index=True
    )
    movement_type: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MovementStatus.PENDING.value, server_default="pending"
    )

    box_change: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    kg_change: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00"), server_default="0"
    )

    stock_addition_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("stock_additions.id"), nullable=True, index=True
    )
    correction_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("stock_corrections.id"), nullable=True, index=True
    )
    damaged_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("damaged_products.id"), nullable=True, index=True
    )

    field_changed: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    performed_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            f"movement_type IN ({_sql_in(MovementType)})",
            name="ck_stock_movements_movement_type",
        ),
        CheckConstraint(
            f"status IN ({_sql_in(MovementStatus)})",
            name="ck_stock_movements_status",
        ),
        Index("ix_stock_movements_status_created_at", "status", "created_at"),
        Index("ix_stock_movements_product_created_at", "product_id", "created_at"),
        Index("ix_stock_movements_type_status", "movement_type", "status"),
        *(
            Index(
                f"uq_stock_movements_active_{column}",
                column,
                unique=True,
                sqlite_where=text(ACTIVE_REFERENCE_WHERE),
                postgresql_where=text(ACTIVE_REFERENCE_WHERE),
            )
            for column in REFERENCE_COLUMNS
        ),
    )


class StockAddition(Base):
    __tablename__ = "stock_additions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), index=True)
    boxes_added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    kg_added: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    performed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class StockCorrection(Base):
    __tablename__ = "stock_corrections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), index=True)
    box_adjustment: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    kg_adjustment: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    correction_reason: Mapped[str] = mapped_column(String(255), nullable=False)
    correction_date: Mapped[date] = mapped_column(Date, nullable=False)
    performed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class DamagedProduct(Base):
    __tablename__ = "damaged_products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), index=True)
    damaged_boxes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    damaged_kg: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    damaged_reason: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    loss_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    damaged_approval: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )
    damaged_date: Mapped[date] = mapped_column(Date, nullable=False)
    reported_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
