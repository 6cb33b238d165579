from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, Date, DateTime, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from fishstock.db.base import Base, generate_shortuuid


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Stock is held as whole boxes plus loose kg.
    quantity_box: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    quantity_kg: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00"), server_default="0"
    )
    box_to_kg_ratio: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("20.00"), server_default="20"
    )

    cost_per_box: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    cost_per_kg: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    price_per_box: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    price_per_kg: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    boxed_low_stock_threshold: Mapped[int] = mapped_column(
        Integer, nullable=False, default=10, server_default="10"
    )
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("quantity_box >= 0", name="ck_products_quantity_box_non_negative"),
        CheckConstraint("quantity_kg >= 0", name="ck_products_quantity_kg_non_negative"),
        CheckConstraint("box_to_kg_ratio > 0", name="ck_products_box_to_kg_ratio_positive"),
        Index("ix_products_name", "name"),
        Index("ix_products_category_name", "category", "name"),
    )
