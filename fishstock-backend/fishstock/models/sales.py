from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from fishstock.db.base import Base, generate_shortuuid


class Sale(Base):
    __tablename__ = "sales"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), index=True)

    boxes_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    kg_quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    boxes_unboxed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    # Unit prices and costs are frozen at sale time.
    box_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    kg_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    profit_per_box: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    profit_per_kg: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    profit: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)  # momo_pay/cash/bank_transfer
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)  # paid/pending/partial
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    client_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    performed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_sales_created_at", "created_at"),
        Index("ix_sales_payment_status_created_at", "payment_status", "created_at"),
        Index("ix_sales_product_created_at", "product_id", "created_at"),
    )
