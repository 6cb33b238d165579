from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fishstock.schemas.common import PaginationMeta


PaymentMethod = Literal["momo_pay", "cash", "bank_transfer"]
PaymentStatus = Literal["paid", "pending", "partial"]


class SaleQuantityIn(BaseModel):
    product_id: str
    requested_boxes: int = Field(default=0, ge=0)
    requested_kg: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)

    @model_validator(mode="after")
    def require_quantity(self) -> "SaleQuantityIn":
        if self.requested_boxes == 0 and self.requested_kg == 0:
            raise ValueError("Request at least one box or a positive kg quantity")
        return self


class PaymentIn(BaseModel):
    payment_method: PaymentMethod
    payment_status: PaymentStatus = "paid"
    amount_paid: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    client_name: Optional[str] = None
    email_address: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("client_name", "email_address", "phone")
    @classmethod
    def normalize_optional_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @model_validator(mode="after")
    def require_client_for_credit(self) -> "PaymentIn":
        if self.payment_status in {"pending", "partial"} and not self.client_name:
            raise ValueError("client_name is required for pending or partial payments")
        return self


class SaleCreate(SaleQuantityIn, PaymentIn):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "product_id": "product-id-here",
                "requested_boxes": 0,
                "requested_kg": 15,
                "payment_method": "cash",
                "payment_status": "paid",
            }
        }
    )


class AllocationOut(BaseModel):
    requested_boxes: int
    requested_kg: float
    boxes_to_unbox: int
    final_boxes: int
    final_kg: float
    warnings: list[str]
    steps: list[str]


class SaleQuoteOut(BaseModel):
    product_id: str
    allocation: AllocationOut
    total_amount: float
    total_cost: float
    profit: float


class SaleOut(BaseModel):
    id: str
    product_id: str
    boxes_quantity: int
    kg_quantity: float
    boxes_unboxed: int
    box_price: float
    kg_price: float
    total_amount: float
    total_cost: float
    profit: float
    profit_per_box: float
    profit_per_kg: float
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    amount_paid: float
    remaining_amount: float
    client_name: Optional[str] = None
    email_address: Optional[str] = None
    phone: Optional[str] = None
    performed_by: str
    created_at: datetime


class SaleCreateOut(BaseModel):
    sale: SaleOut
    allocation: AllocationOut


class SaleListOut(BaseModel):
    pagination: PaginationMeta
    start_date: date | None = None
    end_date: date | None = None
    items: list[SaleOut]
