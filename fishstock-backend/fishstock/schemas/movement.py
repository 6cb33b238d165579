from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from fishstock.schemas.common import PaginationMeta


MovementTypeName = Literal[
    "new_stock",
    "stock_correction",
    "damaged",
    "product_edit",
    "product_delete",
    "product_create",
]
MovementStatusName = Literal["pending", "completed", "rejected", "cancelled"]


class MovementProposeIn(BaseModel):
    """Raw movement proposal. Most clients use the stock request endpoints instead."""

    movement_type: MovementTypeName
    product_id: Optional[str] = None
    box_change: int = 0
    kg_change: Decimal = Field(default=Decimal("0"), decimal_places=2)
    stock_addition_id: Optional[str] = None
    damaged_id: Optional[str] = None
    correction_id: Optional[str] = None
    field_changed: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    reason: Optional[str] = Field(default=None, max_length=1000)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "movement_type": "product_edit",
                "product_id": "product-id-here",
                "field_changed": "price_per_kg",
                "old_value": "22.00",
                "new_value": "24.00",
                "reason": "Supplier price increase",
            }
        }
    )


class ApproveIn(BaseModel):
    confirm: bool = Field(
        default=False,
        description="Must be true to approve a product_delete movement.",
    )


class RejectIn(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class CancelIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class MovementOut(BaseModel):
    id: str
    product_id: Optional[str] = None
    movement_type: MovementTypeName
    status: MovementStatusName
    box_change: int
    kg_change: float
    stock_addition_id: Optional[str] = None
    damaged_id: Optional[str] = None
    correction_id: Optional[str] = None
    field_changed: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    reason: Optional[str] = None
    performed_by: str
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime


class MovementListOut(BaseModel):
    pagination: PaginationMeta
    items: list[MovementOut]


class ProductEditRequestOut(BaseModel):
    product_id: str
    movements: list[MovementOut]


class PendingSummaryOut(BaseModel):
    total: int
    by_type: dict[str, int]


class StockAdditionIn(BaseModel):
    product_id: str
    boxes_added: int = Field(default=0, ge=0)
    kg_added: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    total_cost: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    delivery_date: Optional[date] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "product_id": "product-id-here",
                "boxes_added": 12,
                "kg_added": 0,
                "total_cost": 3600,
                "delivery_date": "2026-10-18",
            }
        }
    )


class StockAdditionOut(BaseModel):
    id: str
    product_id: str
    boxes_added: int
    kg_added: float
    total_cost: float
    delivery_date: date
    performed_by: str
    created_at: datetime


class StockCorrectionIn(BaseModel):
    product_id: str
    box_adjustment: int = 0
    kg_adjustment: Decimal = Field(default=Decimal("0"), decimal_places=2)
    correction_reason: str = Field(min_length=1, max_length=255)
    correction_date: Optional[date] = None


class StockCorrectionOut(BaseModel):
    id: str
    product_id: str
    box_adjustment: int
    kg_adjustment: float
    correction_reason: str
    correction_date: date
    performed_by: str
    created_at: datetime


class DamageReportIn(BaseModel):
    product_id: str
    damaged_boxes: int = Field(default=0, ge=0)
    damaged_kg: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    damaged_reason: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    damaged_date: Optional[date] = None


class DamagedProductOut(BaseModel):
    id: str
    product_id: str
    damaged_boxes: int
    damaged_kg: float
    damaged_reason: str
    description: Optional[str] = None
    loss_value: float
    damaged_approval: bool
    damaged_date: date
    reported_by: str
    created_at: datetime


class StockAdditionRequestOut(BaseModel):
    stock_addition: StockAdditionOut
    movement: MovementOut


class StockCorrectionRequestOut(BaseModel):
    stock_correction: StockCorrectionOut
    movement: MovementOut


class DamageReportOut(BaseModel):
    damaged_product: DamagedProductOut
    movement: MovementOut


class StockAdditionListOut(BaseModel):
    pagination: PaginationMeta
    items: list[StockAdditionOut]


class StockCorrectionListOut(BaseModel):
    pagination: PaginationMeta
    items: list[StockCorrectionOut]


class DamagedProductListOut(BaseModel):
    pagination: PaginationMeta
    items: list[DamagedProductOut]
