from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fishstock.core.config import settings
from fishstock.schemas.common import PaginationMeta


class ProductCreate(BaseModel):
    name: str
    category: Optional[str] = None
    quantity_box: int = Field(default=0, ge=0)
    quantity_kg: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    box_to_kg_ratio: Decimal = Field(
        default_factory=lambda: settings.default_box_to_kg_ratio, gt=0, decimal_places=2
    )
    cost_per_box: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    cost_per_kg: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    price_per_box: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    price_per_kg: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    boxed_low_stock_threshold: int = Field(
        default_factory=lambda: settings.default_low_stock_threshold, ge=0
    )
    expiry_date: Optional[date] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name is required")
        return cleaned

    @field_validator("category")
    @classmethod
    def normalize_category(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Tilapia (large)",
                "category": "fresh",
                "box_to_kg_ratio": 20,
                "cost_per_box": 300,
                "cost_per_kg": 16,
                "price_per_box": 400,
                "price_per_kg": 22,
                "boxed_low_stock_threshold": 10,
                "expiry_date": "2026-12-31",
            }
        }
    )


class ProductUpdate(BaseModel):
    """Partial edit. Each changed field becomes its own pending product_edit movement."""

    name: Optional[str] = None
    category: Optional[str] = None
    box_to_kg_ratio: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    cost_per_box: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    cost_per_kg: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    price_per_box: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    price_per_kg: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    boxed_low_stock_threshold: Optional[int] = Field(default=None, ge=0)
    expiry_date: Optional[date] = None
    reason: Optional[str] = Field(default=None, max_length=500)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "price_per_kg": 24,
                "reason": "Supplier price increase",
            }
        }
    )


class ProductDeleteIn(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class ProductOut(BaseModel):
    id: str
    name: str
    category: Optional[str] = None
    quantity_box: int
    quantity_kg: float
    box_to_kg_ratio: float
    cost_per_box: float
    cost_per_kg: float
    price_per_box: float
    price_per_kg: float
    boxed_low_stock_threshold: int
    expiry_date: Optional[date] = None
    is_low_stock: bool
    created_at: datetime


class ProductListOut(BaseModel):
    pagination: PaginationMeta
    items: list[ProductOut]


class StockSummaryOut(BaseModel):
    product_id: str
    name: str
    quantity_box: int
    quantity_kg: float
    box_to_kg_ratio: float
    total_kg: float
    boxed_low_stock_threshold: int
    is_low_stock: bool
    boxes_in: int
    kg_in: float
    boxes_damaged: int
    kg_damaged: float
    pending_movements: int
