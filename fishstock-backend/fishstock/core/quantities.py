"""Stock quantities in two units: whole boxes and loose kilograms.

Box counts are ints. Kilograms and ratios are Decimals quantized to 0.01 so
repeated unboxing never drifts.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP

from fishstock.core.errors import NegativeStockFault

KG_QUANT = Decimal("0.01")
ZERO_KG = Decimal("0.00")


def to_kg(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(KG_QUANT, rounding=ROUND_HALF_UP)


def ceil_div(numerator: Decimal, denominator: Decimal) -> int:
    return int((numerator / denominator).to_integral_value(rounding=ROUND_CEILING))


def floor_div(numerator: Decimal, denominator: Decimal) -> int:
    return int((numerator / denominator).to_integral_value(rounding=ROUND_FLOOR))


@dataclass(frozen=True)
class StockLevel:
    quantity_box: int
    quantity_kg: Decimal
    box_to_kg_ratio: Decimal
    boxed_low_stock_threshold: int = 0

    def __post_init__(self):
        if self.box_to_kg_ratio <= 0:
            raise ValueError("box_to_kg_ratio must be positive")

    @classmethod
    def from_product(cls, product) -> "StockLevel":
        return cls(
            quantity_box=int(product.quantity_box or 0),
            quantity_kg=to_kg(product.quantity_kg or 0),
            box_to_kg_ratio=to_kg(product.box_to_kg_ratio),
            boxed_low_stock_threshold=int(product.boxed_low_stock_threshold or 0),
        )

    @property
    def total_kg(self) -> Decimal:
        return to_kg(self.quantity_box * self.box_to_kg_ratio + self.quantity_kg)


def equivalent_boxes(boxes: int, kg: Decimal, ratio: Decimal) -> int:
    return boxes + floor_div(kg, ratio)


def is_low_stock(boxes: int, kg: Decimal, ratio: Decimal, threshold: int) -> bool:
    return equivalent_boxes(boxes, kg, ratio) <= threshold


def apply_delta(level: StockLevel, box_change: int, kg_change: Decimal) -> tuple[int, Decimal]:
    new_boxes = level.quantity_box + int(box_change)
    new_kg = to_kg(level.quantity_kg + to_kg(kg_change))
    if new_boxes < 0 or new_kg < 0:
        raise NegativeStockFault(
            "Movement would drive stock negative",
            details={
                "quantity_box": level.quantity_box,
                "quantity_kg": level.quantity_kg,
                "box_change": box_change,
                "kg_change": kg_change,
            },
        )
    return new_boxes, new_kg
