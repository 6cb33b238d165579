"""Box/kg sale allocation.

A sale asks for whole boxes and/or loose kilograms. Boxes come straight from the
box pool. Kilograms come from the loose pool first; when that runs short, whole
boxes left over after the boxed part of the sale are opened ("unboxed") into
loose kg, as few as possible.
"""

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal

from fishstock.core.errors import (
    AllocationConsistencyFault,
    InsufficientBoxes,
    InsufficientInventory,
    RequestValidationFailed,
)
from fishstock.core.money import box_kg_amount, to_money
from fishstock.core.quantities import StockLevel, ZERO_KG, ceil_div, is_low_stock, to_kg

logger = logging.getLogger("fishstock.allocation")


@dataclass(frozen=True)
class AllocationPlan:
    requested_boxes: int
    requested_kg: Decimal
    boxes_to_unbox: int
    final_boxes: int
    final_kg: Decimal
    warnings: list[str] = field(default_factory=list)
    steps: list[str] = field(default_factory=list)

    @property
    def needs_unboxing(self) -> bool:
        return self.boxes_to_unbox > 0


@dataclass(frozen=True)
class UnitRates:
    price_per_box: Decimal
    price_per_kg: Decimal
    cost_per_box: Decimal
    cost_per_kg: Decimal

    @classmethod
    def from_product(cls, product) -> "UnitRates":
        return cls(
            price_per_box=to_money(product.price_per_box or 0),
            price_per_kg=to_money(product.price_per_kg or 0),
            cost_per_box=to_money(product.cost_per_box or 0),
            cost_per_kg=to_money(product.cost_per_kg or 0),
        )


@dataclass(frozen=True)
class SalePricing:
    total_amount: Decimal
    total_cost: Decimal
    profit: Decimal
    profit_per_box: Decimal
    profit_per_kg: Decimal


def plan_allocation(level: StockLevel, requested_boxes: int, requested_kg: Decimal | int | str) -> AllocationPlan:
    """Compute the post-sale stock for a request, or raise if it cannot be met.

    Raises ``InsufficientBoxes`` or ``InsufficientInventory`` for requests that
    exceed stock. Nothing is mutated here; callers apply ``final_boxes`` and
    ``final_kg`` in their own transaction.
    """
    if isinstance(requested_boxes, bool) or int(requested_boxes) != requested_boxes:
        raise RequestValidationFailed(
            "Requested boxes must be a whole number",
            details={"requested_boxes": requested_boxes},
        )
    requested_boxes = int(requested_boxes)
    raw_kg = Decimal(str(requested_kg))
    requested_kg = to_kg(raw_kg)
    if requested_kg != raw_kg:
        raise RequestValidationFailed(
            "Requested kg cannot have more than two decimal places",
            details={"requested_kg": raw_kg},
        )
    if requested_boxes < 0 or requested_kg < 0:
        raise RequestValidationFailed(
            "Requested quantities cannot be negative",
            details={"requested_boxes": requested_boxes, "requested_kg": requested_kg},
        )
    if requested_boxes == 0 and requested_kg == ZERO_KG:
        raise RequestValidationFailed(
            "Request at least one box or a positive kg quantity",
            details={"requested_boxes": requested_boxes, "requested_kg": requested_kg},
        )

    if requested_boxes > level.quantity_box:
        raise InsufficientBoxes(requested=requested_boxes, available=level.quantity_box)

    steps: list[str] = []
    if requested_boxes:
        steps.append(f"Use {requested_boxes} whole boxes")

    boxes_to_unbox = 0
    if requested_kg > level.quantity_kg:
        shortage_kg = requested_kg - level.quantity_kg
        boxes_to_unbox = ceil_div(shortage_kg, level.box_to_kg_ratio)
        available_for_unboxing = level.quantity_box - requested_boxes
        if boxes_to_unbox > available_for_unboxing:
            raise InsufficientInventory(
                requested_kg=requested_kg,
                available_kg=level.quantity_kg,
                boxes_needed=boxes_to_unbox,
                boxes_available=available_for_unboxing,
            )
        if level.quantity_kg > 0:
            steps.append(f"Use all {level.quantity_kg} kg of loose stock")
        steps.append(
            f"Open {boxes_to_unbox} boxes ({to_kg(boxes_to_unbox * level.box_to_kg_ratio)} kg) "
            f"to cover the remaining {shortage_kg} kg"
        )
    elif requested_kg > 0:
        steps.append(f"Use {requested_kg} kg of loose stock")

    final_boxes = level.quantity_box - requested_boxes - boxes_to_unbox
    final_kg = to_kg(level.quantity_kg + boxes_to_unbox * level.box_to_kg_ratio - requested_kg)
    if final_boxes < 0 or final_kg < 0:
        logger.error(
            json.dumps(
                {
                    "event": "allocation.consistency_fault",
                    "quantity_box": level.quantity_box,
                    "quantity_kg": str(level.quantity_kg),
                    "requested_boxes": requested_boxes,
                    "requested_kg": str(requested_kg),
                    "final_boxes": final_boxes,
                    "final_kg": str(final_kg),
                }
            )
        )
        raise AllocationConsistencyFault(
            "Allocation produced negative stock",
            details={"final_boxes": final_boxes, "final_kg": final_kg},
        )

    warnings: list[str] = []
    if is_low_stock(final_boxes, final_kg, level.box_to_kg_ratio, level.boxed_low_stock_threshold):
        warnings.append(
            f"Low stock after sale: {final_boxes} boxes and {final_kg} kg left "
            f"(threshold {level.boxed_low_stock_threshold} boxes)"
        )

    return AllocationPlan(
        requested_boxes=requested_boxes,
        requested_kg=requested_kg,
        boxes_to_unbox=boxes_to_unbox,
        final_boxes=final_boxes,
        final_kg=final_kg,
        warnings=warnings,
        steps=steps,
    )


def price_allocation(plan: AllocationPlan, rates: UnitRates) -> SalePricing:
    total_amount = box_kg_amount(
        plan.requested_boxes,
        plan.requested_kg,
        per_box=rates.price_per_box,
        per_kg=rates.price_per_kg,
    )
    total_cost = box_kg_amount(
        plan.requested_boxes,
        plan.requested_kg,
        per_box=rates.cost_per_box,
        per_kg=rates.cost_per_kg,
    )
    return SalePricing(
        total_amount=total_amount,
        total_cost=total_cost,
        profit=to_money(total_amount - total_cost),
        profit_per_box=to_money(rates.price_per_box - rates.cost_per_box),
        profit_per_kg=to_money(rates.price_per_kg - rates.cost_per_kg),
    )
