"""Requests that record a justification and open a pending movement for it.

Each request writes its sub-record (stock addition, correction, damage report)
and the matching movement in one transaction. Product edits, deletions and
creations only open movements.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from fishstock.core.errors import RequestValidationFailed
from fishstock.core.money import box_kg_amount, to_money
from fishstock.core.quantities import ZERO_KG, to_kg
from fishstock.core.security_current import Actor
from fishstock.models.movement import (
    DamagedProduct,
    MovementType,
    StockAddition,
    StockCorrection,
    StockMovement,
)
from fishstock.schemas.product import ProductCreate
from fishstock.services.concurrency import run_in_transaction
from fishstock.services.movement_rules import (
    EDITABLE_FIELDS,
    PRODUCT_CREATION_FIELD,
    PRODUCT_DELETION_FIELD,
    MovementDraft,
    format_field_value,
)
from fishstock.services.movement_service import log_proposed, stage_movement
from fishstock.services.product_service import get_product

PENDING_DELETION = "PENDING_DELETION"
NULLABLE_EDIT_FIELDS = frozenset({"category", "expiry_date"})


@dataclass(frozen=True)
class StockRequestResult:
    record: StockAddition | StockCorrection | DamagedProduct
    movement: StockMovement


def _require_some_quantity(boxes: int, kg: Decimal) -> None:
    if boxes < 0 or kg < 0:
        raise RequestValidationFailed(
            "Quantities cannot be negative",
            details={"boxes": boxes, "kg": kg},
        )
    if boxes == 0 and kg == ZERO_KG:
        raise RequestValidationFailed(
            "Enter at least one box or a positive kg quantity",
            details={"boxes": boxes, "kg": kg},
        )


def request_stock_addition(
    db: Session,
    *,
    product_id: str,
    boxes_added: int,
    kg_added: Decimal,
    total_cost: Decimal,
    actor: Actor,
    delivery_date: date | None = None,
) -> StockRequestResult:
    kg_added = to_kg(kg_added)
    _require_some_quantity(boxes_added, kg_added)
    total_cost = to_money(total_cost)
    if total_cost < 0:
        raise RequestValidationFailed("Total cost cannot be negative", details={"total_cost": total_cost})
    delivery_date = delivery_date or date.today()

    def _op() -> StockRequestResult:
        get_product(db, product_id)
        addition = StockAddition(
            product_id=product_id,
            boxes_added=boxes_added,
            kg_added=kg_added,
            total_cost=total_cost,
            delivery_date=delivery_date,
            performed_by=actor.id,
        )
        db.add(addition)
        db.flush()
        movement = stage_movement(
            db,
            MovementDraft(
                movement_type=MovementType.NEW_STOCK,
                product_id=product_id,
                box_change=boxes_added,
                kg_change=kg_added,
                stock_addition_id=addition.id,
                reason=(
                    f"Stock addition request: {boxes_added} boxes, {kg_added} kg "
                    f"(Cost: ${total_cost}) - Delivery: {delivery_date.isoformat()}"
                ),
            ),
            actor,
        )
        return StockRequestResult(record=addition, movement=movement)

    result = run_in_transaction(db, _op)
    log_proposed(result.movement)
    return result


def request_stock_correction(
    db: Session,
    *,
    product_id: str,
    box_adjustment: int,
    kg_adjustment: Decimal,
    correction_reason: str,
    actor: Actor,
    correction_date: date | None = None,
) -> StockRequestResult:
    kg_adjustment = to_kg(kg_adjustment)
    if box_adjustment == 0 and kg_adjustment == ZERO_KG:
        raise RequestValidationFailed(
            "A correction must change boxes or kg",
            details={"box_adjustment": box_adjustment, "kg_adjustment": kg_adjustment},
        )
    correction_reason = (correction_reason or "").strip()
    if not correction_reason:
        raise RequestValidationFailed("A correction reason is required", details={"correction_reason": "required"})

    def _op() -> StockRequestResult:
        get_product(db, product_id)
        correction = StockCorrection(
            product_id=product_id,
            box_adjustment=box_adjustment,
            kg_adjustment=kg_adjustment,
            correction_reason=correction_reason,
            correction_date=correction_date or date.today(),
            performed_by=actor.id,
        )
        db.add(correction)
        db.flush()
        movement = stage_movement(
            db,
            MovementDraft(
                movement_type=MovementType.STOCK_CORRECTION,
                product_id=product_id,
                box_change=box_adjustment,
                kg_change=kg_adjustment,
                correction_id=correction.id,
                reason=f"Stock correction request: {correction_reason}",
            ),
            actor,
        )
        return StockRequestResult(record=correction, movement=movement)

    result = run_in_transaction(db, _op)
    log_proposed(result.movement)
    return result


def report_damage(
    db: Session,
    *,
    product_id: str,
    damaged_boxes: int,
    damaged_kg: Decimal,
    damaged_reason: str,
    actor: Actor,
    description: str | None = None,
    damaged_date: date | None = None,
) -> StockRequestResult:
    damaged_kg = to_kg(damaged_kg)
    _require_some_quantity(damaged_boxes, damaged_kg)
    damaged_reason = (damaged_reason or "").strip()
    if not damaged_reason:
        raise RequestValidationFailed("A damage reason is required", details={"damaged_reason": "required"})

    def _op() -> StockRequestResult:
        product = get_product(db, product_id)
        if damaged_boxes > product.quantity_box or damaged_kg > to_kg(product.quantity_kg):
            raise RequestValidationFailed(
                "Damaged quantity exceeds current stock",
                details={
                    "damaged_boxes": damaged_boxes,
                    "available_boxes": product.quantity_box,
                    "damaged_kg": damaged_kg,
                    "available_kg": product.quantity_kg,
                },
            )
        damage = DamagedProduct(
            product_id=product_id,
            damaged_boxes=damaged_boxes,
            damaged_kg=damaged_kg,
            damaged_reason=damaged_reason,
            description=description,
            loss_value=box_kg_amount(
                damaged_boxes,
                damaged_kg,
                per_box=product.price_per_box,
                per_kg=product.price_per_kg,
            ),
            damaged_approval=False,
            damaged_date=damaged_date or date.today(),
            reported_by=actor.id,
        )
        db.add(damage)
        db.flush()
        movement = stage_movement(
            db,
            MovementDraft(
                movement_type=MovementType.DAMAGED,
                product_id=product_id,
                box_change=-damaged_boxes,
                kg_change=-damaged_kg,
                damaged_id=damage.id,
                reason=f"Damaged product report: {damaged_reason}",
            ),
            actor,
        )
        return StockRequestResult(record=damage, movement=movement)

    result = run_in_transaction(db, _op)
    log_proposed(result.movement)
    return result


def _edit_text(value) -> str:
    if isinstance(value, Decimal):
        value = to_money(value)
    return format_field_value(value)


def request_product_edit(
    db: Session,
    *,
    product_id: str,
    changes: dict,
    actor: Actor,
    reason: str | None = None,
) -> list[StockMovement]:
    """Open one product_edit movement per field whose value actually changes."""
    unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
    if unknown:
        raise RequestValidationFailed(
            "Some fields cannot be edited",
            details={field_name: "not editable" for field_name in unknown},
        )
    cleared = sorted(name for name, value in changes.items() if value is None and name not in NULLABLE_EDIT_FIELDS)
    if cleared:
        raise RequestValidationFailed(
            "Some fields cannot be cleared",
            details={field_name: "required" for field_name in cleared},
        )

    def _op() -> list[StockMovement]:
        product = get_product(db, product_id)
        movements = []
        for field_name, new_raw in changes.items():
            old_value = _edit_text(getattr(product, field_name))
            new_value = _edit_text(new_raw)
            if old_value == new_value:
                continue
            movements.append(
                stage_movement(
                    db,
                    MovementDraft(
                        movement_type=MovementType.PRODUCT_EDIT,
                        product_id=product_id,
                        field_changed=field_name,
                        old_value=old_value,
                        new_value=new_value,
                        reason=f"Product edit request: {reason}" if reason else "Product edit request",
                    ),
                    actor,
                )
            )
        if not movements:
            raise RequestValidationFailed(
                "No changes to submit",
                details={"product_id": product_id},
            )
        return movements

    movements = run_in_transaction(db, _op)
    for movement in movements:
        log_proposed(movement)
    return movements


def request_product_delete(db: Session, *, product_id: str, reason: str, actor: Actor) -> StockMovement:
    reason = (reason or "").strip()
    if not reason:
        raise RequestValidationFailed("A deletion reason is required", details={"reason": "required"})

    def _op() -> StockMovement:
        product = get_product(db, product_id)
        return stage_movement(
            db,
            MovementDraft(
                movement_type=MovementType.PRODUCT_DELETE,
                product_id=product_id,
                field_changed=PRODUCT_DELETION_FIELD,
                old_value=f"Product: {product.name} (ID: {product.id})",
                new_value=PENDING_DELETION,
                reason=f"Product deletion request: {reason}",
            ),
            actor,
        )

    movement = run_in_transaction(db, _op)
    log_proposed(movement)
    return movement


def request_product_create(db: Session, *, payload: ProductCreate, actor: Actor) -> StockMovement:
    def _op() -> StockMovement:
        return stage_movement(
            db,
            MovementDraft(
                movement_type=MovementType.PRODUCT_CREATE,
                field_changed=PRODUCT_CREATION_FIELD,
                new_value=payload.model_dump_json(),
                reason=f"Product creation request: {payload.name}",
            ),
            actor,
        )

    movement = run_in_transaction(db, _op)
    log_proposed(movement)
    return movement
