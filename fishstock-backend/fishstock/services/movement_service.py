"""Movement ledger and approval state machine.

A movement is proposed as ``pending`` and is resolved exactly once:

    pending -> completed | rejected | cancelled

Every resolution is a compare-and-set on ``status = 'pending'`` inside the same
transaction as its side effect, so a movement can never be applied twice and a
failed side effect leaves it pending.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any

from pydantic import ValidationError
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fishstock.core.errors import (
    MovementValidationError,
    NegativeStockFault,
    NotFoundError,
    NotPending,
    ParsePayloadError,
    PermissionDenied,
    RequestValidationFailed,
    RuleViolation,
)
from fishstock.core.observability import log_event
from fishstock.core.permissions import has_permission
from fishstock.core.quantities import StockLevel, ZERO_KG, apply_delta, to_kg
from fishstock.core.security_current import Actor
from fishstock.models.movement import (
    DamagedProduct,
    MovementStatus,
    MovementType,
    StockAddition,
    StockCorrection,
    StockMovement,
)
from fishstock.models.product import Product
from fishstock.models.sales import Sale
from fishstock.schemas.product import ProductCreate
from fishstock.services.audit_service import log_audit_event
from fishstock.services.concurrency import lock_for_update, run_in_transaction
from fishstock.services.movement_rules import MovementDraft, ensure_valid, parse_field_value
from fishstock.services.product_service import get_product, product_is_low_stock

logger = logging.getLogger("fishstock.movements")

DELETION_REJECTED = "DELETION_REJECTED"

_REFERENCE_MODELS = {
    "stock_addition_id": StockAddition,
    "damaged_id": DamagedProduct,
    "correction_id": StockCorrection,
}


def _append_note(existing: str | None, note: str) -> str:
    return f"{existing} | {note}" if existing else note


def _record_change(record: StockAddition | StockCorrection | DamagedProduct) -> tuple[int, Decimal]:
    """Signed box/kg change a stock record justifies."""
    if isinstance(record, StockAddition):
        return record.boxes_added, to_kg(record.kg_added)
    if isinstance(record, StockCorrection):
        return record.box_adjustment, to_kg(record.kg_adjustment)
    return -record.damaged_boxes, -to_kg(record.damaged_kg)


def _check_reference_record(db: Session, draft: MovementDraft, field_name: str, reference_id: str) -> None:
    record = db.get(_REFERENCE_MODELS[field_name], reference_id)
    if record is None:
        raise NotFoundError(
            "Referenced stock record not found",
            details={field_name: reference_id},
        )
    if record.product_id != draft.product_id:
        raise MovementValidationError(
            RuleViolation("reference_id", field_name, f"{field_name} belongs to a different product")
        )

    boxes, kg = _record_change(record)
    if int(draft.box_change) != boxes or to_kg(draft.kg_change) != kg:
        raise MovementValidationError(
            RuleViolation(
                "quantity_change",
                "box_change",
                f"Change must match the referenced record: {boxes} boxes and {kg} kg",
            )
        )

    column = getattr(StockMovement, field_name)
    linked_id = db.execute(
        select(StockMovement.id)
        .where(
            column == reference_id,
            StockMovement.status.in_([MovementStatus.PENDING.value, MovementStatus.COMPLETED.value]),
        )
        .limit(1)
    ).scalar_one_or_none()
    if linked_id is not None:
        raise MovementValidationError(
            RuleViolation("reference_id", field_name, f"{field_name} is already used by movement {linked_id}")
        )


def _require_permission(actor: Actor, permission: str) -> None:
    if not has_permission(role=actor.role, permission=permission):
        raise PermissionDenied(
            "Insufficient permission for this action",
            details={"permission": permission, "role": actor.role},
        )


# Proposal

def stage_movement(db: Session, draft: MovementDraft, actor: Actor) -> StockMovement:
    """Validate ``draft`` and add it to the session as pending. The caller commits."""
    ensure_valid(draft)

    if draft.product_id:
        get_product(db, draft.product_id)
    for field_name in _REFERENCE_MODELS:
        reference_id = getattr(draft, field_name)
        if reference_id:
            _check_reference_record(db, draft, field_name, reference_id)

    movement = StockMovement(
        product_id=draft.product_id,
        movement_type=draft.movement_type.value,
        status=MovementStatus.PENDING.value,
        box_change=int(draft.box_change),
        kg_change=to_kg(draft.kg_change),
        stock_addition_id=draft.stock_addition_id,
        damaged_id=draft.damaged_id,
        correction_id=draft.correction_id,
        field_changed=draft.field_changed,
        old_value=draft.old_value,
        new_value=draft.new_value,
        reason=draft.reason,
        performed_by=actor.id,
    )
    db.add(movement)
    try:
        db.flush()
    except IntegrityError as exc:
        # A concurrent proposal claimed the same stock record first.
        field_name = next((name for name in _REFERENCE_MODELS if getattr(draft, name)), None)
        if field_name is None:
            raise
        raise MovementValidationError(
            RuleViolation("reference_id", field_name, f"{field_name} is already used by another movement")
        ) from exc
    log_audit_event(
        db,
        actor_id=actor.id,
        action="movement.propose",
        target_type="stock_movement",
        target_id=movement.id,
        metadata_json={
            "movement_type": movement.movement_type,
            "product_id": movement.product_id,
            "box_change": movement.box_change,
            "kg_change": str(movement.kg_change),
            "field_changed": movement.field_changed,
        },
    )
    return movement


def log_proposed(movement: StockMovement) -> None:
    log_event(
        logger,
        logging.INFO,
        "movement.proposed",
        movement_id=movement.id,
        movement_type=movement.movement_type,
        product_id=movement.product_id,
        performed_by=movement.performed_by,
    )


def propose_movement(db: Session, draft: MovementDraft, actor: Actor) -> StockMovement:
    movement = run_in_transaction(db, lambda: stage_movement(db, draft, actor))
    log_proposed(movement)
    return movement


# Queries

def get_movement(db: Session, movement_id: str) -> StockMovement:
    movement = db.get(StockMovement, movement_id)
    if movement is None:
        raise NotFoundError("Movement not found", details={"movement_id": movement_id})
    return movement


def list_movements(
    db: Session,
    *,
    product_id: str | None = None,
    movement_type: MovementType | None = None,
    status: MovementStatus | None = None,
    performed_by: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 50,
    offset: int = 0,
    newest_first: bool = True,
) -> tuple[list[StockMovement], int]:
    filters = []
    if product_id:
        filters.append(StockMovement.product_id == product_id)
    if movement_type:
        filters.append(StockMovement.movement_type == MovementType(movement_type).value)
    if status:
        filters.append(StockMovement.status == MovementStatus(status).value)
    if performed_by:
        filters.append(StockMovement.performed_by == performed_by)
    if date_from:
        filters.append(StockMovement.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        filters.append(StockMovement.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    total = int(db.execute(select(func.count(StockMovement.id)).where(*filters)).scalar_one())
    order = StockMovement.created_at.desc() if newest_first else StockMovement.created_at.asc()
    rows = db.execute(
        select(StockMovement)
        .where(*filters)
        .order_by(order, StockMovement.id.asc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return list(rows), total


def pending_summary(db: Session) -> dict[str, Any]:
    rows = db.execute(
        select(StockMovement.movement_type, func.count(StockMovement.id))
        .where(StockMovement.status == MovementStatus.PENDING.value)
        .group_by(StockMovement.movement_type)
    ).all()
    by_type = {movement_type.value: 0 for movement_type in MovementType}
    for movement_type, count in rows:
        by_type[movement_type] = int(count)
    return {"total": sum(by_type.values()), "by_type": by_type}


@dataclass(frozen=True)
class StockSummary:
    product: Product
    total_kg: Decimal
    is_low_stock: bool
    boxes_in: int
    kg_in: Decimal
    boxes_damaged: int
    kg_damaged: Decimal
    pending_movements: int


def stock_summary(db: Session, product_id: str) -> StockSummary:
    product = get_product(db, product_id)
    totals = {
        movement_type: (int(boxes or 0), to_kg(kg or 0))
        for movement_type, boxes, kg in db.execute(
            select(
                StockMovement.movement_type,
                func.sum(StockMovement.box_change),
                func.sum(StockMovement.kg_change),
            )
            .where(
                StockMovement.product_id == product_id,
                StockMovement.status == MovementStatus.COMPLETED.value,
                StockMovement.movement_type.in_(
                    [MovementType.NEW_STOCK.value, MovementType.DAMAGED.value]
                ),
            )
            .group_by(StockMovement.movement_type)
        ).all()
    }
    pending = int(
        db.execute(
            select(func.count(StockMovement.id)).where(
                StockMovement.product_id == product_id,
                StockMovement.status == MovementStatus.PENDING.value,
            )
        ).scalar_one()
    )
    boxes_in, kg_in = totals.get(MovementType.NEW_STOCK.value, (0, ZERO_KG))
    boxes_damaged, kg_damaged = totals.get(MovementType.DAMAGED.value, (0, ZERO_KG))
    return StockSummary(
        product=product,
        total_kg=StockLevel.from_product(product).total_kg,
        is_low_stock=product_is_low_stock(product),
        boxes_in=boxes_in,
        kg_in=kg_in,
        boxes_damaged=abs(boxes_damaged),
        kg_damaged=abs(kg_damaged),
        pending_movements=pending,
    )


# Transitions

def _lock_movement(db: Session, movement_id: str) -> StockMovement:
    movement = db.execute(
        lock_for_update(select(StockMovement).where(StockMovement.id == movement_id))
    ).scalar_one_or_none()
    if movement is None:
        raise NotFoundError("Movement not found", details={"movement_id": movement_id})
    return movement


def _require_pending(movement: StockMovement) -> None:
    if movement.status != MovementStatus.PENDING.value:
        log_event(
            logger,
            logging.WARNING,
            "movement.not_pending",
            movement_id=movement.id,
            status=movement.status,
        )
        raise NotPending(movement.id, movement.status)


def claim_pending(
    db: Session,
    movement_id: str,
    new_status: MovementStatus,
    *,
    resolved_by: str,
    **values: Any,
) -> None:
    """Move a pending movement to ``new_status``; raises NotPending if someone got there first."""
    result = db.execute(
        update(StockMovement)
        .where(
            StockMovement.id == movement_id,
            StockMovement.status == MovementStatus.PENDING.value,
        )
        .values(
            status=new_status.value,
            resolved_by=resolved_by,
            resolved_at=datetime.now(timezone.utc),
            **values,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = db.execute(
            select(StockMovement.status).where(StockMovement.id == movement_id)
        ).scalar_one_or_none()
        log_event(
            logger,
            logging.WARNING,
            "movement.not_pending",
            movement_id=movement_id,
            status=current,
        )
        raise NotPending(movement_id, current)


def _apply_quantity_change(db: Session, movement: StockMovement) -> None:
    product = get_product(db, movement.product_id, for_update=True)
    level = StockLevel.from_product(product)
    try:
        new_boxes, new_kg = apply_delta(level, movement.box_change, movement.kg_change)
    except NegativeStockFault as exc:
        log_event(
            logger,
            logging.ERROR,
            "stock.negative_fault",
            movement_id=movement.id,
            product_id=product.id,
            **exc.details,
        )
        raise
    product.quantity_box = new_boxes
    product.quantity_kg = new_kg

    if movement.movement_type == MovementType.DAMAGED.value and movement.damaged_id:
        damage = db.get(DamagedProduct, movement.damaged_id)
        if damage is not None:
            damage.damaged_approval = True


def _apply_product_edit(db: Session, movement: StockMovement) -> None:
    product = get_product(db, movement.product_id, for_update=True)
    try:
        value = parse_field_value(movement.field_changed, movement.new_value)
    except ParsePayloadError as exc:
        log_event(
            logger,
            logging.ERROR,
            "movement.payload_parse_failed",
            movement_id=movement.id,
            error=exc.message,
        )
        raise
    setattr(product, movement.field_changed, value)


def _create_product_from_payload(db: Session, movement: StockMovement) -> Product:
    try:
        payload = ProductCreate.model_validate_json(movement.new_value or "")
    except ValidationError as exc:
        log_event(
            logger,
            logging.ERROR,
            "movement.payload_parse_failed",
            movement_id=movement.id,
            error=str(exc),
        )
        raise ParsePayloadError(
            "Product creation payload is invalid",
            details={"movement_id": movement.id},
        ) from exc
    product = Product(**payload.model_dump())
    db.add(product)
    db.flush()
    return product


def _delete_product_cascade(db: Session, product_id: str) -> dict[str, int]:
    counts = {}
    for label, model in (
        ("movements", StockMovement),
        ("sales", Sale),
        ("stock_additions", StockAddition),
        ("stock_corrections", StockCorrection),
        ("damaged_products", DamagedProduct),
    ):
        result = db.execute(
            delete(model)
            .where(model.product_id == product_id)
            .execution_options(synchronize_session=False)
        )
        counts[label] = result.rowcount
    db.execute(
        delete(Product).where(Product.id == product_id).execution_options(synchronize_session=False)
    )
    return counts


def approve_movement(
    db: Session,
    movement_id: str,
    approver: Actor,
    *,
    confirm: bool = False,
) -> StockMovement:
    """Complete a pending movement and apply its effect in the same transaction.

    Quantity movements add their signed deltas to the product, product_edit sets
    one attribute, product_create inserts the product and links it, and
    product_delete (only with ``confirm``) removes the product with its history.
    """
    _require_permission(approver, "movements.approve")
    deleted: dict[str, Any] = {}

    def _op() -> StockMovement:
        movement = _lock_movement(db, movement_id)
        _require_pending(movement)
        movement_type = MovementType(movement.movement_type)
        reason = _append_note(movement.reason, f"APPROVED BY: {approver.id}")

        match movement_type:
            case MovementType.NEW_STOCK | MovementType.STOCK_CORRECTION | MovementType.DAMAGED:
                claim_pending(db, movement.id, MovementStatus.COMPLETED, resolved_by=approver.id, reason=reason)
                _apply_quantity_change(db, movement)
            case MovementType.PRODUCT_EDIT:
                claim_pending(db, movement.id, MovementStatus.COMPLETED, resolved_by=approver.id, reason=reason)
                _apply_product_edit(db, movement)
            case MovementType.PRODUCT_CREATE:
                product = _create_product_from_payload(db, movement)
                claim_pending(
                    db,
                    movement.id,
                    MovementStatus.COMPLETED,
                    resolved_by=approver.id,
                    reason=reason,
                    product_id=product.id,
                )
            case MovementType.PRODUCT_DELETE:
                if not confirm:
                    raise RequestValidationFailed(
                        "Deleting a product is irreversible; approve again with confirm=true",
                        details={"confirm": "required for product_delete"},
                    )
                product_id = movement.product_id
                get_product(db, product_id, for_update=True)
                # Detach first so the approving movement survives as the deletion record.
                claim_pending(
                    db,
                    movement.id,
                    MovementStatus.COMPLETED,
                    resolved_by=approver.id,
                    reason=reason,
                    product_id=None,
                )
                deleted.update(_delete_product_cascade(db, product_id))
                deleted["product_id"] = product_id
                log_audit_event(
                    db,
                    actor_id=approver.id,
                    action="product.delete",
                    target_type="product",
                    target_id=product_id,
                    metadata_json={"movement_id": movement.id, "old_value": movement.old_value, **deleted},
                )
            case _:
                raise ValueError(f"Unhandled movement type: {movement_type!r}")

        log_audit_event(
            db,
            actor_id=approver.id,
            action="movement.approve",
            target_type="stock_movement",
            target_id=movement.id,
            metadata_json={"movement_type": movement_type.value},
        )
        return movement

    movement = run_in_transaction(db, _op)
    db.refresh(movement)
    log_event(
        logger,
        logging.INFO,
        "movement.approved",
        movement_id=movement.id,
        movement_type=movement.movement_type,
        product_id=movement.product_id,
        approved_by=approver.id,
    )
    if deleted:
        log_event(logger, logging.INFO, "product.deleted", **deleted)
    return movement


def reject_movement(db: Session, movement_id: str, approver: Actor, reason: str) -> StockMovement:
    _require_permission(approver, "movements.reject")
    cleaned_reason = (reason or "").strip()
    if not cleaned_reason:
        raise RequestValidationFailed(
            "A rejection reason is required",
            details={"reason": "must not be empty"},
        )

    def _op() -> StockMovement:
        movement = _lock_movement(db, movement_id)
        _require_pending(movement)
        values: dict[str, Any] = {
            "reason": _append_note(movement.reason, f"REJECTED: {cleaned_reason}"),
        }
        if movement.movement_type == MovementType.PRODUCT_DELETE.value:
            values["new_value"] = DELETION_REJECTED
        claim_pending(db, movement.id, MovementStatus.REJECTED, resolved_by=approver.id, **values)
        log_audit_event(
            db,
            actor_id=approver.id,
            action="movement.reject",
            target_type="stock_movement",
            target_id=movement.id,
            metadata_json={"movement_type": movement.movement_type, "reason": cleaned_reason},
        )
        return movement

    movement = run_in_transaction(db, _op)
    db.refresh(movement)
    log_event(
        logger,
        logging.INFO,
        "movement.rejected",
        movement_id=movement.id,
        movement_type=movement.movement_type,
        rejected_by=approver.id,
    )
    return movement


def cancel_movement(
    db: Session,
    movement_id: str,
    requester: Actor,
    reason: str | None = None,
) -> StockMovement:
    def _op() -> StockMovement:
        movement = _lock_movement(db, movement_id)
        if movement.performed_by != requester.id and not has_permission(
            role=requester.role, permission="movements.cancel.any"
        ):
            raise PermissionDenied(
                "Only the requester or a manager can cancel this movement",
                details={"movement_id": movement.id},
            )
        _require_pending(movement)
        note = f"CANCELLED: {reason.strip()}" if reason and reason.strip() else f"CANCELLED BY: {requester.id}"
        claim_pending(
            db,
            movement.id,
            MovementStatus.CANCELLED,
            resolved_by=requester.id,
            reason=_append_note(movement.reason, note),
        )
        log_audit_event(
            db,
            actor_id=requester.id,
            action="movement.cancel",
            target_type="stock_movement",
            target_id=movement.id,
            metadata_json={"movement_type": movement.movement_type},
        )
        return movement

    movement = run_in_transaction(db, _op)
    db.refresh(movement)
    log_event(
        logger,
        logging.INFO,
        "movement.cancelled",
        movement_id=movement.id,
        movement_type=movement.movement_type,
        cancelled_by=requester.id,
    )
    return movement
