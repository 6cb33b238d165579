from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from fishstock.core.api_docs import error_responses
from fishstock.core.deps import get_db
from fishstock.core.permissions import require_permission
from fishstock.core.security_current import Actor
from fishstock.models.movement import MovementType, StockMovement
from fishstock.schemas.common import pagination_meta
from fishstock.schemas.movement import (
    ApproveIn,
    CancelIn,
    MovementListOut,
    MovementOut,
    MovementProposeIn,
    MovementStatusName,
    MovementTypeName,
    PendingSummaryOut,
    RejectIn,
)
from fishstock.services.movement_rules import MovementDraft
from fishstock.services.movement_service import (
    approve_movement,
    cancel_movement,
    get_movement,
    list_movements,
    pending_summary,
    propose_movement,
    reject_movement,
)

router = APIRouter(prefix="/stock-movements", tags=["stock-movements"])


def movement_to_out(row: StockMovement) -> MovementOut:
    return MovementOut(
        id=row.id,
        product_id=row.product_id,
        movement_type=row.movement_type,
        status=row.status,
        box_change=row.box_change,
        kg_change=float(row.kg_change),
        stock_addition_id=row.stock_addition_id,
        damaged_id=row.damaged_id,
        correction_id=row.correction_id,
        field_changed=row.field_changed,
        old_value=row.old_value,
        new_value=row.new_value,
        reason=row.reason,
        performed_by=row.performed_by,
        resolved_by=row.resolved_by,
        resolved_at=row.resolved_at,
        created_at=row.created_at,
    )


def movement_list_out(db: Session, *, limit: int, offset: int, **filters) -> MovementListOut:
    rows, total = list_movements(db, limit=limit, offset=offset, **filters)
    items = [movement_to_out(row) for row in rows]
    return MovementListOut(
        items=items,
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
    )


@router.get(
    "",
    response_model=MovementListOut,
    summary="List stock movements",
    responses=error_responses(400, 401, 403, 422, 500),
)
def list_stock_movements(
    product_id: str | None = Query(default=None),
    movement_type: MovementTypeName | None = Query(default=None),
    status: MovementStatusName | None = Query(default=None),
    performed_by: str | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    sort: Literal["newest", "oldest"] = Query(default="newest"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("movements.view")),
):
    if date_from and date_to and date_to < date_from:
        raise HTTPException(status_code=400, detail="date_to cannot be before date_from")
    return movement_list_out(
        db,
        limit=limit,
        offset=offset,
        product_id=product_id,
        movement_type=movement_type,
        status=status,
        performed_by=performed_by,
        date_from=date_from,
        date_to=date_to,
        newest_first=sort == "newest",
    )


@router.post(
    "",
    response_model=MovementOut,
    status_code=202,
    summary="Propose a stock movement",
    description="Validates the movement against its type rules and stores it as pending.",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def propose_stock_movement(
    payload: MovementProposeIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("movements.propose")),
):
    draft = MovementDraft(
        movement_type=MovementType(payload.movement_type),
        product_id=payload.product_id,
        box_change=payload.box_change,
        kg_change=payload.kg_change,
        stock_addition_id=payload.stock_addition_id,
        damaged_id=payload.damaged_id,
        correction_id=payload.correction_id,
        field_changed=payload.field_changed,
        old_value=payload.old_value,
        new_value=payload.new_value,
        reason=payload.reason,
    )
    return movement_to_out(propose_movement(db, draft, actor))


@router.get(
    "/pending/summary",
    response_model=PendingSummaryOut,
    summary="Count pending movements by type",
    responses=error_responses(401, 403, 500),
)
def get_pending_summary(
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("movements.view")),
):
    return PendingSummaryOut(**pending_summary(db))


@router.get(
    "/{movement_id}",
    response_model=MovementOut,
    summary="Get a stock movement",
    responses=error_responses(401, 403, 404, 500),
)
def get_stock_movement(
    movement_id: str,
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("movements.view")),
):
    return movement_to_out(get_movement(db, movement_id))


@router.post(
    "/{movement_id}/approve",
    response_model=MovementOut,
    summary="Approve a pending movement",
    description=(
        "Completes the movement and applies its effect atomically. "
        "Product deletions also require `confirm: true`. "
        "Acting on a movement that is no longer pending returns 409."
    ),
    responses=error_responses(400, 401, 403, 404, 409, 422, 500),
)
def approve_stock_movement(
    movement_id: str,
    payload: ApproveIn | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("movements.approve")),
):
    confirm = payload.confirm if payload else False
    return movement_to_out(approve_movement(db, movement_id, actor, confirm=confirm))


@router.post(
    "/{movement_id}/reject",
    response_model=MovementOut,
    summary="Reject a pending movement",
    responses=error_responses(400, 401, 403, 404, 409, 422, 500),
)
def reject_stock_movement(
    movement_id: str,
    payload: RejectIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("movements.reject")),
):
    return movement_to_out(reject_movement(db, movement_id, actor, payload.reason))


@router.post(
    "/{movement_id}/cancel",
    response_model=MovementOut,
    summary="Cancel a pending movement",
    description="Allowed for the original requester, or for managers and owners.",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def cancel_stock_movement(
    movement_id: str,
    payload: CancelIn | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("movements.propose")),
):
    reason = payload.reason if payload else None
    return movement_to_out(cancel_movement(db, movement_id, actor, reason))
