from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fishstock.core.api_docs import error_responses
from fishstock.core.deps import get_db
from fishstock.core.permissions import require_permission
from fishstock.core.security_current import Actor
from fishstock.models.movement import DamagedProduct, StockAddition, StockCorrection
from fishstock.routers.stock_movements import movement_to_out
from fishstock.schemas.common import pagination_meta
from fishstock.schemas.movement import (
    DamagedProductListOut,
    DamagedProductOut,
    DamageReportIn,
    DamageReportOut,
    StockAdditionIn,
    StockAdditionListOut,
    StockAdditionOut,
    StockAdditionRequestOut,
    StockCorrectionIn,
    StockCorrectionListOut,
    StockCorrectionOut,
    StockCorrectionRequestOut,
)
from fishstock.services.stock_request_service import (
    report_damage,
    request_stock_addition,
    request_stock_correction,
)

additions_router = APIRouter(prefix="/stock-additions", tags=["stock-requests"])
corrections_router = APIRouter(prefix="/stock-corrections", tags=["stock-requests"])
damage_router = APIRouter(prefix="/damaged-products", tags=["stock-requests"])


def _page(db: Session, model, *, product_id: str | None, limit: int, offset: int):
    filters = [model.product_id == product_id] if product_id else []
    total = int(db.execute(select(func.count(model.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(model).where(*filters).order_by(model.created_at.desc(), model.id.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return rows, total


def _addition_out(row: StockAddition) -> StockAdditionOut:
    return StockAdditionOut(
        id=row.id,
        product_id=row.product_id,
        boxes_added=row.boxes_added,
        kg_added=float(row.kg_added),
        total_cost=float(row.total_cost),
        delivery_date=row.delivery_date,
        performed_by=row.performed_by,
        created_at=row.created_at,
    )


def _correction_out(row: StockCorrection) -> StockCorrectionOut:
    return StockCorrectionOut(
        id=row.id,
        product_id=row.product_id,
        box_adjustment=row.box_adjustment,
        kg_adjustment=float(row.kg_adjustment),
        correction_reason=row.correction_reason,
        correction_date=row.correction_date,
        performed_by=row.performed_by,
        created_at=row.created_at,
    )


def _damage_out(row: DamagedProduct) -> DamagedProductOut:
    return DamagedProductOut(
        id=row.id,
        product_id=row.product_id,
        damaged_boxes=row.damaged_boxes,
        damaged_kg=float(row.damaged_kg),
        damaged_reason=row.damaged_reason,
        description=row.description,
        loss_value=float(row.loss_value),
        damaged_approval=row.damaged_approval,
        damaged_date=row.damaged_date,
        reported_by=row.reported_by,
        created_at=row.created_at,
    )


@additions_router.post(
    "",
    response_model=StockAdditionRequestOut,
    status_code=202,
    summary="Request a stock addition",
    description="Records the delivery and opens a pending new_stock movement.",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def create_stock_addition(
    payload: StockAdditionIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("movements.propose")),
):
    result = request_stock_addition(
        db,
        product_id=payload.product_id,
        boxes_added=payload.boxes_added,
        kg_added=payload.kg_added,
        total_cost=payload.total_cost,
        delivery_date=payload.delivery_date,
        actor=actor,
    )
    return StockAdditionRequestOut(
        stock_addition=_addition_out(result.record),
        movement=movement_to_out(result.movement),
    )


@additions_router.get(
    "",
    response_model=StockAdditionListOut,
    summary="List stock additions",
    responses=error_responses(401, 403, 422, 500),
)
def list_stock_additions(
    product_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("movements.view")),
):
    rows, total = _page(db, StockAddition, product_id=product_id, limit=limit, offset=offset)
    items = [_addition_out(row) for row in rows]
    return StockAdditionListOut(
        items=items,
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
    )


@corrections_router.post(
    "",
    response_model=StockCorrectionRequestOut,
    status_code=202,
    summary="Request a stock correction",
    description="Records a signed box/kg adjustment and opens a pending stock_correction movement.",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def create_stock_correction(
    payload: StockCorrectionIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("movements.propose")),
):
    result = request_stock_correction(
        db,
        product_id=payload.product_id,
        box_adjustment=payload.box_adjustment,
        kg_adjustment=payload.kg_adjustment,
        correction_reason=payload.correction_reason,
        correction_date=payload.correction_date,
        actor=actor,
    )
    return StockCorrectionRequestOut(
        stock_correction=_correction_out(result.record),
        movement=movement_to_out(result.movement),
    )


@corrections_router.get(
    "",
    response_model=StockCorrectionListOut,
    summary="List stock corrections",
    responses=error_responses(401, 403, 422, 500),
)
def list_stock_corrections(
    product_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("movements.view")),
):
    rows, total = _page(db, StockCorrection, product_id=product_id, limit=limit, offset=offset)
    items = [_correction_out(row) for row in rows]
    return StockCorrectionListOut(
        items=items,
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
    )


@damage_router.post(
    "",
    response_model=DamageReportOut,
    status_code=202,
    summary="Report damaged stock",
    description="Records the damage and opens a pending damaged movement with negative changes.",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def create_damage_report(
    payload: DamageReportIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("movements.propose")),
):
    result = report_damage(
        db,
        product_id=payload.product_id,
        damaged_boxes=payload.damaged_boxes,
        damaged_kg=payload.damaged_kg,
        damaged_reason=payload.damaged_reason,
        description=payload.description,
        damaged_date=payload.damaged_date,
        actor=actor,
    )
    return DamageReportOut(
        damaged_product=_damage_out(result.record),
        movement=movement_to_out(result.movement),
    )


@damage_router.get(
    "",
    response_model=DamagedProductListOut,
    summary="List damage reports",
    responses=error_responses(401, 403, 422, 500),
)
def list_damage_reports(
    product_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("movements.view")),
):
    rows, total = _page(db, DamagedProduct, product_id=product_id, limit=limit, offset=offset)
    items = [_damage_out(row) for row in rows]
    return DamagedProductListOut(
        items=items,
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
    )
