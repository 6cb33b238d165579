from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from fishstock.core.api_docs import error_responses
from fishstock.core.deps import get_db
from fishstock.core.permissions import require_permission
from fishstock.core.security_current import Actor
from fishstock.models.sales import Sale
from fishstock.schemas.common import pagination_meta
from fishstock.schemas.sales import (
    AllocationOut,
    PaymentMethod,
    PaymentStatus,
    SaleCreate,
    SaleCreateOut,
    SaleListOut,
    SaleOut,
    SaleQuantityIn,
    SaleQuoteOut,
)
from fishstock.services.allocation_service import AllocationPlan
from fishstock.services.sales_service import Payment, execute_sale, get_sale, list_sales, quote_sale

router = APIRouter(prefix="/sales", tags=["sales"])


def _allocation_out(plan: AllocationPlan) -> AllocationOut:
    return AllocationOut(
        requested_boxes=plan.requested_boxes,
        requested_kg=float(plan.requested_kg),
        boxes_to_unbox=plan.boxes_to_unbox,
        final_boxes=plan.final_boxes,
        final_kg=float(plan.final_kg),
        warnings=list(plan.warnings),
        steps=list(plan.steps),
    )


def _sale_out(row: Sale) -> SaleOut:
    return SaleOut(
        id=row.id,
        product_id=row.product_id,
        boxes_quantity=row.boxes_quantity,
        kg_quantity=float(row.kg_quantity),
        boxes_unboxed=row.boxes_unboxed,
        box_price=float(row.box_price),
        kg_price=float(row.kg_price),
        total_amount=float(row.total_amount),
        total_cost=float(row.total_cost),
        profit=float(row.profit),
        profit_per_box=float(row.profit_per_box),
        profit_per_kg=float(row.profit_per_kg),
        payment_method=row.payment_method,
        payment_status=row.payment_status,
        amount_paid=float(row.amount_paid),
        remaining_amount=float(row.remaining_amount),
        client_name=row.client_name,
        email_address=row.email_address,
        phone=row.phone,
        performed_by=row.performed_by,
        created_at=row.created_at,
    )


@router.post(
    "/quote",
    response_model=SaleQuoteOut,
    summary="Preview a sale allocation",
    description="Computes unboxing, resulting stock and totals without changing anything.",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def quote(
    payload: SaleQuantityIn,
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("sales.view")),
):
    result = quote_sale(db, payload.product_id, payload.requested_boxes, payload.requested_kg)
    return SaleQuoteOut(
        product_id=result.product_id,
        allocation=_allocation_out(result.plan),
        total_amount=float(result.pricing.total_amount),
        total_cost=float(result.pricing.total_cost),
        profit=float(result.pricing.profit),
    )


@router.post(
    "",
    response_model=SaleCreateOut,
    summary="Create sale",
    description=(
        "Allocates the request against boxes and loose kg, opening boxes when loose stock "
        "runs short, then deducts stock and records the sale in one transaction."
    ),
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def create_sale(
    payload: SaleCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("sales.create")),
):
    result = execute_sale(
        db,
        product_id=payload.product_id,
        requested_boxes=payload.requested_boxes,
        requested_kg=payload.requested_kg,
        payment=Payment(
            method=payload.payment_method,
            status=payload.payment_status,
            amount_paid=payload.amount_paid,
            client_name=payload.client_name,
            email_address=payload.email_address,
            phone=payload.phone,
        ),
        actor=actor,
    )
    return SaleCreateOut(sale=_sale_out(result.sale), allocation=_allocation_out(result.plan))


@router.get(
    "",
    response_model=SaleListOut,
    summary="List sales",
    responses=error_responses(400, 401, 403, 422, 500),
)
def list_sale_history(
    product_id: str | None = Query(default=None),
    payment_status: PaymentStatus | None = Query(default=None),
    payment_method: PaymentMethod | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("sales.view")),
):
    if start_date and end_date and end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date cannot be before start_date")
    rows, total = list_sales(
        db,
        product_id=product_id,
        payment_status=payment_status,
        payment_method=payment_method,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    items = [_sale_out(row) for row in rows]
    return SaleListOut(
        items=items,
        start_date=start_date,
        end_date=end_date,
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
    )


@router.get(
    "/{sale_id}",
    response_model=SaleOut,
    summary="Get sale",
    responses=error_responses(401, 403, 404, 500),
)
def get_sale_detail(
    sale_id: str,
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("sales.view")),
):
    return _sale_out(get_sale(db, sale_id))
