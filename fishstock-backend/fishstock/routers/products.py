from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fishstock.core.api_docs import error_responses
from fishstock.core.deps import get_db
from fishstock.core.permissions import require_permission
from fishstock.core.security_current import Actor
from fishstock.models.product import Product
from fishstock.routers.stock_movements import movement_list_out, movement_to_out
from fishstock.schemas.common import pagination_meta
from fishstock.schemas.movement import MovementListOut, MovementOut, ProductEditRequestOut
from fishstock.schemas.product import (
    ProductCreate,
    ProductDeleteIn,
    ProductListOut,
    ProductOut,
    ProductUpdate,
    StockSummaryOut,
)
from fishstock.services.movement_service import stock_summary
from fishstock.services.product_service import (
    get_product,
    list_low_stock_products,
    list_products,
    product_is_low_stock,
)
from fishstock.services.stock_request_service import (
    request_product_create,
    request_product_delete,
    request_product_edit,
)

router = APIRouter(prefix="/products", tags=["products"])


def product_to_out(product: Product) -> ProductOut:
    return ProductOut(
        id=product.id,
        name=product.name,
        category=product.category,
        quantity_box=product.quantity_box,
        quantity_kg=float(product.quantity_kg),
        box_to_kg_ratio=float(product.box_to_kg_ratio),
        cost_per_box=float(product.cost_per_box),
        cost_per_kg=float(product.cost_per_kg),
        price_per_box=float(product.price_per_box),
        price_per_kg=float(product.price_per_kg),
        boxed_low_stock_threshold=product.boxed_low_stock_threshold,
        expiry_date=product.expiry_date,
        is_low_stock=product_is_low_stock(product),
        created_at=product.created_at,
    )


@router.get(
    "",
    response_model=ProductListOut,
    summary="List products",
    responses=error_responses(401, 403, 422, 500),
)
def list_product_catalog(
    q: str | None = Query(default=None, description="Case-insensitive name search"),
    category: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("products.view")),
):
    rows, total = list_products(db, q=q, category=category, limit=limit, offset=offset)
    items = [product_to_out(row) for row in rows]
    return ProductListOut(
        items=items,
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
    )


@router.post(
    "",
    response_model=MovementOut,
    status_code=202,
    summary="Request a new product",
    description="Creates a pending product_create movement. The product exists once it is approved.",
    responses=error_responses(400, 401, 403, 422, 500),
)
def request_new_product(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("movements.propose")),
):
    return movement_to_out(request_product_create(db, payload=payload, actor=actor))


@router.get(
    "/low-stock",
    response_model=list[ProductOut],
    summary="List products at or below their low-stock threshold",
    responses=error_responses(401, 403, 500),
)
def list_low_stock(
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("products.view")),
):
    return [product_to_out(row) for row in list_low_stock_products(db)]


@router.get(
    "/{product_id}",
    response_model=ProductOut,
    summary="Get product",
    responses=error_responses(401, 403, 404, 500),
)
def get_product_detail(
    product_id: str,
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("products.view")),
):
    return product_to_out(get_product(db, product_id))


@router.patch(
    "/{product_id}",
    response_model=ProductEditRequestOut,
    status_code=202,
    summary="Request product edits",
    description="Opens one pending product_edit movement per changed field.",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def request_product_changes(
    product_id: str,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("movements.propose")),
):
    changes = payload.model_dump(exclude_unset=True, exclude={"reason"})
    movements = request_product_edit(
        db,
        product_id=product_id,
        changes=changes,
        actor=actor,
        reason=payload.reason,
    )
    return ProductEditRequestOut(
        product_id=product_id,
        movements=[movement_to_out(row) for row in movements],
    )


@router.delete(
    "/{product_id}",
    response_model=MovementOut,
    status_code=202,
    summary="Request product deletion",
    description="Opens a pending product_delete movement; approving it requires confirmation.",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def request_product_removal(
    product_id: str,
    payload: ProductDeleteIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("movements.propose")),
):
    return movement_to_out(
        request_product_delete(db, product_id=product_id, reason=payload.reason, actor=actor)
    )


@router.get(
    "/{product_id}/stock-summary",
    response_model=StockSummaryOut,
    summary="Stock levels and completed movement totals",
    responses=error_responses(401, 403, 404, 500),
)
def get_stock_summary(
    product_id: str,
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("products.view")),
):
    summary = stock_summary(db, product_id)
    product = summary.product
    return StockSummaryOut(
        product_id=product.id,
        name=product.name,
        quantity_box=product.quantity_box,
        quantity_kg=float(product.quantity_kg),
        box_to_kg_ratio=float(product.box_to_kg_ratio),
        total_kg=float(summary.total_kg),
        boxed_low_stock_threshold=product.boxed_low_stock_threshold,
        is_low_stock=summary.is_low_stock,
        boxes_in=summary.boxes_in,
        kg_in=float(summary.kg_in),
        boxes_damaged=summary.boxes_damaged,
        kg_damaged=float(summary.kg_damaged),
        pending_movements=summary.pending_movements,
    )


@router.get(
    "/{product_id}/movements",
    response_model=MovementListOut,
    summary="Movement history for a product",
    responses=error_responses(401, 403, 404, 422, 500),
)
def list_product_movements(
    product_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_permission("movements.view")),
):
    get_product(db, product_id)
    return movement_list_out(db, limit=limit, offset=offset, product_id=product_id)
