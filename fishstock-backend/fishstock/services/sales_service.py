import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fishstock.core.errors import DomainError, NotFoundError, RequestValidationFailed
from fishstock.core.money import ZERO_MONEY, to_money
from fishstock.core.observability import log_event
from fishstock.core.quantities import StockLevel
from fishstock.core.security_current import Actor
from fishstock.models.sales import Sale
from fishstock.services.allocation_service import (
    AllocationPlan,
    SalePricing,
    UnitRates,
    plan_allocation,
    price_allocation,
)
from fishstock.services.audit_service import log_audit_event
from fishstock.services.concurrency import run_in_transaction
from fishstock.services.product_service import get_product

logger = logging.getLogger("fishstock.sales")

PAYMENT_METHODS = frozenset({"momo_pay", "cash", "bank_transfer"})
PAYMENT_STATUSES = frozenset({"paid", "pending", "partial"})


@dataclass(frozen=True)
class Payment:
    method: str
    status: str = "paid"
    amount_paid: Decimal | None = None
    client_name: str | None = None
    email_address: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class SaleQuote:
    product_id: str
    plan: AllocationPlan
    pricing: SalePricing


@dataclass(frozen=True)
class SaleResult:
    sale: Sale
    plan: AllocationPlan
    pricing: SalePricing


def settle_payment(payment: Payment, total_amount: Decimal) -> tuple[Decimal, Decimal]:
    """Return (amount_paid, remaining_amount) for a sale total."""
    if payment.method not in PAYMENT_METHODS:
        raise RequestValidationFailed("Unknown payment method", details={"payment_method": payment.method})
    if payment.status not in PAYMENT_STATUSES:
        raise RequestValidationFailed("Unknown payment status", details={"payment_status": payment.status})
    if payment.status in {"pending", "partial"} and not (payment.client_name or "").strip():
        raise RequestValidationFailed(
            "Client name is required for pending or partial payments",
            details={"client_name": "required"},
        )

    if payment.amount_paid is None:
        amount_paid = total_amount if payment.status == "paid" else ZERO_MONEY
    else:
        amount_paid = to_money(payment.amount_paid)
    if amount_paid < 0 or amount_paid > total_amount:
        raise RequestValidationFailed(
            "Amount paid must be between zero and the sale total",
            details={"amount_paid": amount_paid, "total_amount": total_amount},
        )
    if payment.status == "paid" and amount_paid != total_amount:
        raise RequestValidationFailed(
            "A paid sale must be paid in full",
            details={"amount_paid": amount_paid, "total_amount": total_amount},
        )
    if payment.status == "partial" and (amount_paid <= 0 or amount_paid >= total_amount):
        raise RequestValidationFailed(
            "A partial payment must be more than zero and less than the total",
            details={"amount_paid": amount_paid, "total_amount": total_amount},
        )
    return amount_paid, to_money(total_amount - amount_paid)


def quote_sale(db: Session, product_id: str, requested_boxes: int, requested_kg: Decimal) -> SaleQuote:
    product = get_product(db, product_id)
    plan = plan_allocation(StockLevel.from_product(product), requested_boxes, requested_kg)
    return SaleQuote(
        product_id=product.id,
        plan=plan,
        pricing=price_allocation(plan, UnitRates.from_product(product)),
    )


def execute_sale(
    db: Session,
    *,
    product_id: str,
    requested_boxes: int,
    requested_kg: Decimal,
    payment: Payment,
    actor: Actor,
) -> SaleResult:
    """Allocate, deduct stock and record the sale in one transaction.

    Sales bypass the approval workflow. An infeasible request raises before
    anything is written.
    """

    def _op() -> SaleResult:
        product = get_product(db, product_id, for_update=True)
        plan = plan_allocation(StockLevel.from_product(product), requested_boxes, requested_kg)
        rates = UnitRates.from_product(product)
        pricing = price_allocation(plan, rates)
        amount_paid, remaining = settle_payment(payment, pricing.total_amount)

        product.quantity_box = plan.final_boxes
        product.quantity_kg = plan.final_kg
        sale = Sale(
            product_id=product.id,
            boxes_quantity=plan.requested_boxes,
            kg_quantity=plan.requested_kg,
            boxes_unboxed=plan.boxes_to_unbox,
            box_price=rates.price_per_box,
            kg_price=rates.price_per_kg,
            profit_per_box=pricing.profit_per_box,
            profit_per_kg=pricing.profit_per_kg,
            total_amount=pricing.total_amount,
            total_cost=pricing.total_cost,
            profit=pricing.profit,
            payment_method=payment.method,
            payment_status=payment.status,
            amount_paid=amount_paid,
            remaining_amount=remaining,
            client_name=payment.client_name,
            email_address=payment.email_address,
            phone=payment.phone,
            performed_by=actor.id,
        )
        db.add(sale)
        db.flush()
        log_audit_event(
            db,
            actor_id=actor.id,
            action="sale.create",
            target_type="sale",
            target_id=sale.id,
            metadata_json={
                "product_id": product.id,
                "requested_boxes": plan.requested_boxes,
                "requested_kg": str(plan.requested_kg),
                "boxes_unboxed": plan.boxes_to_unbox,
                "total_amount": str(pricing.total_amount),
            },
        )
        return SaleResult(sale=sale, plan=plan, pricing=pricing)

    try:
        result = run_in_transaction(db, _op)
    except DomainError as exc:
        log_event(
            logger,
            logging.INFO,
            "sale.infeasible",
            product_id=product_id,
            code=exc.code,
            error=exc.message,
        )
        raise
    db.refresh(result.sale)
    log_event(
        logger,
        logging.INFO,
        "sale.executed",
        sale_id=result.sale.id,
        product_id=product_id,
        boxes_unboxed=result.plan.boxes_to_unbox,
        total_amount=str(result.pricing.total_amount),
        warnings=result.plan.warnings,
    )
    return result


def get_sale(db: Session, sale_id: str) -> Sale:
    sale = db.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    db: Session,
    *,
    product_id: str | None = None,
    payment_status: str | None = None,
    payment_method: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Sale], int]:
    filters = []
    if product_id:
        filters.append(Sale.product_id == product_id)
    if payment_status:
        filters.append(Sale.payment_status == payment_status)
    if payment_method:
        filters.append(Sale.payment_method == payment_method)
    if start_date:
        filters.append(Sale.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        filters.append(Sale.created_at < datetime.combine(end_date + timedelta(days=1), time.min))

    total = int(db.execute(select(func.count(Sale.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(Sale)
        .where(*filters)
        .order_by(Sale.created_at.desc(), Sale.id.asc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return list(rows), total
