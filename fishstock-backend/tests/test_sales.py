from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import EMPLOYEE, make_product
from fishstock.core.errors import InsufficientBoxes, InsufficientInventory, RequestValidationFailed
from fishstock.models.audit_log import AuditLog
from fishstock.models.sales import Sale
from fishstock.services.sales_service import (
    Payment,
    execute_sale,
    list_sales,
    quote_sale,
    settle_payment,
)


def _sell(db, product, boxes=0, kg="0", payment=None):
    return execute_sale(
        db,
        product_id=product.id,
        requested_boxes=boxes,
        requested_kg=Decimal(kg),
        payment=payment or Payment(method="cash"),
        actor=EMPLOYEE,
    )


def test_sale_unboxes_and_deducts_stock(db_session):
    product = make_product(db_session)

    result = _sell(db_session, product, kg="15")

    assert result.plan.boxes_to_unbox == 1
    db_session.refresh(product)
    assert product.quantity_box == 9
    assert product.quantity_kg == Decimal("10.00")

    sale = result.sale
    assert sale.boxes_unboxed == 1
    assert sale.kg_quantity == Decimal("15.00")
    assert sale.total_amount == Decimal("330.00")
    assert sale.total_cost == Decimal("240.00")
    assert sale.profit == Decimal("90.00")
    assert sale.amount_paid == Decimal("330.00")
    assert sale.remaining_amount == Decimal("0.00")
    assert sale.performed_by == EMPLOYEE.id


def test_sale_of_boxes_and_all_loose_kg_empties_stock(db_session):
    product = make_product(db_session)

    _sell(db_session, product, boxes=10, kg="5")

    db_session.refresh(product)
    assert product.quantity_box == 0
    assert product.quantity_kg == Decimal("0.00")


def test_infeasible_sale_writes_nothing(db_session):
    product = make_product(db_session)

    with pytest.raises(InsufficientInventory):
        _sell(db_session, product, boxes=10, kg="25")
    with pytest.raises(InsufficientBoxes):
        _sell(db_session, product, boxes=11)

    db_session.refresh(product)
    assert product.quantity_box == 10
    assert product.quantity_kg == Decimal("5.00")
    assert db_session.execute(select(func.count(Sale.id))).scalar_one() == 0


def test_sale_is_audited(db_session):
    product = make_product(db_session)

    result = _sell(db_session, product, boxes=1)

    entry = db_session.execute(select(AuditLog).where(AuditLog.action == "sale.create")).scalar_one()
    assert entry.target_id == result.sale.id
    assert entry.actor_id == EMPLOYEE.id


def test_quote_does_not_change_stock(db_session):
    product = make_product(db_session)

    quote = quote_sale(db_session, product.id, 2, Decimal("15"))

    assert quote.plan.final_boxes == 7
    assert quote.pricing.total_amount == Decimal("1130.00")
    db_session.refresh(product)
    assert product.quantity_box == 10


def test_partial_payment_records_balance(db_session):
    product = make_product(db_session)

    result = _sell(
        db_session,
        product,
        boxes=1,
        payment=Payment(method="momo_pay", status="partial", amount_paid=Decimal("150"), client_name="Ama"),
    )

    assert result.sale.amount_paid == Decimal("150.00")
    assert result.sale.remaining_amount == Decimal("250.00")
    assert result.sale.client_name == "Ama"

    rows, total = list_sales(db_session, payment_status="partial")
    assert total == 1
    assert rows[0].id == result.sale.id


def test_pending_payment_defaults_to_nothing_paid():
    assert settle_payment(
        Payment(method="bank_transfer", status="pending", client_name="Kofi"), Decimal("400.00")
    ) == (Decimal("0.00"), Decimal("400.00"))


@pytest.mark.parametrize(
    "payment",
    [
        Payment(method="cheque"),
        Payment(method="cash", status="later"),
        Payment(method="cash", status="pending"),
        Payment(method="cash", status="paid", amount_paid=Decimal("100")),
        Payment(method="cash", status="partial", amount_paid=Decimal("400"), client_name="Ama"),
        Payment(method="cash", status="partial", amount_paid=Decimal("0"), client_name="Ama"),
        Payment(method="cash", status="pending", amount_paid=Decimal("500"), client_name="Ama"),
    ],
)
def test_invalid_payments_are_rejected(payment):
    with pytest.raises(RequestValidationFailed):
        settle_payment(payment, Decimal("400.00"))


def test_invalid_payment_rolls_back_stock(db_session):
    product = make_product(db_session)

    with pytest.raises(RequestValidationFailed):
        _sell(db_session, product, boxes=1, payment=Payment(method="cash", status="pending"))

    db_session.refresh(product)
    assert product.quantity_box == 10
