import threading
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from conftest import EMPLOYEE, MANAGER, OTHER_EMPLOYEE, OWNER, make_product
from fishstock.core.errors import (
    MovementValidationError,
    NegativeStockFault,
    NotFoundError,
    NotPending,
    PermissionDenied,
    RequestValidationFailed,
)
from fishstock.models.audit_log import AuditLog
from fishstock.models.movement import DamagedProduct, MovementStatus, MovementType, StockMovement
from fishstock.models.product import Product
from fishstock.models.sales import Sale
from fishstock.schemas.product import ProductCreate
from fishstock.services.movement_rules import MovementDraft
from fishstock.services.movement_service import (
    DELETION_REJECTED,
    approve_movement,
    cancel_movement,
    claim_pending,
    get_movement,
    list_movements,
    pending_summary,
    propose_movement,
    reject_movement,
    stock_summary,
)
from fishstock.services.sales_service import Payment, execute_sale
from fishstock.services.stock_request_service import (
    report_damage,
    request_product_create,
    request_product_delete,
    request_product_edit,
    request_stock_addition,
    request_stock_correction,
)


def _request_addition(db, product, boxes=5, kg="2.5"):
    return request_stock_addition(
        db,
        product_id=product.id,
        boxes_added=boxes,
        kg_added=Decimal(kg),
        total_cost=Decimal("1500.00"),
        delivery_date=date(2026, 10, 1),
        actor=EMPLOYEE,
    )


def _count(db, model, *filters) -> int:
    return int(db.execute(select(func.count()).select_from(model).where(*filters)).scalar_one())


def test_addition_request_leaves_stock_untouched_until_approved(db_session):
    product = make_product(db_session)

    result = _request_addition(db_session, product)

    assert result.movement.status == "pending"
    assert result.movement.movement_type == "new_stock"
    assert result.movement.stock_addition_id == result.record.id
    assert result.movement.performed_by == EMPLOYEE.id
    db_session.refresh(product)
    assert product.quantity_box == 10
    assert product.quantity_kg == Decimal("5.00")


def test_approving_addition_applies_stock_once(db_session):
    product = make_product(db_session)
    movement = _request_addition(db_session, product).movement

    approved = approve_movement(db_session, movement.id, MANAGER)

    assert approved.status == "completed"
    assert approved.resolved_by == MANAGER.id
    assert approved.resolved_at is not None
    assert "APPROVED BY: manager-1" in approved.reason
    db_session.refresh(product)
    assert product.quantity_box == 15
    assert product.quantity_kg == Decimal("7.50")

    with pytest.raises(NotPending):
        approve_movement(db_session, movement.id, MANAGER)
    db_session.refresh(product)
    assert product.quantity_box == 15


def test_employee_cannot_approve_or_reject(db_session):
    product = make_product(db_session)
    movement = _request_addition(db_session, product).movement

    with pytest.raises(PermissionDenied):
        approve_movement(db_session, movement.id, EMPLOYEE)
    with pytest.raises(PermissionDenied):
        reject_movement(db_session, movement.id, EMPLOYEE, "not needed")

    assert get_movement(db_session, movement.id).status == "pending"


def test_owner_can_approve(db_session):
    product = make_product(db_session)
    movement = _request_addition(db_session, product, boxes=1, kg="0").movement

    assert approve_movement(db_session, movement.id, OWNER).status == "completed"


def test_reject_requires_reason_and_keeps_stock(db_session):
    product = make_product(db_session)
    movement = _request_addition(db_session, product).movement

    with pytest.raises(RequestValidationFailed):
        reject_movement(db_session, movement.id, MANAGER, "   ")

    rejected = reject_movement(db_session, movement.id, MANAGER, "Delivery never arrived")

    assert rejected.status == "rejected"
    assert rejected.reason.endswith("REJECTED: Delivery never arrived")
    db_session.refresh(product)
    assert product.quantity_box == 10

    with pytest.raises(NotPending):
        approve_movement(db_session, movement.id, MANAGER)
    with pytest.raises(NotPending):
        cancel_movement(db_session, movement.id, EMPLOYEE)


def test_only_requester_or_manager_can_cancel(db_session):
    product = make_product(db_session)
    first = _request_addition(db_session, product).movement
    second = _request_addition(db_session, product).movement

    with pytest.raises(PermissionDenied):
        cancel_movement(db_session, first.id, OTHER_EMPLOYEE)

    cancelled = cancel_movement(db_session, first.id, EMPLOYEE, "Entered twice")
    assert cancelled.status == "cancelled"
    assert cancelled.resolved_by == EMPLOYEE.id
    assert "CANCELLED: Entered twice" in cancelled.reason

    assert cancel_movement(db_session, second.id, MANAGER).status == "cancelled"
    db_session.refresh(product)
    assert product.quantity_box == 10


def test_unknown_movement_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        approve_movement(db_session, "missing", MANAGER)


def test_stale_session_cannot_approve_twice(session_factory):
    setup = session_factory()
    product = make_product(setup)
    movement_id = _request_addition(setup, product).movement.id
    product_id = product.id
    setup.close()

    first = session_factory()
    second = session_factory()
    try:
        # Both sessions have already seen the movement as pending.
        assert get_movement(first, movement_id).status == "pending"
        assert get_movement(second, movement_id).status == "pending"

        approve_movement(first, movement_id, MANAGER)
        with pytest.raises(NotPending):
            approve_movement(second, movement_id, OWNER)

        refreshed = second.get(Product, product_id)
        second.refresh(refreshed)
        assert refreshed.quantity_box == 15
    finally:
        first.close()
        second.close()


def test_claim_pending_refuses_resolved_movement(db_session):
    product = make_product(db_session)
    movement = _request_addition(db_session, product).movement
    approve_movement(db_session, movement.id, MANAGER)

    with pytest.raises(NotPending) as exc_info:
        claim_pending(db_session, movement.id, MovementStatus.REJECTED, resolved_by=MANAGER.id)
    db_session.rollback()

    assert exc_info.value.status == "completed"
    assert get_movement(db_session, movement.id).status == "completed"


def test_concurrent_approvals_apply_exactly_once(session_factory):
    setup = session_factory()
    product = make_product(setup)
    movement_id = _request_addition(setup, product, boxes=4, kg="0").movement.id
    product_id = product.id
    setup.close()

    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def worker(actor):
        db = session_factory()
        try:
            barrier.wait()
            approve_movement(db, movement_id, actor)
            outcome = "approved"
        except NotPending:
            outcome = "not_pending"
        finally:
            db.close()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker, args=(actor,)) for actor in (MANAGER, OWNER)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["approved", "not_pending"]
    check = session_factory()
    try:
        assert check.get(Product, product_id).quantity_box == 14
        assert get_movement(check, movement_id).status == "completed"
    finally:
        check.close()


def test_approval_racing_rejection_resolves_once(session_factory):
    setup = session_factory()
    product = make_product(setup)
    movement_id = _request_addition(setup, product, boxes=4, kg="0").movement.id
    product_id = product.id
    setup.close()

    barrier = threading.Barrier(2)
    outcomes: dict[str, str] = {}
    lock = threading.Lock()

    def approve(db):
        approve_movement(db, movement_id, MANAGER)

    def reject(db):
        reject_movement(db, movement_id, OWNER, "Delivery short")

    def worker(name, action):
        db = session_factory()
        try:
            barrier.wait()
            action(db)
            outcome = "resolved"
        except NotPending:
            outcome = "not_pending"
        finally:
            db.close()
        with lock:
            outcomes[name] = outcome

    threads = [
        threading.Thread(target=worker, args=("approve", approve)),
        threading.Thread(target=worker, args=("reject", reject)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes.values()) == ["not_pending", "resolved"]
    check = session_factory()
    try:
        status = get_movement(check, movement_id).status
        boxes = check.get(Product, product_id).quantity_box
    finally:
        check.close()
    if outcomes["approve"] == "resolved":
        assert status == "completed"
        assert boxes == 14
    else:
        assert status == "rejected"
        assert boxes == 10


def test_stock_record_backs_only_one_active_movement(db_session):
    product = make_product(db_session)
    result = _request_addition(db_session, product)

    with pytest.raises(MovementValidationError) as exc_info:
        propose_movement(
            db_session,
            MovementDraft(
                movement_type=MovementType.NEW_STOCK,
                product_id=product.id,
                box_change=5,
                kg_change=Decimal("2.5"),
                stock_addition_id=result.record.id,
            ),
            EMPLOYEE,
        )
    assert exc_info.value.violation.rule == "reference_id"

    approve_movement(db_session, result.movement.id, MANAGER)
    db_session.refresh(product)
    assert product.quantity_box == 15
    assert _count(db_session, StockMovement) == 1


def test_movement_change_must_match_its_stock_record(db_session):
    product = make_product(db_session)
    result = _request_addition(db_session, product)
    cancel_movement(db_session, result.movement.id, EMPLOYEE)

    with pytest.raises(MovementValidationError) as exc_info:
        propose_movement(
            db_session,
            MovementDraft(
                movement_type=MovementType.NEW_STOCK,
                product_id=product.id,
                box_change=500,
                stock_addition_id=result.record.id,
            ),
            EMPLOYEE,
        )
    assert exc_info.value.violation.rule == "quantity_change"

    # A cancelled movement frees its record for a matching re-proposal.
    retry = propose_movement(
        db_session,
        MovementDraft(
            movement_type=MovementType.NEW_STOCK,
            product_id=product.id,
            box_change=5,
            kg_change=Decimal("2.5"),
            stock_addition_id=result.record.id,
        ),
        EMPLOYEE,
    )
    approve_movement(db_session, retry.id, MANAGER)

    db_session.refresh(product)
    assert product.quantity_box == 15
    assert product.quantity_kg == Decimal("7.50")


def test_damage_movement_must_negate_reported_quantities(db_session):
    product = make_product(db_session)
    damage = report_damage(
        db_session,
        product_id=product.id,
        damaged_boxes=2,
        damaged_kg=Decimal("0"),
        damaged_reason="Thawed in transit",
        actor=EMPLOYEE,
    )
    reject_movement(db_session, damage.movement.id, MANAGER, "Recount first")

    with pytest.raises(MovementValidationError):
        propose_movement(
            db_session,
            MovementDraft(
                movement_type=MovementType.DAMAGED,
                product_id=product.id,
                box_change=-9,
                damaged_id=damage.record.id,
            ),
            EMPLOYEE,
        )


def test_database_rejects_second_active_movement_for_a_record(db_session):
    product = make_product(db_session)
    result = _request_addition(db_session, product)

    db_session.add(
        StockMovement(
            product_id=product.id,
            movement_type=MovementType.NEW_STOCK.value,
            status=MovementStatus.PENDING.value,
            box_change=5,
            kg_change=Decimal("2.50"),
            stock_addition_id=result.record.id,
            performed_by=OTHER_EMPLOYEE.id,
        )
    )
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()

    db_session.add(
        StockMovement(
            product_id=product.id,
            movement_type=MovementType.NEW_STOCK.value,
            status=MovementStatus.CANCELLED.value,
            box_change=5,
            kg_change=Decimal("2.50"),
            stock_addition_id=result.record.id,
            performed_by=OTHER_EMPLOYEE.id,
        )
    )
    db_session.commit()
    assert _count(db_session, StockMovement, StockMovement.stock_addition_id == result.record.id) == 2


def test_failed_side_effect_leaves_movement_pending(db_session):
    product = make_product(db_session, quantity_box=3)
    movement = request_stock_correction(
        db_session,
        product_id=product.id,
        box_adjustment=-5,
        kg_adjustment=Decimal("0"),
        correction_reason="Recount",
        actor=EMPLOYEE,
    ).movement

    with pytest.raises(NegativeStockFault):
        approve_movement(db_session, movement.id, MANAGER)

    assert get_movement(db_session, movement.id).status == "pending"
    db_session.refresh(product)
    assert product.quantity_box == 3
    assert _count(db_session, AuditLog, AuditLog.action == "movement.approve") == 0


def test_correction_applies_signed_adjustment(db_session):
    product = make_product(db_session)
    movement = request_stock_correction(
        db_session,
        product_id=product.id,
        box_adjustment=-2,
        kg_adjustment=Decimal("1.25"),
        correction_reason="Miscount at intake",
        actor=EMPLOYEE,
    ).movement

    approve_movement(db_session, movement.id, MANAGER)

    db_session.refresh(product)
    assert product.quantity_box == 8
    assert product.quantity_kg == Decimal("6.25")


def test_empty_correction_is_rejected(db_session):
    product = make_product(db_session)

    with pytest.raises(RequestValidationFailed):
        request_stock_correction(
            db_session,
            product_id=product.id,
            box_adjustment=0,
            kg_adjustment=Decimal("0"),
            correction_reason="Nothing",
            actor=EMPLOYEE,
        )


def test_damage_report_flows_through_approval(db_session):
    product = make_product(db_session)
    result = report_damage(
        db_session,
        product_id=product.id,
        damaged_boxes=2,
        damaged_kg=Decimal("1.5"),
        damaged_reason="Thawed in transit",
        actor=EMPLOYEE,
    )

    assert result.movement.box_change == -2
    assert result.movement.kg_change == Decimal("-1.50")
    assert result.record.loss_value == Decimal("833.00")
    assert result.record.damaged_approval is False

    approve_movement(db_session, result.movement.id, MANAGER)

    db_session.refresh(product)
    assert product.quantity_box == 8
    assert product.quantity_kg == Decimal("3.50")
    assert db_session.get(DamagedProduct, result.record.id).damaged_approval is True


def test_damage_above_stock_is_rejected(db_session):
    product = make_product(db_session)

    with pytest.raises(RequestValidationFailed):
        report_damage(
            db_session,
            product_id=product.id,
            damaged_boxes=11,
            damaged_kg=Decimal("0"),
            damaged_reason="Spoiled",
            actor=EMPLOYEE,
        )
    assert _count(db_session, DamagedProduct) == 0


def test_reference_to_another_products_record_is_rejected(db_session):
    tilapia = make_product(db_session)
    catfish = make_product(db_session, name="Catfish")
    addition = _request_addition(db_session, tilapia).record

    with pytest.raises(MovementValidationError):
        propose_movement(
            db_session,
            MovementDraft(
                movement_type=MovementType.NEW_STOCK,
                product_id=catfish.id,
                box_change=1,
                stock_addition_id=addition.id,
            ),
            EMPLOYEE,
        )


def test_invalid_draft_is_not_stored(db_session):
    product = make_product(db_session)

    with pytest.raises(MovementValidationError):
        propose_movement(
            db_session,
            MovementDraft(movement_type=MovementType.NEW_STOCK, product_id=product.id, box_change=1),
            EMPLOYEE,
        )
    assert _count(db_session, StockMovement) == 0


def test_product_edit_opens_one_movement_per_changed_field(db_session):
    product = make_product(db_session)

    movements = request_product_edit(
        db_session,
        product_id=product.id,
        changes={"name": "Tilapia", "price_per_kg": Decimal("25.00"), "category": None},
        actor=EMPLOYEE,
        reason="Supplier price increase",
    )

    assert sorted(row.field_changed for row in movements) == ["category", "price_per_kg"]
    price_edit = next(row for row in movements if row.field_changed == "price_per_kg")
    assert price_edit.old_value == "22.00"
    assert price_edit.new_value == "25.00"

    approve_movement(db_session, price_edit.id, MANAGER)
    db_session.refresh(product)
    assert product.price_per_kg == Decimal("25.00")
    assert product.category == "fresh"


def test_product_edit_without_changes_is_rejected(db_session):
    product = make_product(db_session)

    with pytest.raises(RequestValidationFailed):
        request_product_edit(db_session, product_id=product.id, changes={"name": "Tilapia"}, actor=EMPLOYEE)
    with pytest.raises(RequestValidationFailed):
        request_product_edit(db_session, product_id=product.id, changes={"quantity_box": 3}, actor=EMPLOYEE)
    with pytest.raises(RequestValidationFailed):
        request_product_edit(db_session, product_id=product.id, changes={"name": None}, actor=EMPLOYEE)


def test_product_create_is_applied_on_approval(db_session):
    payload = ProductCreate(
        name="Catfish",
        category="frozen",
        box_to_kg_ratio=Decimal("15.00"),
        price_per_box=Decimal("350.00"),
        price_per_kg=Decimal("25.00"),
    )

    movement = request_product_create(db_session, payload=payload, actor=EMPLOYEE)

    assert movement.product_id is None
    assert _count(db_session, Product) == 0

    approved = approve_movement(db_session, movement.id, MANAGER)

    assert approved.product_id is not None
    created = db_session.get(Product, approved.product_id)
    assert created.name == "Catfish"
    assert created.box_to_kg_ratio == Decimal("15.00")
    assert created.quantity_box == 0


def test_product_delete_needs_confirmation_then_cascades(db_session):
    product = make_product(db_session)
    product_id = product.id
    _request_addition(db_session, product)
    execute_sale(
        db_session,
        product_id=product_id,
        requested_boxes=1,
        requested_kg=Decimal("0"),
        payment=Payment(method="cash"),
        actor=EMPLOYEE,
    )
    movement = request_product_delete(db_session, product_id=product_id, reason="Discontinued", actor=EMPLOYEE)
    assert movement.new_value == "PENDING_DELETION"
    assert movement.old_value == f"Product: Tilapia (ID: {product_id})"

    with pytest.raises(RequestValidationFailed):
        approve_movement(db_session, movement.id, MANAGER)
    assert get_movement(db_session, movement.id).status == "pending"

    approved = approve_movement(db_session, movement.id, MANAGER, confirm=True)

    assert approved.status == "completed"
    assert approved.product_id is None
    assert _count(db_session, Product, Product.id == product_id) == 0
    assert _count(db_session, Sale, Sale.product_id == product_id) == 0
    assert _count(db_session, StockMovement, StockMovement.product_id == product_id) == 0
    assert _count(db_session, AuditLog, AuditLog.action == "product.delete", AuditLog.target_id == product_id) == 1

    with pytest.raises(NotPending):
        approve_movement(db_session, movement.id, MANAGER, confirm=True)


def test_rejected_deletion_is_marked(db_session):
    product = make_product(db_session)
    movement = request_product_delete(db_session, product_id=product.id, reason="Discontinued", actor=EMPLOYEE)

    rejected = reject_movement(db_session, movement.id, MANAGER, "Still selling")

    assert rejected.new_value == DELETION_REJECTED
    assert _count(db_session, Product, Product.id == product.id) == 1


def test_stock_summary_totals_completed_movements(db_session):
    product = make_product(db_session)
    addition = _request_addition(db_session, product, boxes=4, kg="3").movement
    approve_movement(db_session, addition.id, MANAGER)
    damage = report_damage(
        db_session,
        product_id=product.id,
        damaged_boxes=1,
        damaged_kg=Decimal("0"),
        damaged_reason="Crushed box",
        actor=EMPLOYEE,
    ).movement
    approve_movement(db_session, damage.id, MANAGER)
    _request_addition(db_session, product, boxes=1, kg="0")

    summary = stock_summary(db_session, product.id)

    assert summary.boxes_in == 4
    assert summary.kg_in == Decimal("3.00")
    assert summary.boxes_damaged == 1
    assert summary.kg_damaged == Decimal("0.00")
    assert summary.pending_movements == 1
    assert summary.product.quantity_box == 13
    assert summary.total_kg == Decimal("268.00")


def test_pending_summary_and_filters(db_session):
    product = make_product(db_session)
    first = _request_addition(db_session, product).movement
    _request_addition(db_session, product)
    request_product_delete(db_session, product_id=product.id, reason="Discontinued", actor=OTHER_EMPLOYEE)
    approve_movement(db_session, first.id, MANAGER)

    summary = pending_summary(db_session)

    assert summary["total"] == 2
    assert summary["by_type"]["new_stock"] == 1
    assert summary["by_type"]["product_delete"] == 1
    assert summary["by_type"]["damaged"] == 0

    rows, total = list_movements(db_session, status=MovementStatus.PENDING, performed_by=OTHER_EMPLOYEE.id)
    assert total == 1
    assert rows[0].movement_type == "product_delete"
