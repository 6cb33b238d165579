from decimal import Decimal

import pytest

from fishstock.core.errors import MovementValidationError, ParsePayloadError
from fishstock.models.movement import MovementType
from fishstock.services.movement_rules import (
    PRODUCT_CREATION_FIELD,
    PRODUCT_DELETION_FIELD,
    MovementDraft,
    ensure_valid,
    parse_field_value,
    validate_movement,
)


def _draft(movement_type, **values) -> MovementDraft:
    return MovementDraft(movement_type=movement_type, **values)


@pytest.mark.parametrize(
    "draft",
    [
        _draft(MovementType.NEW_STOCK, product_id="p1", box_change=5, stock_addition_id="a1"),
        _draft(MovementType.NEW_STOCK, product_id="p1", kg_change=Decimal("2.5"), stock_addition_id="a1"),
        _draft(MovementType.DAMAGED, product_id="p1", box_change=-1, kg_change=Decimal("-0.5"), damaged_id="d1"),
        _draft(MovementType.STOCK_CORRECTION, product_id="p1", box_change=-2, kg_change=Decimal("3"), correction_id="c1"),
        _draft(MovementType.PRODUCT_EDIT, product_id="p1", field_changed="price_per_kg", old_value="22.00", new_value="25.00"),
        _draft(MovementType.PRODUCT_DELETE, product_id="p1", field_changed=PRODUCT_DELETION_FIELD),
        _draft(MovementType.PRODUCT_CREATE, field_changed=PRODUCT_CREATION_FIELD, new_value='{"name": "Catfish"}'),
    ],
)
def test_well_formed_movements_pass(draft):
    assert validate_movement(draft) is None


def test_new_stock_without_any_change_is_rejected():
    violation = validate_movement(
        _draft(MovementType.NEW_STOCK, product_id="p1", stock_addition_id="a1")
    )

    assert violation is not None
    assert violation.rule == "quantity_change"


def test_new_stock_without_addition_reference_is_rejected():
    violation = validate_movement(_draft(MovementType.NEW_STOCK, product_id="p1", box_change=3))

    assert violation.rule == "reference_id"
    assert violation.field == "stock_addition_id"


def test_new_stock_with_wrong_reference_kind_is_rejected():
    violation = validate_movement(
        _draft(
            MovementType.NEW_STOCK,
            product_id="p1",
            box_change=3,
            stock_addition_id="a1",
            damaged_id="d1",
        )
    )

    assert violation.rule == "reference_id"
    assert violation.field == "damaged_id"


def test_damaged_requires_damage_reference():
    violation = validate_movement(_draft(MovementType.DAMAGED, product_id="p1", box_change=-1))

    assert violation.field == "damaged_id"


def test_damaged_changes_cannot_be_positive():
    violation = validate_movement(
        _draft(MovementType.DAMAGED, product_id="p1", box_change=1, damaged_id="d1")
    )

    assert violation.rule == "quantity_sign"


def test_new_stock_changes_cannot_be_negative():
    violation = validate_movement(
        _draft(MovementType.NEW_STOCK, product_id="p1", box_change=-1, stock_addition_id="a1")
    )

    assert violation.rule == "quantity_sign"


def test_correction_requires_correction_reference():
    violation = validate_movement(_draft(MovementType.STOCK_CORRECTION, product_id="p1", box_change=1))

    assert violation.field == "correction_id"


def test_quantity_movement_must_not_name_a_field():
    violation = validate_movement(
        _draft(
            MovementType.STOCK_CORRECTION,
            product_id="p1",
            box_change=1,
            correction_id="c1",
            field_changed="name",
        )
    )

    assert violation.rule == "field_changed"


def test_product_edit_with_quantity_change_is_rejected():
    violation = validate_movement(
        _draft(MovementType.PRODUCT_EDIT, product_id="p1", field_changed="price", box_change=5)
    )

    assert violation.rule == "quantity_change"


def test_product_edit_requires_field_changed():
    violation = validate_movement(_draft(MovementType.PRODUCT_EDIT, product_id="p1"))

    assert violation.rule == "field_changed"


def test_product_edit_rejects_unknown_field():
    violation = validate_movement(
        _draft(MovementType.PRODUCT_EDIT, product_id="p1", field_changed="quantity_box", new_value="3")
    )

    assert violation.rule == "field_changed"


def test_product_edit_must_not_reference_stock_records():
    violation = validate_movement(
        _draft(MovementType.PRODUCT_EDIT, product_id="p1", field_changed="name", correction_id="c1")
    )

    assert violation.rule == "reference_id"


def test_product_delete_requires_deletion_marker_field():
    violation = validate_movement(
        _draft(MovementType.PRODUCT_DELETE, product_id="p1", field_changed="name")
    )

    assert violation.rule == "field_changed"


def test_product_create_must_not_reference_a_product():
    violation = validate_movement(
        _draft(
            MovementType.PRODUCT_CREATE,
            product_id="p1",
            field_changed=PRODUCT_CREATION_FIELD,
            new_value="{}",
        )
    )

    assert violation.rule == "product_reference"


def test_product_create_requires_payload():
    violation = validate_movement(
        _draft(MovementType.PRODUCT_CREATE, field_changed=PRODUCT_CREATION_FIELD, new_value="  ")
    )

    assert violation.field == "new_value"


@pytest.mark.parametrize(
    "movement_type",
    [MovementType.NEW_STOCK, MovementType.DAMAGED, MovementType.STOCK_CORRECTION, MovementType.PRODUCT_EDIT],
)
def test_movements_other_than_create_require_product(movement_type):
    violation = validate_movement(_draft(movement_type, box_change=1))

    assert violation.rule == "product_reference"


def test_movement_type_given_as_text_is_accepted():
    draft = MovementDraft(movement_type="new_stock", product_id="p1", box_change=1, stock_addition_id="a1")

    assert validate_movement(draft) is None


def test_ensure_valid_raises_with_rule_details():
    with pytest.raises(MovementValidationError) as exc_info:
        ensure_valid(_draft(MovementType.NEW_STOCK, product_id="p1", stock_addition_id="a1"))

    assert exc_info.value.violation.rule == "quantity_change"
    assert exc_info.value.code == "invalid_movement"
    assert exc_info.value.status_code == 400


def test_parse_field_value_converts_stored_text():
    assert parse_field_value("price_per_kg", "25.5") == Decimal("25.50")
    assert parse_field_value("boxed_low_stock_threshold", "4") == 4
    assert parse_field_value("category", "") is None
    assert parse_field_value("expiry_date", "2026-12-31").isoformat() == "2026-12-31"


@pytest.mark.parametrize(
    ("field_name", "raw"),
    [
        ("price_per_kg", "abc"),
        ("box_to_kg_ratio", "0"),
        ("name", "   "),
        ("boxed_low_stock_threshold", "-1"),
        ("quantity_box", "3"),
    ],
)
def test_parse_field_value_rejects_unusable_text(field_name, raw):
    with pytest.raises(ParsePayloadError):
        parse_field_value(field_name, raw)
