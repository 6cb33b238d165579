"""Structural rules a movement must satisfy before it is stored as pending.

``validate_movement`` is pure: no session, no clock. It returns the first
violated rule so callers can show an actionable message.

    | movement_type    | non-zero change | reference id      | field_changed |
    |------------------|-----------------|-------------------|---------------|
    | new_stock        | yes             | stock_addition_id | no            |
    | damaged          | yes             | damaged_id        | no            |
    | stock_correction | yes             | correction_id     | no            |
    | product_edit     | no              | none              | yes           |
    | product_delete   | no              | none              | yes           |
    | product_create   | no              | none              | yes           |
"""

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from fishstock.core.errors import MovementValidationError, ParsePayloadError, RuleViolation
from fishstock.core.money import to_money
from fishstock.core.quantities import ZERO_KG, to_kg
from fishstock.models.movement import MovementType

PRODUCT_DELETION_FIELD = "product_deletion"
PRODUCT_CREATION_FIELD = "product_creation"

REFERENCE_FIELDS = ("stock_addition_id", "damaged_id", "correction_id")
_REQUIRED_REFERENCE = {
    MovementType.NEW_STOCK: "stock_addition_id",
    MovementType.DAMAGED: "damaged_id",
    MovementType.STOCK_CORRECTION: "correction_id",
}


def _parse_name(raw: str) -> str:
    cleaned = (raw or "").strip()
    if not cleaned:
        raise ValueError("name cannot be empty")
    return cleaned


def _parse_ratio(raw: str) -> Decimal:
    value = to_kg(raw)
    if value <= 0:
        raise ValueError("box_to_kg_ratio must be positive")
    return value


def _parse_money(raw: str) -> Decimal:
    value = to_money(raw)
    if value < 0:
        raise ValueError("price and cost values cannot be negative")
    return value


def _parse_threshold(raw: str) -> int:
    value = int(str(raw).strip())
    if value < 0:
        raise ValueError("threshold cannot be negative")
    return value


def _parse_expiry(raw: str) -> date | None:
    cleaned = (raw or "").strip()
    if not cleaned:
        return None
    return date.fromisoformat(cleaned)


def _parse_category(raw: str) -> str | None:
    cleaned = (raw or "").strip()
    return cleaned or None


# Product attributes a product_edit movement may change, with the parser that
# turns the stored text back into the column value on approval.
EDITABLE_FIELDS: dict[str, Callable[[str], Any]] = {
    "name": _parse_name,
    "category": _parse_category,
    "box_to_kg_ratio": _parse_ratio,
    "cost_per_box": _parse_money,
    "cost_per_kg": _parse_money,
    "price_per_box": _parse_money,
    "price_per_kg": _parse_money,
    "boxed_low_stock_threshold": _parse_threshold,
    "expiry_date": _parse_expiry,
}


def parse_field_value(field_name: str, raw: str | None) -> Any:
    parser = EDITABLE_FIELDS.get(field_name)
    if parser is None:
        raise ParsePayloadError(
            f"Field {field_name!r} is not editable",
            details={"field_changed": field_name},
        )
    try:
        return parser(raw if raw is not None else "")
    except (ValueError, InvalidOperation) as exc:
        raise ParsePayloadError(
            f"Cannot parse {raw!r} for {field_name}: {exc}",
            details={"field_changed": field_name, "new_value": raw},
        ) from exc


def format_field_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class MovementDraft:
    movement_type: MovementType
    product_id: str | None = None
    box_change: int = 0
    kg_change: Decimal = ZERO_KG
    stock_addition_id: str | None = None
    damaged_id: str | None = None
    correction_id: str | None = None
    field_changed: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    reason: str | None = None

    def reference(self, name: str) -> str | None:
        return getattr(self, name)


def _check_product_reference(draft: MovementDraft) -> RuleViolation | None:
    if draft.movement_type is MovementType.PRODUCT_CREATE:
        if draft.product_id:
            return RuleViolation(
                "product_reference", "product_id", "product_create must not reference an existing product"
            )
        return None
    if not draft.product_id:
        return RuleViolation(
            "product_reference", "product_id", f"{draft.movement_type.value} requires product_id"
        )
    return None


def _check_references(draft: MovementDraft, required: str | None) -> RuleViolation | None:
    if required and not draft.reference(required):
        return RuleViolation(
            "reference_id", required, f"{draft.movement_type.value} requires {required}"
        )
    for name in REFERENCE_FIELDS:
        if name != required and draft.reference(name):
            return RuleViolation(
                "reference_id", name, f"{draft.movement_type.value} must not set {name}"
            )
    return None


def _check_quantity_change(draft: MovementDraft, *, required: bool) -> RuleViolation | None:
    has_change = draft.box_change != 0 or to_kg(draft.kg_change) != ZERO_KG
    if required and not has_change:
        return RuleViolation(
            "quantity_change", "box_change", f"{draft.movement_type.value} requires a non-zero box or kg change"
        )
    if not required and has_change:
        return RuleViolation(
            "quantity_change", "box_change", f"{draft.movement_type.value} must not change quantities"
        )
    return None


def _check_sign(draft: MovementDraft) -> RuleViolation | None:
    kg = to_kg(draft.kg_change)
    if draft.movement_type is MovementType.NEW_STOCK and (draft.box_change < 0 or kg < 0):
        return RuleViolation("quantity_sign", "box_change", "new_stock changes cannot be negative")
    if draft.movement_type is MovementType.DAMAGED and (draft.box_change > 0 or kg > 0):
        return RuleViolation("quantity_sign", "box_change", "damaged changes cannot be positive")
    return None


def _check_no_field(draft: MovementDraft) -> RuleViolation | None:
    if draft.field_changed:
        return RuleViolation(
            "field_changed", "field_changed", f"{draft.movement_type.value} must not set field_changed"
        )
    return None


def _check_field(draft: MovementDraft, expected: str | None = None) -> RuleViolation | None:
    if not draft.field_changed:
        return RuleViolation(
            "field_changed", "field_changed", f"{draft.movement_type.value} requires field_changed"
        )
    if expected is None:
        if draft.field_changed not in EDITABLE_FIELDS:
            return RuleViolation(
                "field_changed", "field_changed", f"{draft.field_changed!r} is not an editable product field"
            )
        return None
    if draft.field_changed != expected:
        return RuleViolation(
            "field_changed", "field_changed", f"{draft.movement_type.value} requires field_changed={expected!r}"
        )
    return None


def _first(*checks: Callable[[], RuleViolation | None]) -> RuleViolation | None:
    for check in checks:
        violation = check()
        if violation is not None:
            return violation
    return None


def validate_movement(draft: MovementDraft) -> RuleViolation | None:
    movement_type = MovementType(draft.movement_type)
    if draft.movement_type is not movement_type:
        draft = replace(draft, movement_type=movement_type)

    match movement_type:
        case MovementType.NEW_STOCK | MovementType.DAMAGED | MovementType.STOCK_CORRECTION:
            return _first(
                lambda: _check_product_reference(draft),
                lambda: _check_references(draft, _REQUIRED_REFERENCE[movement_type]),
                lambda: _check_quantity_change(draft, required=True),
                lambda: _check_sign(draft),
                lambda: _check_no_field(draft),
            )
        case MovementType.PRODUCT_EDIT:
            return _first(
                lambda: _check_product_reference(draft),
                lambda: _check_references(draft, None),
                lambda: _check_quantity_change(draft, required=False),
                lambda: _check_field(draft),
            )
        case MovementType.PRODUCT_DELETE:
            return _first(
                lambda: _check_product_reference(draft),
                lambda: _check_references(draft, None),
                lambda: _check_quantity_change(draft, required=False),
                lambda: _check_field(draft, PRODUCT_DELETION_FIELD),
            )
        case MovementType.PRODUCT_CREATE:
            violation = _first(
                lambda: _check_product_reference(draft),
                lambda: _check_references(draft, None),
                lambda: _check_quantity_change(draft, required=False),
                lambda: _check_field(draft, PRODUCT_CREATION_FIELD),
            )
            if violation is None and not (draft.new_value or "").strip():
                return RuleViolation(
                    "field_changed", "new_value", "product_create requires the product payload in new_value"
                )
            return violation
        case _:
            raise ValueError(f"Unhandled movement type: {movement_type!r}")


def ensure_valid(draft: MovementDraft) -> None:
    violation = validate_movement(draft)
    if violation is not None:
        raise MovementValidationError(violation)
