from decimal import Decimal, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
ZERO_MONEY = Decimal("0.00")


def to_money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def box_kg_amount(
    boxes: int,
    kg: Decimal,
    *,
    per_box: Decimal | None,
    per_kg: Decimal | None,
) -> Decimal:
    """Value of a boxes + kg quantity at per-unit rates; missing rates count as zero."""
    return to_money(boxes * to_money(per_box or ZERO_MONEY) + kg * to_money(per_kg or ZERO_MONEY))
