from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from services.fee_errors import ValidationError

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value, field: str = "amount") -> Decimal:
    """Coerce ``value`` to Decimal without rounding. Floats go through str()."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid monetary value: {value!r}", field=field)
    if not result.is_finite():
        raise ValidationError(f"Invalid monetary value: {value!r}", field=field)
    return result


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(base, percentage) -> Decimal:
    return round_money(to_decimal(base) * to_decimal(percentage) / HUNDRED)


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(value, high))
