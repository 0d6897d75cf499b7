"""Input checks shared by the catalog, ledger and payment services."""
from decimal import Decimal
from typing import Optional, Type

from models.fees.fee_enums import PaymentMethod, REFERENCE_METHODS, TRANSACTION_METHODS
from services.fee_errors import ValidationError
from services.money import CENT, to_decimal


def parse_enum(enum_cls: Type, value, field: str):
    """Return ``value`` as a member of ``enum_cls`` or raise ValidationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except (ValueError, AttributeError):
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field} {value!r}; expected one of: {allowed}", field=field)


def require_text(value: Optional[str], field: str, label: Optional[str] = None) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{label or field.replace('_', ' ').capitalize()} is required", field=field)
    return str(value).strip()


def require_non_negative(value, field: str) -> Decimal:
    amount = to_decimal(value, field=field)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", field=field)
    return amount


def require_positive(value, field: str) -> Decimal:
    amount = to_decimal(value, field=field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero", field=field)
    return amount


def require_money(value, field: str, positive: bool = False) -> Decimal:
    """A non-negative (or strictly positive) amount with at most two decimal places."""
    amount = require_positive(value, field) if positive else require_non_negative(value, field)
    if amount != amount.quantize(CENT):
        raise ValidationError(f"{field} cannot have more than two decimal places", field=field)
    return amount


def validate_component(component, index: int) -> None:
    """Check one fee component definition (attribute access, pydantic or ORM)."""
    position = f"components[{index}]"
    require_text(component.name, f"{position}.name", f"Fee component {index + 1}: name")
    if component.fee_type is None:
        raise ValidationError(f"Fee component {index + 1}: fee type is required", field=f"{position}.fee_type")
    if component.frequency is None:
        raise ValidationError(f"Fee component {index + 1}: frequency is required", field=f"{position}.frequency")
    if component.amount is None:
        raise ValidationError(f"Fee component {index + 1}: amount is required", field=f"{position}.amount")
    require_money(component.amount, f"{position}.amount")
    if component.late_fee_applicable:
        has_fixed = component.late_fee_amount is not None and to_decimal(component.late_fee_amount) > 0
        has_percentage = component.late_fee_percentage is not None and to_decimal(component.late_fee_percentage) > 0
        if not has_fixed and not has_percentage:
            raise ValidationError(
                f"Fee component {index + 1}: late fee amount or percentage is required when late fee is applicable",
                field=f"{position}.late_fee_amount",
            )
    if component.late_fee_amount is not None:
        require_money(component.late_fee_amount, f"{position}.late_fee_amount")
    if component.late_fee_percentage is not None:
        # stored as Numeric(5, 2); finer percentages would drift after a reload
        percentage = require_money(component.late_fee_percentage, f"{position}.late_fee_percentage")
        if percentage > 100:
            raise ValidationError("Late fee percentage cannot exceed 100", field=f"{position}.late_fee_percentage")
    if (component.late_fee_grace_days or 0) < 0:
        raise ValidationError("Grace days cannot be negative", field=f"{position}.late_fee_grace_days")


def validate_payment_details(
    method: PaymentMethod,
    transaction_id: Optional[str] = None,
    reference_number: Optional[str] = None,
) -> None:
    if method in REFERENCE_METHODS and not (reference_number or "").strip():
        raise ValidationError(
            f"Reference number is required for {method.value} payment", field="reference_number"
        )
    if method in TRANSACTION_METHODS and not (transaction_id or "").strip():
        raise ValidationError(
            f"Transaction ID is required for {method.value} payment", field="transaction_id"
        )


def validate_payment_method(value) -> PaymentMethod:
    return parse_enum(PaymentMethod, value, "payment_method")
