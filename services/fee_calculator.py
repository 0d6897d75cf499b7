"""Discount, scholarship and late-fee arithmetic.

Pure functions over Decimal amounts. Every discount is computed against its own
base (the ledger total, or the single component it targets) and the results are
summed; discounts never compound on each other's results. Scholarships are fixed
deductions summed separately. The combined reduction is capped at the total so
the final amount never goes negative.

Rounding to cents (half-up) happens where a percentage is turned into money and
nowhere earlier.
"""
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, field_validator, model_validator

from models.fees.fee_enums import DiscountType, ScholarshipStatus
from services.fee_errors import ValidationError
from services.fee_validation import parse_enum, require_money, require_text
from services.money import ZERO, HUNDRED, clamp, percent_of, round_money, to_decimal


class ComponentCharge(BaseModel):
    """One billable line as the calculator sees it."""
    component_id: int
    name: str = ""
    amount: Decimal
    late_fee_amount: Decimal = ZERO
    display_order: int = 0

    @field_validator("amount", "late_fee_amount", mode="before")
    @classmethod
    def _non_negative(cls, value, info):
        return require_money(value, info.field_name)

    @property
    def effective_amount(self) -> Decimal:
        return self.amount + self.late_fee_amount


class DiscountInput(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    source_component_id: Optional[int] = None
    reason: Optional[str] = None

    @field_validator("discount_type", mode="before")
    @classmethod
    def _discount_type(cls, value):
        return parse_enum(DiscountType, value, "discount_type")

    @field_validator("discount_value", mode="before")
    @classmethod
    def _discount_value(cls, value):
        # same scale as the stored column, so a reloaded ledger recomputes identically
        return require_money(value, "discount_value")

    @model_validator(mode="after")
    def _audit_fields(self):
        self.name = require_text(self.name, "name", "Discount name")
        # Every discount must say why it was granted
        self.reason = require_text(self.reason, "reason", "Discount reason")
        return self

    @property
    def applies_to_total(self) -> bool:
        return self.source_component_id is None


class ScholarshipInput(BaseModel):
    name: Optional[str] = None
    scholarship_amount: Decimal
    provider: Optional[str] = None
    description: Optional[str] = None
    status: ScholarshipStatus = ScholarshipStatus.APPROVED

    @field_validator("scholarship_amount", mode="before")
    @classmethod
    def _amount(cls, value):
        return require_money(value, "scholarship_amount")

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value):
        return parse_enum(ScholarshipStatus, value, "status")

    @model_validator(mode="after")
    def _name(self):
        self.name = require_text(self.name, "name", "Scholarship name")
        return self


class ChargeBreakdown(BaseModel):
    total_amount: Decimal
    discount_amount: Decimal
    scholarship_amount: Decimal
    final_amount: Decimal
    # computed amount of each discount, in input order, before the total cap
    discount_lines: List[Decimal] = []
    # what each component still contributes after reductions; sums to final_amount
    component_net: Dict[int, Decimal] = {}


def discount_value_for(discount: DiscountInput, base: Decimal) -> Decimal:
    """Money value of one discount against its own base."""
    base = to_decimal(base)
    if base <= 0:
        return ZERO
    if discount.discount_type == DiscountType.PERCENTAGE:
        percentage = clamp(discount.discount_value, ZERO, HUNDRED)
        return percent_of(base, percentage)
    return round_money(clamp(discount.discount_value, ZERO, base))


def late_fee_for(amount, late_fee_amount=None, late_fee_percentage=None) -> Decimal:
    """Late fee for one component; a fixed amount wins over a percentage."""
    if late_fee_amount is not None and to_decimal(late_fee_amount) > 0:
        return round_money(late_fee_amount)
    if late_fee_percentage is not None and to_decimal(late_fee_percentage) > 0:
        return percent_of(amount, clamp(to_decimal(late_fee_percentage), ZERO, HUNDRED))
    return ZERO


def _allocate_pool(capacity: Dict[int, Decimal], order: Sequence[int], pool: Decimal) -> Dict[int, Decimal]:
    """Spread ``pool`` over components in proportion to their capacity.

    Shares are rounded to cents; the rounding residue is pushed onto the
    components in ``order`` so the shares sum to ``pool`` exactly.
    """
    shares = {key: ZERO for key in order}
    total_capacity = sum(capacity.values(), ZERO)
    if pool <= 0 or total_capacity <= 0:
        return shares

    for key in order:
        if capacity[key] > 0:
            shares[key] = min(capacity[key], round_money(pool * capacity[key] / total_capacity))

    residue = pool - sum(shares.values(), ZERO)
    for key in order:
        if residue == 0:
            break
        if residue > 0:
            step = min(residue, capacity[key] - shares[key])
        else:
            step = -min(-residue, shares[key])
        shares[key] += step
        residue -= step
    return shares


def compute_charges(
    components: Iterable[ComponentCharge],
    discounts: Iterable[DiscountInput] = (),
    scholarships: Iterable[ScholarshipInput] = (),
) -> ChargeBreakdown:
    components = sorted(components, key=lambda c: (c.display_order, c.component_id))
    bases = {c.component_id: c.effective_amount for c in components}
    order = [c.component_id for c in components]
    total_amount = sum(bases.values(), ZERO)

    discount_lines: List[Decimal] = []
    direct: Dict[int, Decimal] = {key: ZERO for key in order}
    for index, discount in enumerate(discounts):
        if discount.applies_to_total:
            discount_lines.append(discount_value_for(discount, total_amount))
            continue
        key = discount.source_component_id
        if key not in bases:
            raise ValidationError(
                f"Discount '{discount.name}' targets unknown component {key}",
                field=f"discounts[{index}].source_component_id",
                entity_id=key,
            )
        value = discount_value_for(discount, bases[key])
        discount_lines.append(value)
        direct[key] = min(bases[key], direct[key] + value)

    approved = [s for s in scholarships if s.status == ScholarshipStatus.APPROVED]
    raw_discount = sum(discount_lines, ZERO)
    raw_scholarship = round_money(sum((s.scholarship_amount for s in approved), ZERO))

    # excess over the total is dropped, never carried as a credit
    discount_amount = min(raw_discount, total_amount)
    scholarship_amount = min(raw_scholarship, total_amount - discount_amount)
    final_amount = max(ZERO, total_amount - discount_amount - scholarship_amount)

    direct_sum = sum(direct.values(), ZERO)
    pool = discount_amount + scholarship_amount - direct_sum
    capacity = {key: bases[key] - direct[key] for key in order}
    shares = _allocate_pool(capacity, order, pool)
    component_net = {key: bases[key] - direct[key] - shares[key] for key in order}

    return ChargeBreakdown(
        total_amount=round_money(total_amount),
        discount_amount=round_money(discount_amount),
        scholarship_amount=round_money(scholarship_amount),
        final_amount=round_money(final_amount),
        discount_lines=discount_lines,
        component_net=component_net,
    )
