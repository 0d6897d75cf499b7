from decimal import Decimal

import pytest

from models.fees.fee_enums import DiscountType, ScholarshipStatus
from services.fee_calculator import (
    ComponentCharge,
    DiscountInput,
    ScholarshipInput,
    compute_charges,
    discount_value_for,
    late_fee_for,
)
from services.fee_errors import ValidationError


def D(value):
    return Decimal(value)


def charge(component_id, amount, order=0, late="0"):
    return ComponentCharge(component_id=component_id, amount=D(amount), late_fee_amount=D(late), display_order=order)


def discount(discount_type, value, target=None, reason="Sibling", name="Discount"):
    return DiscountInput(
        name=name,
        discount_type=discount_type,
        discount_value=value,
        source_component_id=target,
        reason=reason,
    )


def scholarship(amount, status=ScholarshipStatus.APPROVED):
    return ScholarshipInput(name="Merit", scholarship_amount=amount, status=status)


def test_percentage_discount_on_total():
    result = compute_charges([charge(1, "10000")], [discount(DiscountType.PERCENTAGE, "10")])
    assert result.total_amount == D("10000.00")
    assert result.discount_amount == D("1000.00")
    assert result.final_amount == D("9000.00")


def test_scholarship_is_added_to_discounts():
    result = compute_charges(
        [charge(1, "10000")],
        [discount(DiscountType.PERCENTAGE, "10")],
        [scholarship("2000")],
    )
    assert result.scholarship_amount == D("2000.00")
    assert result.final_amount == D("7000.00")


def test_discounts_do_not_compound():
    # both computed against 10000, not 10% of the already discounted 9000
    result = compute_charges(
        [charge(1, "10000")],
        [discount(DiscountType.PERCENTAGE, "10"), discount(DiscountType.PERCENTAGE, "10")],
    )
    assert result.discount_amount == D("2000.00")
    assert result.discount_lines == [D("1000.00"), D("1000.00")]


def test_component_scoped_discount_uses_component_base():
    result = compute_charges(
        [charge(1, "8000", order=0), charge(2, "2000", order=1)],
        [discount(DiscountType.PERCENTAGE, "50", target=2)],
    )
    assert result.discount_amount == D("1000.00")
    assert result.component_net == {1: D("8000.00"), 2: D("1000.00")}


def test_percentage_is_clamped_to_hundred():
    result = compute_charges([charge(1, "500")], [discount(DiscountType.PERCENTAGE, "150")])
    assert result.discount_amount == D("500.00")
    assert result.final_amount == D("0.00")


def test_fixed_discount_is_clamped_to_its_base():
    assert discount_value_for(discount(DiscountType.FIXED_AMOUNT, "900", target=1), D("300")) == D("300.00")


def test_excess_reductions_are_dropped_not_credited():
    result = compute_charges(
        [charge(1, "1000")],
        [discount(DiscountType.FIXED_AMOUNT, "800")],
        [scholarship("500")],
    )
    assert result.discount_amount == D("800.00")
    assert result.scholarship_amount == D("200.00")
    assert result.final_amount == D("0.00")


def test_only_approved_scholarships_deduct():
    result = compute_charges(
        [charge(1, "1000")],
        scholarships=[scholarship("100", ScholarshipStatus.PENDING), scholarship("50", ScholarshipStatus.REJECTED)],
    )
    assert result.scholarship_amount == D("0.00")
    assert result.final_amount == D("1000.00")


def test_percentage_rounds_half_up_to_cents():
    result = compute_charges([charge(1, "0.05")], [discount(DiscountType.PERCENTAGE, "50")])
    assert result.discount_amount == D("0.03")


def test_component_net_sums_to_final_with_rounding_residue():
    result = compute_charges(
        [charge(1, "100", order=0), charge(2, "100", order=1), charge(3, "100", order=2)],
        scholarships=[scholarship("100")],
    )
    assert sum(result.component_net.values()) == result.final_amount == D("200.00")
    assert all(value >= 0 for value in result.component_net.values())


def test_late_fee_counts_toward_total():
    result = compute_charges([charge(1, "1000", late="50")])
    assert result.total_amount == D("1050.00")


def test_discount_without_reason_is_rejected():
    with pytest.raises(ValidationError) as exc:
        discount(DiscountType.PERCENTAGE, "10", reason="   ")
    assert exc.value.field == "reason"


def test_negative_discount_value_is_rejected():
    with pytest.raises(ValidationError):
        discount(DiscountType.FIXED_AMOUNT, "-5")


@pytest.mark.parametrize("discount_type", [DiscountType.PERCENTAGE, DiscountType.FIXED_AMOUNT])
def test_discount_value_beyond_cents_is_rejected(discount_type):
    with pytest.raises(ValidationError) as exc:
        discount(discount_type, "12.345")
    assert exc.value.field == "discount_value"


def test_unknown_discount_type_is_rejected():
    with pytest.raises(ValidationError) as exc:
        DiscountInput(name="x", discount_type="BOGO", discount_value="1", reason="r")
    assert exc.value.field == "discount_type"


def test_discount_targeting_unknown_component_is_rejected():
    with pytest.raises(ValidationError):
        compute_charges([charge(1, "100")], [discount(DiscountType.FIXED_AMOUNT, "10", target=99)])


@pytest.mark.parametrize(
    "amount, fixed, percentage, expected",
    [
        ("1000", "75", None, "75.00"),
        ("1000", None, "2.5", "25.00"),
        ("1000", "75", "10", "75.00"),
        ("1000", None, None, "0.00"),
    ],
)
def test_late_fee_for(amount, fixed, percentage, expected):
    assert late_fee_for(D(amount), fixed, percentage) == D(expected)
