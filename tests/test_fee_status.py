from datetime import date, datetime
from decimal import Decimal

import pytest

from models.fees.fee_enums import FeeStatus
from services.fee_status import derive_status

DUE = date(2024, 6, 30)


@pytest.mark.parametrize(
    "paid, final, now, expected",
    [
        ("0", "1000", datetime(2024, 6, 1), FeeStatus.PENDING),
        ("400", "1000", datetime(2024, 6, 1), FeeStatus.PARTIAL),
        ("1000", "1000", datetime(2024, 6, 1), FeeStatus.PAID),
        ("0", "1000", datetime(2024, 7, 1), FeeStatus.OVERDUE),
        ("400", "1000", datetime(2024, 7, 1), FeeStatus.OVERDUE),
        ("1000", "1000", datetime(2024, 7, 1), FeeStatus.PAID),
        ("0", "0", datetime(2024, 7, 1), FeeStatus.PAID),
    ],
)
def test_derive_status(paid, final, now, expected):
    assert derive_status(Decimal(paid), Decimal(final), DUE, now) == expected


def test_due_date_itself_is_not_overdue():
    assert derive_status(Decimal("0"), Decimal("10"), DUE, datetime(2024, 6, 30, 23, 59)) == FeeStatus.PENDING


def test_no_due_date_never_overdue():
    assert derive_status(Decimal("5"), Decimal("10"), None, datetime(2099, 1, 1)) == FeeStatus.PARTIAL
