from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from models.fees.fee_enums import FeeStatus
from services.money import to_decimal


def as_day(moment: Union[date, datetime, None]) -> Optional[date]:
    if isinstance(moment, datetime):
        return moment.date()
    return moment


def derive_status(paid_amount, final_amount, due_date: Optional[date], now: Union[date, datetime]) -> FeeStatus:
    """Status of a ledger entry, a pure function of what is owed, what is paid and the date.

    OVERDUE masks PENDING and PARTIAL once ``now`` is past the due date; it never
    touches the paid amount.
    """
    paid: Decimal = to_decimal(paid_amount)
    final: Decimal = to_decimal(final_amount)
    if paid >= final:
        return FeeStatus.PAID
    today = as_day(now)
    due = as_day(due_date)
    if due is not None and today > due:
        return FeeStatus.OVERDUE
    if paid > 0:
        return FeeStatus.PARTIAL
    return FeeStatus.PENDING
