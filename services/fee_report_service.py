"""Read models over ledgers and payments: outstanding dues and collections.

Both reports are read-only. Amounts come straight from the stored ledger and
payment rows; nothing is recomputed here.
"""
import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Dict, Optional

from models.fees.fee_enums import FeeStatus
from models.fees.fee_structure_models import FeeStructure
from models.fees.payment_models import Payment, PaymentReversal
from models.fees.student_fee_models import StudentFee
from schemas.fees.report_schemas import (
    ClassDues,
    CollectionSummary,
    CollectionTotals,
    DuesLine,
    DuesReport,
    DuesSummary,
)
from services.fee_errors import ValidationError
from services.fee_status import as_day
from services.fee_store import FeeStore, FeeUnitOfWork
from services.fee_validation import require_text
from services.money import ZERO, round_money

logger = logging.getLogger(__name__)

OUTSTANDING_STATUSES = (FeeStatus.PENDING, FeeStatus.PARTIAL, FeeStatus.OVERDUE)
# label for structures that apply to every class
ALL_UNITS = "ALL"
PERIOD_FORMATS = {"day": "%Y-%m-%d", "month": "%Y-%m"}


def _unit_label(structure: FeeStructure) -> str:
    return structure.academic_unit_id or ALL_UNITS


def dues_report(
    store: FeeStore,
    institution_id: str,
    academic_year_id: Optional[str] = None,
    academic_unit_id: Optional[str] = None,
    overdue_only: bool = False,
    now=None,
) -> DuesReport:
    """Ledgers that still owe money, grouped by class."""
    institution_id = require_text(institution_id, "institution_id", "Institution")
    today = as_day(now or datetime.utcnow())

    def _report(uow: FeeUnitOfWork):
        query = (
            uow.db.query(StudentFee)
            .join(FeeStructure, StudentFee.fee_structure_id == FeeStructure.id)
            .filter(
                StudentFee.institution_id == institution_id,
                StudentFee.status.in_(OUTSTANDING_STATUSES),
                StudentFee.balance_amount > 0,
            )
        )
        if academic_year_id:
            query = query.filter(StudentFee.academic_year_id == academic_year_id)
        if academic_unit_id:
            query = query.filter(FeeStructure.academic_unit_id == academic_unit_id)
        if overdue_only:
            query = query.filter(StudentFee.due_date.isnot(None), StudentFee.due_date < today)

        details = []
        by_class: Dict[str, ClassDues] = {}
        for ledger in query.order_by(StudentFee.id).all():
            unit = _unit_label(ledger.fee_structure)
            is_overdue = ledger.due_date is not None and ledger.due_date < today
            details.append(DuesLine(
                student_fee_id=ledger.id,
                student_id=ledger.student_id,
                academic_unit_id=unit,
                fee_structure_name=ledger.fee_structure.name,
                final_amount=ledger.final_amount,
                paid_amount=ledger.paid_amount,
                balance_amount=ledger.balance_amount,
                due_date=ledger.due_date,
                is_overdue=is_overdue,
                status=ledger.status,
            ))
            group = by_class.setdefault(unit, ClassDues(total_dues=ZERO, student_count=0))
            group.total_dues += ledger.balance_amount
            group.student_count += 1
            group.student_fee_ids.append(ledger.id)

        total_dues = sum((line.balance_amount for line in details), ZERO)
        count = len(details)
        summary = DuesSummary(
            total_dues=total_dues,
            total_students=count,
            overdue_count=sum(1 for line in details if line.is_overdue),
            average_due=round_money(total_dues / count) if count else ZERO,
        )
        return DuesReport(
            institution_id=institution_id,
            as_of=today,
            summary=summary,
            by_class=by_class,
            details=details,
        )

    return store.with_transaction(_report, label="dues_report")


def _window(from_date: Optional[date], to_date: Optional[date]):
    if from_date and to_date and from_date > to_date:
        raise ValidationError("from_date cannot be after to_date", field="from_date")
    start = datetime.combine(from_date, time.min) if from_date else None
    # to_date is inclusive
    end = datetime.combine(to_date + timedelta(days=1), time.min) if to_date else None
    return start, end


def _in_window(query, column, start, end):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column < end)
    return query


def collection_summary(
    store: FeeStore,
    institution_id: str,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    academic_year_id: Optional[str] = None,
    group_by: str = "day",
) -> CollectionSummary:
    """Money collected in a date window, by method, period and class.

    Payments count on the day they were taken; reversals count against the
    original payment's method and class on the day they were recorded.
    """
    institution_id = require_text(institution_id, "institution_id", "Institution")
    group_by = (group_by or "day").strip().lower()
    if group_by not in PERIOD_FORMATS:
        raise ValidationError(
            f"Invalid group_by {group_by!r}; expected one of: {', '.join(PERIOD_FORMATS)}", field="group_by"
        )
    period_format = PERIOD_FORMATS[group_by]
    start, end = _window(from_date, to_date)

    def _summary(uow: FeeUnitOfWork):
        payments = uow.db.query(Payment).join(StudentFee, Payment.student_fee_id == StudentFee.id).filter(
            Payment.institution_id == institution_id
        )
        reversals = (
            uow.db.query(PaymentReversal)
            .join(StudentFee, PaymentReversal.student_fee_id == StudentFee.id)
            .filter(PaymentReversal.institution_id == institution_id)
        )
        if academic_year_id:
            payments = payments.filter(StudentFee.academic_year_id == academic_year_id)
            reversals = reversals.filter(StudentFee.academic_year_id == academic_year_id)
        payments = _in_window(payments, Payment.paid_at, start, end).order_by(Payment.paid_at).all()
        reversals = _in_window(reversals, PaymentReversal.reversed_at, start, end).all()

        by_method: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        by_period: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        by_class: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for payment in payments:
            by_method[payment.payment_method.value] += payment.amount
            by_period[payment.paid_at.strftime(period_format)] += payment.amount
            by_class[_unit_label(payment.student_fee.fee_structure)] += payment.amount
        for reversal in reversals:
            original = reversal.payment
            by_method[original.payment_method.value] -= reversal.amount
            by_period[reversal.reversed_at.strftime(period_format)] -= reversal.amount
            by_class[_unit_label(original.student_fee.fee_structure)] -= reversal.amount

        collected = sum((p.amount for p in payments), ZERO)
        reversed_total = sum((r.amount for r in reversals), ZERO)
        totals = CollectionTotals(
            total_collected=collected,
            total_reversed=reversed_total,
            net_collection=collected - reversed_total,
            total_payments=len(payments),
            average_payment=round_money(collected / len(payments)) if payments else ZERO,
        )
        return CollectionSummary(
            institution_id=institution_id,
            from_date=from_date,
            to_date=to_date,
            group_by=group_by,
            summary=totals,
            by_payment_method=dict(by_method),
            by_period=dict(sorted(by_period.items())),
            by_class=dict(by_class),
        )

    result = store.with_transaction(_summary, label="collection_summary")
    logger.debug("Collection summary for %s: %s payments", institution_id, result.summary.total_payments)
    return result
