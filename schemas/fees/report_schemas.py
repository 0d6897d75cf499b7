from pydantic import BaseModel
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from models.fees.fee_enums import FeeStatus


class DuesLine(BaseModel):
    student_fee_id: int
    student_id: str
    academic_unit_id: str
    fee_structure_name: str
    final_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    due_date: Optional[date]
    is_overdue: bool
    status: FeeStatus


class ClassDues(BaseModel):
    total_dues: Decimal
    student_count: int
    student_fee_ids: List[int] = []


class DuesSummary(BaseModel):
    total_dues: Decimal
    total_students: int
    overdue_count: int
    average_due: Decimal


class DuesReport(BaseModel):
    institution_id: str
    as_of: date
    summary: DuesSummary
    by_class: Dict[str, ClassDues]
    details: List[DuesLine]


class CollectionTotals(BaseModel):
    total_collected: Decimal
    total_reversed: Decimal
    net_collection: Decimal
    total_payments: int
    average_payment: Decimal


class CollectionSummary(BaseModel):
    institution_id: str
    from_date: Optional[date]
    to_date: Optional[date]
    group_by: str
    summary: CollectionTotals
    # net of reversals
    by_payment_method: Dict[str, Decimal]
    by_period: Dict[str, Decimal]
    by_class: Dict[str, Decimal]
