from pydantic import BaseModel
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from models.fees.fee_enums import PaymentMethod
from schemas.fees.student_fee_schemas import StudentFeeOut


class PaymentMetadata(BaseModel):
    transaction_id: Optional[str] = None
    reference_number: Optional[str] = None
    transaction_date: Optional[date] = None
    bank_name: Optional[str] = None
    branch_name: Optional[str] = None
    remarks: Optional[str] = None
    collected_by: Optional[str] = None
    component_id: Optional[int] = None  # StudentFeeComponentOut.id to pay against


class PaymentCreate(PaymentMetadata):
    student_fee_id: int
    amount: Decimal
    payment_method: PaymentMethod


class PaymentAllocationOut(BaseModel):
    student_fee_component_id: int
    amount: Decimal

    class Config:
        from_attributes = True


class PaymentOut(BaseModel):
    id: int
    institution_id: str
    student_fee_id: int
    student_id: str
    amount: Decimal
    payment_method: PaymentMethod
    receipt_sequence: int
    receipt_number: str
    component_id: Optional[int]
    transaction_id: Optional[str]
    transaction_date: Optional[date]
    reference_number: Optional[str]
    bank_name: Optional[str]
    branch_name: Optional[str]
    remarks: Optional[str]
    collected_by: Optional[str]
    ledger_balance_after: Decimal
    reversed_amount: Decimal
    allocations: List[PaymentAllocationOut]
    paid_at: datetime

    class Config:
        from_attributes = True


class PaymentResult(BaseModel):
    payment: PaymentOut
    ledger: StudentFeeOut


class ReversalCreate(BaseModel):
    amount: Optional[Decimal] = None  # defaults to everything not yet reversed
    reason: Optional[str] = None
    recorded_by: Optional[str] = None


class PaymentReversalOut(BaseModel):
    id: int
    payment_id: int
    student_fee_id: int
    amount: Decimal
    reason: str
    allocations: Optional[List[dict]]
    recorded_by: Optional[str]
    reversed_at: datetime

    class Config:
        from_attributes = True


class ReversalResult(BaseModel):
    reversal: PaymentReversalOut
    ledger: StudentFeeOut


class ReceiptLine(BaseModel):
    name: str
    amount: Decimal


class ReceiptOut(BaseModel):
    """Everything the external receipt renderer needs for one payment."""
    receipt_number: str
    receipt_date: datetime
    institution_id: str
    student_id: str
    student_fee_id: int
    fee_structure_name: str
    academic_year_id: str
    fee_components: List[ReceiptLine]
    allocations: List[ReceiptLine]
    total_amount: Decimal
    discount_amount: Decimal
    scholarship_amount: Decimal
    final_amount: Decimal
    amount_paid: Decimal
    reversed_amount: Decimal
    pending_amount: Decimal
    payment_method: PaymentMethod
    transaction_id: Optional[str]
    reference_number: Optional[str]
    collected_by: Optional[str]
