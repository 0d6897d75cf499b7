from pydantic import BaseModel
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from models.fees.fee_enums import DiscountType, FeeFrequency, FeeStatus, FeeType, ScholarshipStatus


class DiscountCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    source_component_id: Optional[int] = None  # structure component id as on StudentFeeComponentOut; None = total
    reason: Optional[str] = None


class DiscountAttach(DiscountCreate):
    approved_by: Optional[str] = None
    reapproved: bool = False


class ScholarshipCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    scholarship_amount: Decimal
    provider: Optional[str] = None
    status: Optional[ScholarshipStatus] = None


class ScholarshipAttach(ScholarshipCreate):
    approved_by: Optional[str] = None
    reapproved: bool = False


class ScholarshipDecision(BaseModel):
    decided_by: Optional[str] = None
    reapproved: bool = False


class StudentFeeCreate(BaseModel):
    student_id: str
    fee_structure_id: int
    due_date: Optional[date] = None
    overrides: Optional[Dict[int, Decimal]] = None  # structure component id -> amount
    override_reason: Optional[str] = None
    discounts: List[DiscountCreate] = []
    scholarships: List[ScholarshipCreate] = []
    assigned_by: Optional[str] = None


class ComponentOverride(BaseModel):
    component_id: int  # StudentFeeComponentOut.id, not the structure component id
    amount: Decimal
    reason: Optional[str] = None
    changed_by: Optional[str] = None


class SweepRequest(BaseModel):
    now: Optional[datetime] = None


class SweepResult(BaseModel):
    transitioned: int


class StudentFeeComponentOut(BaseModel):
    id: int
    source_component_id: Optional[int]
    name: str
    fee_type: FeeType
    frequency: FeeFrequency
    is_mandatory: bool
    allow_partial_payment: bool
    original_amount: Decimal
    amount: Decimal
    is_custom: bool
    late_fee_applicable: bool
    late_fee_charged: Decimal
    late_fee_charged_at: Optional[datetime]
    net_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    display_order: int

    class Config:
        from_attributes = True


class FeeDiscountOut(BaseModel):
    id: int
    name: str
    description: Optional[str]
    discount_type: DiscountType
    discount_value: Decimal
    source_component_id: Optional[int]
    discount_amount: Decimal
    reason: str
    approved_by: Optional[str]
    approved_at: Optional[datetime]

    class Config:
        from_attributes = True


class FeeScholarshipOut(BaseModel):
    id: int
    name: str
    description: Optional[str]
    scholarship_amount: Decimal
    provider: Optional[str]
    status: ScholarshipStatus
    approved_by: Optional[str]
    approved_at: Optional[datetime]

    class Config:
        from_attributes = True


class StudentFeeOut(BaseModel):
    id: int
    institution_id: str
    student_id: str
    fee_structure_id: int
    academic_year_id: str
    total_amount: Decimal
    discount_amount: Decimal
    scholarship_amount: Decimal
    final_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    status: FeeStatus
    due_date: Optional[date]
    is_overridden: bool
    override_reason: Optional[str]
    components: List[StudentFeeComponentOut]
    discounts: List[FeeDiscountOut]
    scholarships: List[FeeScholarshipOut]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
