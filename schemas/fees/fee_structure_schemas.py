from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from models.fees.fee_enums import FeeType, FeeFrequency
from schemas.fees.student_fee_schemas import DiscountCreate, ScholarshipCreate


class FeeComponentBase(BaseModel):
    name: str
    fee_type: FeeType
    description: Optional[str] = None
    amount: Decimal
    frequency: FeeFrequency = FeeFrequency.ONE_TIME
    is_mandatory: bool = True
    allow_partial_payment: bool = True
    late_fee_applicable: bool = False
    late_fee_amount: Optional[Decimal] = None
    late_fee_percentage: Optional[Decimal] = None
    late_fee_grace_days: int = 0


class FeeComponentCreate(FeeComponentBase):
    pass


class FeeComponentOut(FeeComponentBase):
    id: int
    display_order: int

    class Config:
        from_attributes = True


class FeeStructureCreate(BaseModel):
    institution_id: str
    name: str
    description: Optional[str] = None
    academic_year_id: str
    academic_unit_id: Optional[str] = None
    is_active: bool = True
    created_by: Optional[str] = None
    components: List[FeeComponentCreate] = []


class FeeStructureUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    academic_unit_id: Optional[str] = None
    components: Optional[List[FeeComponentCreate]] = None
    changed_by: Optional[str] = None


class FeeStructureOut(BaseModel):
    id: int
    institution_id: str
    name: str
    description: Optional[str]
    academic_year_id: str
    academic_unit_id: Optional[str]
    is_active: bool
    is_locked: bool
    components: List[FeeComponentOut]
    referenced_by_ledger_count: int = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ChargePreviewRequest(BaseModel):
    overrides: Optional[Dict[int, Decimal]] = None  # structure component id -> amount
    discounts: List[DiscountCreate] = []
    scholarships: List[ScholarshipCreate] = []


class ChargeBreakdownOut(BaseModel):
    total_amount: Decimal
    discount_amount: Decimal
    scholarship_amount: Decimal
    final_amount: Decimal

    class Config:
        from_attributes = True
