from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from models.fees.fee_enums import FeeStatus
from schemas.fees.student_fee_schemas import (
    ComponentOverride,
    DiscountAttach,
    ScholarshipAttach,
    ScholarshipDecision,
    StudentFeeCreate,
    StudentFeeOut,
    SweepRequest,
    SweepResult,
)
from services import fee_ledger_service
from services.fee_store import FeeStore, get_fee_store

router = APIRouter(prefix="/api/fees/student-fees", tags=["Student Fees"])


@router.post("/create", response_model=StudentFeeOut, status_code=status.HTTP_201_CREATED)
def create_student_fee(payload: StudentFeeCreate, store: FeeStore = Depends(get_fee_store)):
    return fee_ledger_service.create_student_fee(
        store,
        payload.student_id,
        payload.fee_structure_id,
        overrides=payload.overrides,
        discounts=payload.discounts,
        scholarships=payload.scholarships,
        due_date=payload.due_date,
        assigned_by=payload.assigned_by,
        override_reason=payload.override_reason,
    )


@router.get("/get-all", response_model=List[StudentFeeOut])
def list_student_fees(
    institution_id: Optional[str] = Query(None),
    student_id: Optional[str] = Query(None),
    fee_status: Optional[FeeStatus] = Query(None, alias="status"),
    store: FeeStore = Depends(get_fee_store),
):
    return fee_ledger_service.list_student_fees(store, institution_id, student_id, fee_status)


@router.get("/get-by/{student_fee_id}", response_model=StudentFeeOut)
def get_student_fee(student_fee_id: int, store: FeeStore = Depends(get_fee_store)):
    return fee_ledger_service.get_ledger(store, student_fee_id)


@router.delete("/delete-by/{student_fee_id}", response_model=dict)
def delete_student_fee(
    student_fee_id: int,
    deleted_by: Optional[str] = Query(None),
    store: FeeStore = Depends(get_fee_store),
):
    fee_ledger_service.delete_student_fee(store, student_fee_id, deleted_by)
    return {"detail": "Student fee deleted"}


@router.post("/{student_fee_id}/discounts", response_model=StudentFeeOut)
def add_discount(student_fee_id: int, payload: DiscountAttach, store: FeeStore = Depends(get_fee_store)):
    discount = payload.dict(exclude={"approved_by", "reapproved"})
    return fee_ledger_service.add_discount(
        store, student_fee_id, discount, approved_by=payload.approved_by, reapproved=payload.reapproved
    )


@router.post("/{student_fee_id}/scholarships", response_model=StudentFeeOut)
def add_scholarship(student_fee_id: int, payload: ScholarshipAttach, store: FeeStore = Depends(get_fee_store)):
    scholarship = payload.dict(exclude={"approved_by", "reapproved"})
    return fee_ledger_service.add_scholarship(
        store, student_fee_id, scholarship, approved_by=payload.approved_by, reapproved=payload.reapproved
    )


@router.post("/scholarships/{scholarship_id}/approve", response_model=StudentFeeOut)
def approve_scholarship(scholarship_id: int, payload: ScholarshipDecision, store: FeeStore = Depends(get_fee_store)):
    return fee_ledger_service.approve_scholarship(store, scholarship_id, payload.decided_by, payload.reapproved)


@router.post("/scholarships/{scholarship_id}/reject", response_model=StudentFeeOut)
def reject_scholarship(scholarship_id: int, payload: ScholarshipDecision, store: FeeStore = Depends(get_fee_store)):
    return fee_ledger_service.reject_scholarship(store, scholarship_id, payload.decided_by)


@router.put("/{student_fee_id}/components", response_model=StudentFeeOut)
def override_component(student_fee_id: int, payload: ComponentOverride, store: FeeStore = Depends(get_fee_store)):
    return fee_ledger_service.override_component_amount(
        store, student_fee_id, payload.component_id, payload.amount, payload.reason, payload.changed_by
    )


@router.post("/{student_fee_id}/resync", response_model=StudentFeeOut)
def resync_student_fee(
    student_fee_id: int,
    changed_by: Optional[str] = Query(None),
    store: FeeStore = Depends(get_fee_store),
):
    return fee_ledger_service.resync_student_fee(store, student_fee_id, changed_by)


# Scheduled job entry point; safe to call repeatedly
@router.post("/sweep-overdue", response_model=SweepResult)
def sweep_overdue(payload: SweepRequest, store: FeeStore = Depends(get_fee_store)):
    return SweepResult(transitioned=fee_ledger_service.sweep_overdue(store, payload.now))
