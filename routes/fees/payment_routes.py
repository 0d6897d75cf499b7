from fastapi import APIRouter, Depends, status
from typing import List

from schemas.fees.payment_schemas import (
    PaymentCreate,
    PaymentMetadata,
    PaymentOut,
    PaymentResult,
    ReceiptOut,
    ReversalCreate,
    ReversalResult,
)
from services import payment_service
from services.fee_store import FeeStore, get_fee_store

router = APIRouter(prefix="/api/fees/payments", tags=["Fee Payments"])


@router.post("/create", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
def record_payment(payload: PaymentCreate, store: FeeStore = Depends(get_fee_store)):
    metadata = PaymentMetadata(**payload.dict(include=set(PaymentMetadata.__fields__)))
    return payment_service.record_payment(
        store, payload.student_fee_id, payload.amount, payload.payment_method, metadata
    )


@router.get("/get-by/{payment_id}", response_model=PaymentOut)
def get_payment(payment_id: int, store: FeeStore = Depends(get_fee_store)):
    return payment_service.get_payment(store, payment_id)


@router.get("/get-by/student-fee/{student_fee_id}", response_model=List[PaymentOut])
def list_payments(student_fee_id: int, store: FeeStore = Depends(get_fee_store)):
    return payment_service.list_payments(store, student_fee_id)


@router.post("/{payment_id}/reverse", response_model=ReversalResult, status_code=status.HTTP_201_CREATED)
def reverse_payment(payment_id: int, payload: ReversalCreate, store: FeeStore = Depends(get_fee_store)):
    return payment_service.reverse_payment(
        store, payment_id, payload.reason, amount=payload.amount, recorded_by=payload.recorded_by
    )


@router.get("/receipt/{institution_id}/{receipt_number}", response_model=ReceiptOut)
def get_receipt(institution_id: str, receipt_number: str, store: FeeStore = Depends(get_fee_store)):
    return payment_service.get_receipt(store, institution_id, receipt_number)
