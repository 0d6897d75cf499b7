"""Payment recording, reversal and receipt lookup.

A payment is validated against the freshly locked ledger, numbered from the
institution's receipt counter and written together with the ledger update in
one transaction. Any failed precondition rolls the whole unit back, so neither
``paid_amount`` nor the receipt counter moves.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from models.fees.fee_enums import FeeStatus
from models.fees.payment_models import Payment, PaymentAllocation, PaymentReversal
from models.fees.student_fee_models import StudentFee
from schemas.fees.payment_schemas import (
    PaymentMetadata,
    PaymentOut,
    PaymentResult,
    PaymentReversalOut,
    ReceiptLine,
    ReceiptOut,
    ReversalResult,
)
from services.fee_audit import log_finance_event
from services.fee_errors import ConflictError, NotFoundError, StateError, ValidationError
from services.fee_ledger_service import ledger_out, refresh_balances
from services.fee_status import derive_status
from services.fee_store import FeeStore, FeeUnitOfWork
from services.fee_validation import require_money, require_text, validate_payment_details, validate_payment_method
from services.money import ZERO

logger = logging.getLogger(__name__)


def _as_metadata(metadata) -> PaymentMetadata:
    if metadata is None:
        return PaymentMetadata()
    if isinstance(metadata, PaymentMetadata):
        return metadata
    if isinstance(metadata, BaseModel):
        metadata = metadata.dict()
    known = set(PaymentMetadata.__fields__)
    return PaymentMetadata(**{k: v for k, v in dict(metadata).items() if k in known})


def _allocate(ledger: StudentFee, amount: Decimal, component_id: Optional[int]):
    """Split ``amount`` over the ledger's components; returns [(component, amount)]."""
    if component_id is not None:
        component = next((c for c in ledger.components if c.id == component_id), None)
        if component is None:
            raise NotFoundError(
                f"Component {component_id} is not part of student fee {ledger.id}",
                field="component_id",
                entity_id=component_id,
            )
        if amount > component.balance_amount:
            raise ConflictError(
                f"Payment of {amount} exceeds the {component.balance_amount} outstanding on '{component.name}'",
                field="amount",
                entity_id=component.id,
            )
        if not component.allow_partial_payment and amount != component.balance_amount:
            raise ValidationError(
                f"'{component.name}' does not allow partial payment; {component.balance_amount} is due in full",
                field="amount",
                entity_id=component.id,
            )
        return [(component, amount)]

    if amount > ledger.balance_amount:
        raise ConflictError(
            f"Payment amount {amount} cannot exceed balance amount {ledger.balance_amount}",
            field="amount",
            entity_id=ledger.id,
        )
    allocations = []
    remaining = amount
    for component in ledger.components:
        if remaining <= 0:
            break
        if component.balance_amount <= 0:
            continue
        portion = min(remaining, component.balance_amount)
        allocations.append((component, portion))
        remaining -= portion
    return allocations


def record_payment(
    store: FeeStore,
    student_fee_id: int,
    amount,
    method,
    metadata=None,
    now: Optional[datetime] = None,
) -> PaymentResult:
    method = validate_payment_method(method)
    amount = require_money(amount, "amount", positive=True)
    metadata = _as_metadata(metadata)
    validate_payment_details(method, metadata.transaction_id, metadata.reference_number)
    now = now or datetime.utcnow()

    def _record(uow: FeeUnitOfWork):
        ledger = uow.get_student_fee(student_fee_id, for_update=True)
        current = derive_status(ledger.paid_amount, ledger.final_amount, ledger.due_date, now)
        if current == FeeStatus.PAID:
            raise StateError(
                "Student fee is already fully paid; record a reversal to reopen it",
                field="student_fee_id",
                entity_id=ledger.id,
            )
        allocations = _allocate(ledger, amount, metadata.component_id)

        sequence, receipt_number = uow.next_receipt_number(ledger.institution_id)
        for component, portion in allocations:
            component.paid_amount += portion
        ledger.paid_amount += amount
        refresh_balances(ledger, now)

        payment = Payment(
            institution_id=ledger.institution_id,
            student_fee_id=ledger.id,
            student_id=ledger.student_id,
            amount=amount,
            payment_method=method,
            receipt_sequence=sequence,
            receipt_number=receipt_number,
            component_id=metadata.component_id,
            transaction_id=metadata.transaction_id,
            transaction_date=metadata.transaction_date,
            reference_number=metadata.reference_number,
            bank_name=metadata.bank_name,
            branch_name=metadata.branch_name,
            remarks=metadata.remarks,
            collected_by=metadata.collected_by,
            ledger_balance_after=ledger.balance_amount,
            paid_at=now,
            allocations=[
                PaymentAllocation(student_fee_component_id=component.id, amount=portion)
                for component, portion in allocations
            ],
        )
        uow.append_payment(payment)
        uow.save_ledger(ledger)
        log_finance_event(
            uow, ledger.institution_id, "PAYMENT", payment.id, "CREATED",
            f"Payment of {amount} collected from student {ledger.student_id} via {method.value}",
            user_id=metadata.collected_by,
            new_data={
                "amount": amount,
                "payment_method": method,
                "receipt_number": receipt_number,
                "student_fee_id": ledger.id,
            },
        )
        return PaymentResult(payment=PaymentOut.model_validate(payment), ledger=ledger_out(ledger))

    result = store.with_transaction(_record, label="record_payment")
    logger.info(
        "Payment %s (%s) of %s recorded on student fee %s; status %s",
        result.payment.id, result.payment.receipt_number, amount, student_fee_id, result.ledger.status.value,
    )
    return result


def reverse_payment(
    store: FeeStore,
    payment_id: int,
    reason: Optional[str],
    amount=None,
    recorded_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ReversalResult:
    """Record a typed reversal against an existing payment. The payment itself is never edited."""
    reason = require_text(reason, "reason", "Reversal reason")
    requested = require_money(amount, "amount", positive=True) if amount is not None else None
    now = now or datetime.utcnow()

    def _reverse(uow: FeeUnitOfWork):
        payment = uow.db.query(Payment).filter(Payment.id == payment_id).first()
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found", field="payment_id", entity_id=payment_id)
        ledger = uow.get_student_fee(payment.student_fee_id, for_update=True)
        reversible = payment.amount - payment.reversed_amount
        if reversible <= 0:
            raise StateError("Payment has already been fully reversed", field="payment_id", entity_id=payment.id)
        value = reversible if requested is None else requested
        if value > reversible:
            raise ConflictError(
                f"Reversal of {value} exceeds the {reversible} still reversible on this payment",
                field="amount",
                entity_id=payment.id,
            )

        # undo the payment's own allocations first, newest component first
        by_id = {c.id: c for c in ledger.components}
        own = [by_id[a.student_fee_component_id] for a in payment.allocations if a.student_fee_component_id in by_id]
        rest = [c for c in ledger.components if c not in own]
        undone = []
        remaining = value
        for component in list(reversed(own)) + list(reversed(rest)):
            if remaining <= 0:
                break
            portion = min(remaining, component.paid_amount)
            if portion <= 0:
                continue
            component.paid_amount -= portion
            remaining -= portion
            undone.append({"component_id": component.id, "amount": str(portion)})
        ledger.paid_amount -= value
        refresh_balances(ledger, now)

        reversal = PaymentReversal(
            institution_id=payment.institution_id,
            payment_id=payment.id,
            student_fee_id=ledger.id,
            amount=value,
            reason=reason,
            allocations=undone,
            recorded_by=recorded_by,
            reversed_at=now,
        )
        payment.reversals.append(reversal)
        uow.add(reversal)
        uow.save_ledger(ledger)
        log_finance_event(
            uow, ledger.institution_id, "PAYMENT", payment.id, "REVERSED",
            f"{value} reversed on receipt {payment.receipt_number}: {reason}",
            user_id=recorded_by,
            new_data={"amount": value, "receipt_number": payment.receipt_number, "paid_amount": ledger.paid_amount},
        )
        return ReversalResult(reversal=PaymentReversalOut.model_validate(reversal), ledger=ledger_out(ledger))

    result = store.with_transaction(_reverse, label="reverse_payment")
    logger.info("Payment %s reversed by %s; student fee %s now %s",
                payment_id, result.reversal.amount, result.ledger.id, result.ledger.status.value)
    return result


def get_payment(store: FeeStore, payment_id: int) -> PaymentOut:
    def _get(uow: FeeUnitOfWork):
        payment = uow.db.query(Payment).filter(Payment.id == payment_id).first()
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found", field="payment_id", entity_id=payment_id)
        return PaymentOut.model_validate(payment)

    return store.with_transaction(_get, label="get_payment")


def list_payments(store: FeeStore, student_fee_id: int) -> List[PaymentOut]:
    def _list(uow: FeeUnitOfWork):
        ledger = uow.get_student_fee(student_fee_id)
        return [PaymentOut.model_validate(p) for p in ledger.payments]

    return store.with_transaction(_list, label="list_payments")


def get_receipt(store: FeeStore, institution_id: str, receipt_number: str) -> ReceiptOut:
    def _receipt(uow: FeeUnitOfWork):
        payment = uow.db.query(Payment).filter(
            Payment.institution_id == institution_id,
            Payment.receipt_number == receipt_number,
        ).first()
        if payment is None:
            raise NotFoundError(f"Receipt {receipt_number} not found", field="receipt_number", entity_id=receipt_number)
        ledger = payment.student_fee
        names = {c.id: c.name for c in ledger.components}
        return ReceiptOut(
            receipt_number=payment.receipt_number,
            receipt_date=payment.paid_at,
            institution_id=payment.institution_id,
            student_id=payment.student_id,
            student_fee_id=ledger.id,
            fee_structure_name=ledger.fee_structure.name,
            academic_year_id=ledger.academic_year_id,
            fee_components=[ReceiptLine(name=c.name, amount=c.amount + (c.late_fee_charged or ZERO)) for c in ledger.components],
            allocations=[
                ReceiptLine(name=names.get(a.student_fee_component_id, ""), amount=a.amount)
                for a in payment.allocations
            ],
            total_amount=ledger.total_amount,
            discount_amount=ledger.discount_amount,
            scholarship_amount=ledger.scholarship_amount,
            final_amount=ledger.final_amount,
            amount_paid=payment.amount,
            reversed_amount=payment.reversed_amount,
            pending_amount=payment.ledger_balance_after,
            payment_method=payment.payment_method,
            transaction_id=payment.transaction_id,
            reference_number=payment.reference_number,
            collected_by=payment.collected_by,
        )

    return store.with_transaction(_receipt, label="get_receipt")
