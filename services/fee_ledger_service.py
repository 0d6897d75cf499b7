"""Student fee ledger: creation, adjustments, overdue sweep.

``recompute_ledger`` is the only place the ledger's amounts and status are
written. It runs after every change and re-derives:

    total_amount   = sum of component amounts (including charged late fees)
    final_amount   = max(0, total - discount - scholarship)
    balance_amount = final - paid, never negative
    status         = derive_status(paid, final, due_date, now)

A change that would push the final amount below what has already been paid
is rejected, not clamped.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from models.fees.fee_enums import FeeStatus, ScholarshipStatus
from models.fees.fee_structure_models import FeeStructure
from models.fees.student_fee_models import FeeDiscount, FeeScholarship, StudentFee, StudentFeeComponent
from schemas.fees.fee_structure_schemas import ChargeBreakdownOut
from schemas.fees.student_fee_schemas import StudentFeeOut
from services.fee_audit import log_finance_event
from services.fee_calculator import (
    ChargeBreakdown,
    ComponentCharge,
    DiscountInput,
    ScholarshipInput,
    compute_charges,
    late_fee_for,
)
from services.fee_errors import ConflictError, NotFoundError, StateError, ValidationError
from services.fee_status import as_day, derive_status
from services.fee_store import FeeStore, FeeUnitOfWork
from services.fee_validation import require_money, require_text
from services.money import ZERO

logger = logging.getLogger(__name__)


def _as_discount(value) -> DiscountInput:
    if isinstance(value, DiscountInput):
        return value
    if isinstance(value, BaseModel):
        value = value.dict()
    return DiscountInput(**value)


def _as_scholarship(value, default_status: ScholarshipStatus) -> ScholarshipInput:
    if isinstance(value, ScholarshipInput):
        return value
    if isinstance(value, BaseModel):
        value = value.dict()
    value = dict(value)
    if value.get("status") is None:
        value["status"] = default_status
    return ScholarshipInput(**value)


def _validated_overrides(structure: FeeStructure, overrides: Optional[Dict[int, Decimal]]) -> Dict[int, Decimal]:
    overrides = overrides or {}
    known = {c.id for c in structure.components}
    cleaned = {}
    for component_id, amount in overrides.items():
        component_id = int(component_id)
        if component_id not in known:
            raise ValidationError(
                f"Override targets unknown component {component_id}",
                field="overrides",
                entity_id=component_id,
            )
        cleaned[component_id] = require_money(amount, f"overrides[{component_id}]")
    return cleaned


def _snapshot_components(structure: FeeStructure, overrides: Dict[int, Decimal]) -> List[StudentFeeComponent]:
    snapshot = []
    for component in structure.components:
        amount = overrides.get(component.id, component.amount)
        snapshot.append(StudentFeeComponent(
            source_component_id=component.id,
            name=component.name,
            fee_type=component.fee_type,
            frequency=component.frequency,
            is_mandatory=component.is_mandatory,
            allow_partial_payment=component.allow_partial_payment,
            original_amount=component.amount,
            amount=amount,
            is_custom=amount != component.amount,
            late_fee_applicable=component.late_fee_applicable,
            late_fee_amount=component.late_fee_amount,
            late_fee_percentage=component.late_fee_percentage,
            late_fee_grace_days=component.late_fee_grace_days or 0,
            late_fee_charged=ZERO,
            net_amount=ZERO,
            paid_amount=ZERO,
            balance_amount=ZERO,
            display_order=component.display_order,
        ))
    return snapshot


def _discount_input(discount: FeeDiscount) -> DiscountInput:
    return DiscountInput(
        name=discount.name,
        description=discount.description,
        discount_type=discount.discount_type,
        discount_value=discount.discount_value,
        source_component_id=discount.source_component_id,
        reason=discount.reason,
    )


def _scholarship_input(scholarship: FeeScholarship) -> ScholarshipInput:
    return ScholarshipInput(
        name=scholarship.name,
        scholarship_amount=scholarship.scholarship_amount,
        provider=scholarship.provider,
        status=scholarship.status,
    )


def _ledger_charges(ledger: StudentFee) -> List[ComponentCharge]:
    return [
        ComponentCharge(
            component_id=c.source_component_id,
            name=c.name,
            amount=c.amount,
            late_fee_amount=c.late_fee_charged or ZERO,
            display_order=c.display_order,
        )
        for c in ledger.components
    ]


def _rebalance_component_payments(components: List[StudentFeeComponent]) -> None:
    """Move paid money off components whose net dropped below what they hold."""
    excess = ZERO
    for component in components:
        if component.paid_amount > component.net_amount:
            excess += component.paid_amount - component.net_amount
            component.paid_amount = component.net_amount
    for component in components:
        if excess <= 0:
            break
        room = component.net_amount - component.paid_amount
        if room > 0:
            moved = min(room, excess)
            component.paid_amount += moved
            excess -= moved


def refresh_balances(ledger: StudentFee, now) -> None:
    """Recompute balances and status after ``paid_amount`` moved."""
    for component in ledger.components:
        component.balance_amount = component.net_amount - component.paid_amount
    ledger.balance_amount = ledger.final_amount - ledger.paid_amount
    ledger.status = derive_status(ledger.paid_amount, ledger.final_amount, ledger.due_date, now)


def recompute_ledger(ledger: StudentFee, now) -> ChargeBreakdown:
    breakdown = compute_charges(
        _ledger_charges(ledger),
        [_discount_input(d) for d in ledger.discounts],
        [_scholarship_input(s) for s in ledger.scholarships],
    )
    paid = ledger.paid_amount or ZERO
    if paid > breakdown.final_amount:
        raise ConflictError(
            f"Change would reduce the payable amount to {breakdown.final_amount}, "
            f"below the {paid} already paid",
            field="final_amount",
            entity_id=ledger.id,
        )

    for discount, line in zip(ledger.discounts, breakdown.discount_lines):
        discount.discount_amount = line
    ledger.total_amount = breakdown.total_amount
    ledger.discount_amount = breakdown.discount_amount
    ledger.scholarship_amount = breakdown.scholarship_amount
    ledger.final_amount = breakdown.final_amount
    ledger.paid_amount = paid
    for component in ledger.components:
        component.net_amount = breakdown.component_net[component.source_component_id]
    _rebalance_component_payments(ledger.components)
    refresh_balances(ledger, now)
    return breakdown


def ledger_out(ledger: StudentFee) -> StudentFeeOut:
    return StudentFeeOut.model_validate(ledger)


def _has_payments(ledger: StudentFee) -> bool:
    return len(ledger.payments) > 0


def _find_component(ledger: StudentFee, component_id: int) -> StudentFeeComponent:
    for component in ledger.components:
        if component.id == component_id:
            return component
    raise NotFoundError(
        f"Component {component_id} is not part of student fee {ledger.id}",
        field="component_id",
        entity_id=component_id,
    )


def preview_charges(
    store: FeeStore,
    structure_id: int,
    overrides: Optional[Dict[int, Decimal]] = None,
    discounts: Iterable = (),
    scholarships: Iterable = (),
) -> ChargeBreakdownOut:
    """What a ledger built from this structure would owe. Writes nothing."""
    discount_inputs = [_as_discount(d) for d in discounts]
    scholarship_inputs = [_as_scholarship(s, ScholarshipStatus.APPROVED) for s in scholarships]

    def _preview(uow: FeeUnitOfWork):
        structure = uow.get_fee_structure(structure_id)
        amounts = _validated_overrides(structure, overrides)
        charges = [
            ComponentCharge(
                component_id=c.id,
                name=c.name,
                amount=amounts.get(c.id, c.amount),
                display_order=c.display_order,
            )
            for c in structure.components
        ]
        breakdown = compute_charges(charges, discount_inputs, scholarship_inputs)
        return ChargeBreakdownOut.model_validate(breakdown)

    return store.with_transaction(_preview, label="preview_charges")


def create_student_fee(
    store: FeeStore,
    student_id: str,
    fee_structure_id: int,
    overrides: Optional[Dict[int, Decimal]] = None,
    discounts: Iterable = (),
    scholarships: Iterable = (),
    due_date=None,
    assigned_by: Optional[str] = None,
    override_reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> StudentFeeOut:
    student_id = require_text(student_id, "student_id", "Student")
    discount_inputs = [_as_discount(d) for d in discounts]
    # scholarships granted at admission are approved by the assigning user
    scholarship_inputs = [_as_scholarship(s, ScholarshipStatus.APPROVED) for s in scholarships]
    now = now or datetime.utcnow()

    def _create(uow: FeeUnitOfWork):
        structure = uow.get_fee_structure(fee_structure_id, for_update=True)
        if not structure.is_active:
            raise StateError("Fee structure is inactive", field="fee_structure_id", entity_id=structure.id)
        existing = uow.db.query(StudentFee).filter(
            StudentFee.student_id == student_id,
            StudentFee.fee_structure_id == structure.id,
        ).first()
        if existing is not None:
            raise ConflictError(
                "Fee structure already assigned to this student",
                field="fee_structure_id",
                entity_id=existing.id,
            )

        amounts = _validated_overrides(structure, overrides)
        components = _snapshot_components(structure, amounts)
        overridden = any(c.is_custom for c in components)
        ledger = StudentFee(
            institution_id=structure.institution_id,
            student_id=student_id,
            fee_structure_id=structure.id,
            academic_year_id=structure.academic_year_id,
            paid_amount=ZERO,
            due_date=as_day(due_date),
            is_overridden=overridden,
            override_reason=(override_reason or "Custom fee amounts applied at assignment") if overridden else None,
            assigned_by=assigned_by,
            components=components,
        )
        approved_at = datetime.utcnow()
        for discount in discount_inputs:
            ledger.discounts.append(FeeDiscount(
                name=discount.name,
                description=discount.description,
                discount_type=discount.discount_type,
                discount_value=discount.discount_value,
                source_component_id=discount.source_component_id,
                reason=discount.reason,
                approved_by=assigned_by,
                approved_at=approved_at,
            ))
        for scholarship in scholarship_inputs:
            approved = scholarship.status == ScholarshipStatus.APPROVED
            ledger.scholarships.append(FeeScholarship(
                name=scholarship.name,
                description=scholarship.description,
                scholarship_amount=scholarship.scholarship_amount,
                provider=scholarship.provider,
                status=scholarship.status,
                approved_by=assigned_by if approved else None,
                approved_at=approved_at if approved else None,
            ))
        recompute_ledger(ledger, now)
        uow.save_ledger(ledger)

        if not structure.is_locked:
            structure.is_locked = True
            uow.add(structure)
            logger.info("Fee structure %s locked by its first student fee", structure.id)

        log_finance_event(
            uow, ledger.institution_id, "STUDENT_FEE", ledger.id, "CREATED",
            f"Fee structure '{structure.name}' assigned to student {student_id}",
            user_id=assigned_by,
            new_data={
                "student_id": student_id,
                "fee_structure_id": structure.id,
                "total_amount": ledger.total_amount,
                "final_amount": ledger.final_amount,
            },
        )
        return ledger_out(ledger)

    created = store.with_transaction(_create, label="create_student_fee")
    logger.info("Student fee %s created for student %s (final %s)", created.id, student_id, created.final_amount)
    return created


def get_ledger(store: FeeStore, student_fee_id: int) -> StudentFeeOut:
    return store.with_transaction(
        lambda uow: ledger_out(uow.get_student_fee(student_fee_id)),
        label="get_ledger",
    )


def list_student_fees(
    store: FeeStore,
    institution_id: Optional[str] = None,
    student_id: Optional[str] = None,
    status: Optional[FeeStatus] = None,
) -> List[StudentFeeOut]:
    def _list(uow: FeeUnitOfWork):
        query = uow.db.query(StudentFee)
        if institution_id:
            query = query.filter(StudentFee.institution_id == institution_id)
        if student_id:
            query = query.filter(StudentFee.student_id == student_id)
        if status:
            query = query.filter(StudentFee.status == status)
        return [ledger_out(ledger) for ledger in query.order_by(StudentFee.id).all()]

    return store.with_transaction(_list, label="list_student_fees")


def add_discount(
    store: FeeStore,
    student_fee_id: int,
    discount,
    approved_by: Optional[str] = None,
    reapproved: bool = False,
    now: Optional[datetime] = None,
) -> StudentFeeOut:
    discount = _as_discount(discount)
    now = now or datetime.utcnow()

    def _add(uow: FeeUnitOfWork):
        ledger = uow.get_student_fee(student_fee_id, for_update=True)
        if _has_payments(ledger) and not reapproved:
            raise StateError(
                "Discounts can only be attached before the first payment unless explicitly re-approved",
                field="reapproved",
                entity_id=ledger.id,
            )
        ledger.discounts.append(FeeDiscount(
            name=discount.name,
            description=discount.description,
            discount_type=discount.discount_type,
            discount_value=discount.discount_value,
            source_component_id=discount.source_component_id,
            reason=discount.reason,
            approved_by=approved_by,
            approved_at=datetime.utcnow(),
        ))
        recompute_ledger(ledger, now)
        uow.save_ledger(ledger)
        log_finance_event(
            uow, ledger.institution_id, "DISCOUNT", ledger.id, "CREATED",
            f"Discount '{discount.name}' applied: {discount.reason}",
            user_id=approved_by,
            new_data={
                "discount_type": discount.discount_type,
                "discount_value": discount.discount_value,
                "discount_amount": ledger.discount_amount,
                "reapproved": reapproved,
            },
        )
        return ledger_out(ledger)

    return store.with_transaction(_add, label="add_discount")


def add_scholarship(
    store: FeeStore,
    student_fee_id: int,
    scholarship,
    approved_by: Optional[str] = None,
    reapproved: bool = False,
    now: Optional[datetime] = None,
) -> StudentFeeOut:
    # scholarships attached after assignment wait for approval unless stated otherwise
    scholarship = _as_scholarship(scholarship, ScholarshipStatus.PENDING)
    now = now or datetime.utcnow()

    def _add(uow: FeeUnitOfWork):
        ledger = uow.get_student_fee(student_fee_id, for_update=True)
        approved = scholarship.status == ScholarshipStatus.APPROVED
        if approved and _has_payments(ledger) and not reapproved:
            raise StateError(
                "Approved scholarships can only be attached before the first payment unless explicitly re-approved",
                field="reapproved",
                entity_id=ledger.id,
            )
        ledger.scholarships.append(FeeScholarship(
            name=scholarship.name,
            description=scholarship.description,
            scholarship_amount=scholarship.scholarship_amount,
            provider=scholarship.provider,
            status=scholarship.status,
            approved_by=approved_by if approved else None,
            approved_at=datetime.utcnow() if approved else None,
        ))
        recompute_ledger(ledger, now)
        uow.save_ledger(ledger)
        log_finance_event(
            uow, ledger.institution_id, "SCHOLARSHIP", ledger.id, "CREATED",
            f"Scholarship '{scholarship.name}' attached ({scholarship.status.value})",
            user_id=approved_by,
            new_data={"scholarship_amount": scholarship.scholarship_amount, "provider": scholarship.provider},
        )
        return ledger_out(ledger)

    return store.with_transaction(_add, label="add_scholarship")


def _decide_scholarship(
    store: FeeStore,
    scholarship_id: int,
    decision: ScholarshipStatus,
    decided_by: Optional[str],
    now: Optional[datetime],
    reapproved: bool = False,
) -> StudentFeeOut:
    now = now or datetime.utcnow()

    def _decide(uow: FeeUnitOfWork):
        scholarship = uow.db.query(FeeScholarship).filter(FeeScholarship.id == scholarship_id).first()
        if scholarship is None:
            raise NotFoundError(f"Scholarship {scholarship_id} not found", field="scholarship_id", entity_id=scholarship_id)
        if scholarship.status != ScholarshipStatus.PENDING:
            raise StateError(
                f"Only pending scholarships can be {decision.value.lower()}",
                field="status",
                entity_id=scholarship_id,
            )
        ledger = uow.get_student_fee(scholarship.student_fee_id, for_update=True)
        # same gate as attaching an approved scholarship
        if decision == ScholarshipStatus.APPROVED and _has_payments(ledger) and not reapproved:
            raise StateError(
                "Scholarships can only be approved before the first payment unless explicitly re-approved",
                field="reapproved",
                entity_id=ledger.id,
            )
        scholarship.status = decision
        scholarship.approved_by = decided_by
        scholarship.approved_at = datetime.utcnow()
        recompute_ledger(ledger, now)
        uow.save_ledger(ledger)
        log_finance_event(
            uow, ledger.institution_id, "SCHOLARSHIP", scholarship.id, decision.value,
            f"Scholarship '{scholarship.name}' {decision.value.lower()}",
            user_id=decided_by,
            new_data={
                "scholarship_amount": scholarship.scholarship_amount,
                "final_amount": ledger.final_amount,
                "reapproved": reapproved,
            },
        )
        return ledger_out(ledger)

    return store.with_transaction(_decide, label="decide_scholarship")


def approve_scholarship(
    store: FeeStore,
    scholarship_id: int,
    approved_by: Optional[str] = None,
    reapproved: bool = False,
    now=None,
) -> StudentFeeOut:
    return _decide_scholarship(store, scholarship_id, ScholarshipStatus.APPROVED, approved_by, now, reapproved)


def reject_scholarship(store: FeeStore, scholarship_id: int, rejected_by: Optional[str] = None, now=None) -> StudentFeeOut:
    return _decide_scholarship(store, scholarship_id, ScholarshipStatus.REJECTED, rejected_by, now)


def override_component_amount(
    store: FeeStore,
    student_fee_id: int,
    component_id: int,
    amount,
    reason: Optional[str],
    changed_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> StudentFeeOut:
    amount = require_money(amount, "amount")
    reason = require_text(reason, "reason", "Override reason")
    now = now or datetime.utcnow()

    def _override(uow: FeeUnitOfWork):
        ledger = uow.get_student_fee(student_fee_id, for_update=True)
        if _has_payments(ledger):
            raise StateError(
                "Component amounts can only be overridden before the first payment",
                field="component_id",
                entity_id=ledger.id,
            )
        component = _find_component(ledger, component_id)
        previous = component.amount
        component.amount = amount
        component.is_custom = amount != component.original_amount
        ledger.is_overridden = any(c.is_custom for c in ledger.components)
        ledger.override_reason = reason if ledger.is_overridden else None
        recompute_ledger(ledger, now)
        uow.save_ledger(ledger)
        log_finance_event(
            uow, ledger.institution_id, "STUDENT_FEE", ledger.id, "COMPONENT_OVERRIDDEN",
            f"Component '{component.name}' changed from {previous} to {amount}: {reason}",
            user_id=changed_by,
            new_data={"component_id": component.id, "previous": previous, "amount": amount},
        )
        return ledger_out(ledger)

    return store.with_transaction(_override, label="override_component_amount")


def resync_student_fee(
    store: FeeStore,
    student_fee_id: int,
    changed_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> StudentFeeOut:
    """Replace the ledger's component snapshot with the structure's current components."""
    now = now or datetime.utcnow()

    def _resync(uow: FeeUnitOfWork):
        ledger = uow.get_student_fee(student_fee_id, for_update=True)
        if _has_payments(ledger):
            raise StateError(
                "A student fee can only be re-synced before the first payment",
                field="student_fee_id",
                entity_id=ledger.id,
            )
        structure = uow.get_fee_structure(ledger.fee_structure_id)
        ledger.components = _snapshot_components(structure, {})
        ledger.is_overridden = False
        ledger.override_reason = None
        recompute_ledger(ledger, now)
        uow.save_ledger(ledger)
        log_finance_event(
            uow, ledger.institution_id, "STUDENT_FEE", ledger.id, "RESYNCED",
            f"Student fee re-synced from fee structure '{structure.name}'",
            user_id=changed_by,
            new_data={"total_amount": ledger.total_amount, "final_amount": ledger.final_amount},
        )
        return ledger_out(ledger)

    resynced = store.with_transaction(_resync, label="resync_student_fee")
    logger.info("Student fee %s re-synced from its structure", student_fee_id)
    return resynced


def delete_student_fee(store: FeeStore, student_fee_id: int, deleted_by: Optional[str] = None) -> None:
    def _delete(uow: FeeUnitOfWork):
        ledger = uow.get_student_fee(student_fee_id, for_update=True)
        if (ledger.paid_amount or ZERO) > 0:
            raise StateError(
                "Cannot delete a student fee that has payments against it",
                field="paid_amount",
                entity_id=ledger.id,
            )
        if _has_payments(ledger):
            raise StateError(
                "Cannot delete a student fee with recorded (reversed) payments",
                field="payments",
                entity_id=ledger.id,
            )
        structure = uow.get_fee_structure(ledger.fee_structure_id, for_update=True)
        log_finance_event(
            uow, ledger.institution_id, "STUDENT_FEE", ledger.id, "DELETED",
            f"Student fee for student {ledger.student_id} deleted",
            user_id=deleted_by,
        )
        uow.delete(ledger)
        if uow.count_ledgers_for_structure(structure.id) == 0 and structure.is_locked:
            structure.is_locked = False
            uow.add(structure)
            logger.info("Fee structure %s unlocked; no ledgers reference it", structure.id)

    store.with_transaction(_delete, label="delete_student_fee")
    logger.info("Student fee %s deleted", student_fee_id)


def _apply_late_fees(ledger: StudentFee, now: datetime) -> int:
    """Charge each eligible component's late fee once. Returns how many were charged."""
    today = as_day(now)
    charged = 0
    for component in ledger.components:
        if not component.late_fee_applicable or component.late_fee_charged_at is not None:
            continue
        grace = component.late_fee_grace_days or 0
        if (today - ledger.due_date).days <= grace:
            continue
        fee = late_fee_for(component.amount, component.late_fee_amount, component.late_fee_percentage)
        if fee <= 0:
            continue
        component.late_fee_charged = fee
        component.late_fee_charged_at = now
        charged += 1
    return charged


def sweep_overdue(store: FeeStore, now: Optional[datetime] = None) -> int:
    """Re-derive status for every open ledger and charge due late fees.

    Returns the number of ledgers whose status changed. Running it again with
    the same ``now`` changes nothing.
    """
    now = now or datetime.utcnow()

    def _open_ids(uow: FeeUnitOfWork):
        rows = uow.db.query(StudentFee.id).filter(StudentFee.balance_amount > 0).order_by(StudentFee.id).all()
        return [row[0] for row in rows]

    def _sweep_one(student_fee_id: int):
        def _sweep(uow: FeeUnitOfWork):
            ledger = uow.get_student_fee(student_fee_id, for_update=True)
            previous = ledger.status
            if ledger.balance_amount <= 0:
                return False
            charged = 0
            if derive_status(ledger.paid_amount, ledger.final_amount, ledger.due_date, now) == FeeStatus.OVERDUE:
                charged = _apply_late_fees(ledger, now)
            if charged:
                recompute_ledger(ledger, now)
                log_finance_event(
                    uow, ledger.institution_id, "STUDENT_FEE", ledger.id, "LATE_FEE_APPLIED",
                    f"Late fee charged on {charged} component(s)",
                    new_data={"total_amount": ledger.total_amount, "final_amount": ledger.final_amount},
                )
            else:
                refresh_balances(ledger, now)
            changed = ledger.status != previous
            if changed or charged:
                uow.save_ledger(ledger)
            return changed

        return store.with_transaction(_sweep, label="sweep_overdue")

    ids = store.with_transaction(_open_ids, label="sweep_overdue")
    transitioned = sum(1 for student_fee_id in ids if _sweep_one(student_fee_id))
    logger.info("Overdue sweep at %s checked %d ledgers, %d transitioned", now.isoformat(), len(ids), transitioned)
    return transitioned
