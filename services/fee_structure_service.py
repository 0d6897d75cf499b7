"""Fee structure catalog: create, edit, delete, resolve.

A structure referenced by any ledger is locked. Structural edits (component
set, academic unit) and deletion re-count the referencing ledgers inside the
same transaction that performs the write, with the structure row locked, so a
ledger created concurrently cannot slip in between the check and the write.
"""
import logging
from typing import List, Optional

from models.fees.fee_structure_models import FeeComponent, FeeStructure
from schemas.fees.fee_structure_schemas import FeeStructureCreate, FeeStructureOut, FeeStructureUpdate
from services.fee_audit import log_finance_event
from services.fee_errors import ConflictError, ValidationError
from services.fee_store import FeeStore, FeeUnitOfWork
from services.fee_validation import require_money, require_text, validate_component
from services.structure_resolver import resolve_fee_structure as _resolve

logger = logging.getLogger(__name__)


def structure_out(uow: FeeUnitOfWork, structure: FeeStructure) -> FeeStructureOut:
    out = FeeStructureOut.model_validate(structure)
    out.referenced_by_ledger_count = uow.count_ledgers_for_structure(structure.id)
    return out


def _build_components(components) -> List[FeeComponent]:
    if not components:
        raise ValidationError("At least one fee component is required", field="components")
    built = []
    for index, component in enumerate(components):
        validate_component(component, index)
        built.append(FeeComponent(
            name=component.name.strip(),
            fee_type=component.fee_type,
            description=component.description,
            amount=require_money(component.amount, f"components[{index}].amount"),
            frequency=component.frequency,
            is_mandatory=component.is_mandatory,
            allow_partial_payment=component.allow_partial_payment,
            late_fee_applicable=component.late_fee_applicable,
            late_fee_amount=component.late_fee_amount,
            late_fee_percentage=component.late_fee_percentage,
            late_fee_grace_days=component.late_fee_grace_days or 0,
            display_order=index,
        ))
    return built


def create_fee_structure(store: FeeStore, payload: FeeStructureCreate) -> FeeStructureOut:
    name = require_text(payload.name, "name", "Fee structure name")
    require_text(payload.institution_id, "institution_id", "Institution")
    require_text(payload.academic_year_id, "academic_year_id", "Academic year")

    def _create(uow: FeeUnitOfWork):
        components = _build_components(payload.components)
        structure = FeeStructure(
            institution_id=payload.institution_id,
            name=name,
            description=payload.description,
            academic_year_id=payload.academic_year_id,
            academic_unit_id=payload.academic_unit_id or None,
            is_active=payload.is_active,
            is_locked=False,
            created_by=payload.created_by,
            components=components,
        )
        uow.add(structure)
        log_finance_event(
            uow, structure.institution_id, "FEE_STRUCTURE", structure.id, "CREATED",
            f"Fee structure '{structure.name}' created with {len(components)} components",
            user_id=payload.created_by,
            new_data={"total": sum(c.amount for c in components), "academic_unit_id": structure.academic_unit_id},
        )
        return structure_out(uow, structure)

    created = store.with_transaction(_create, label="create_fee_structure")
    logger.info("Fee structure %s created for institution %s", created.id, created.institution_id)
    return created


def get_fee_structure(store: FeeStore, structure_id: int) -> FeeStructureOut:
    return store.with_transaction(
        lambda uow: structure_out(uow, uow.get_fee_structure(structure_id)),
        label="get_fee_structure",
    )


def list_fee_structures(
    store: FeeStore,
    institution_id: str,
    academic_year_id: Optional[str] = None,
    active_only: bool = False,
) -> List[FeeStructureOut]:
    def _list(uow: FeeUnitOfWork):
        query = uow.db.query(FeeStructure).filter(FeeStructure.institution_id == institution_id)
        if academic_year_id:
            query = query.filter(FeeStructure.academic_year_id == academic_year_id)
        if active_only:
            query = query.filter(FeeStructure.is_active.is_(True))
        return [structure_out(uow, s) for s in query.order_by(FeeStructure.created_at, FeeStructure.id).all()]

    return store.with_transaction(_list, label="list_fee_structures")


def update_fee_structure(store: FeeStore, structure_id: int, changes: FeeStructureUpdate) -> FeeStructureOut:
    fields = changes.dict(exclude_unset=True)

    def _update(uow: FeeUnitOfWork):
        new_components = _build_components(changes.components) if changes.components is not None else None
        structure = uow.get_fee_structure(structure_id, for_update=True)
        structural = new_components is not None or (
            "academic_unit_id" in fields and (fields["academic_unit_id"] or None) != structure.academic_unit_id
        )
        if structural:
            referenced = uow.count_ledgers_for_structure(structure.id)
            if structure.is_locked or referenced > 0:
                raise ConflictError(
                    "Cannot modify locked fee structure. Students are already assigned.",
                    field="components" if new_components is not None else "academic_unit_id",
                    entity_id=structure.id,
                )
            if "academic_unit_id" in fields:
                structure.academic_unit_id = fields["academic_unit_id"] or None
            if new_components is not None:
                structure.components = new_components

        if "name" in fields:
            structure.name = require_text(fields["name"], "name", "Fee structure name")
        if "description" in fields:
            structure.description = fields["description"]
        if fields.get("is_active") is not None:
            structure.is_active = fields["is_active"]

        uow.add(structure)
        log_finance_event(
            uow, structure.institution_id, "FEE_STRUCTURE", structure.id, "UPDATED",
            f"Fee structure '{structure.name}' updated",
            user_id=changes.changed_by,
            new_data={k: v for k, v in fields.items() if k not in ("components", "changed_by")},
        )
        return structure_out(uow, structure)

    updated = store.with_transaction(_update, label="update_fee_structure")
    logger.info("Fee structure %s updated", structure_id)
    return updated


def delete_fee_structure(store: FeeStore, structure_id: int, deleted_by: Optional[str] = None) -> None:
    def _delete(uow: FeeUnitOfWork):
        structure = uow.get_fee_structure(structure_id, for_update=True)
        referenced = uow.count_ledgers_for_structure(structure.id)
        if referenced > 0:
            raise ConflictError(
                f"Fee structure is referenced by {referenced} student fee record(s) and cannot be deleted",
                field="fee_structure_id",
                entity_id=structure.id,
            )
        log_finance_event(
            uow, structure.institution_id, "FEE_STRUCTURE", structure.id, "DELETED",
            f"Fee structure '{structure.name}' deleted", user_id=deleted_by,
        )
        uow.delete(structure)

    store.with_transaction(_delete, label="delete_fee_structure")
    logger.info("Fee structure %s deleted", structure_id)


def resolve_fee_structure(
    store: FeeStore,
    academic_year_id: str,
    class_id: str,
    section_id: Optional[str] = None,
    institution_id: Optional[str] = None,
) -> FeeStructureOut:
    return store.with_transaction(
        lambda uow: structure_out(uow, _resolve(uow.db, academic_year_id, class_id, section_id, institution_id)),
        label="resolve_fee_structure",
    )
