"""Pick the fee structure that applies to a student.

Specificity order: a structure scoped to the student's section, then one scoped
to the class, then an institution-wide structure (no academic unit). Within one
level the most recently created structure wins.
"""
import logging
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from models.fees.fee_structure_models import FeeStructure
from services.fee_errors import NotFoundError

logger = logging.getLogger(__name__)


def _specificity(structure, class_id: str, section_id: Optional[str]) -> int:
    if section_id is not None and structure.academic_unit_id == section_id:
        return 2
    if structure.academic_unit_id == class_id:
        return 1
    if structure.academic_unit_id is None:
        return 0
    return -1


def pick_fee_structure(candidates: Iterable, class_id: str, section_id: Optional[str] = None):
    """Return the best candidate, or None when nothing applies."""
    best = None
    best_key = None
    for structure in candidates:
        level = _specificity(structure, class_id, section_id)
        if level < 0:
            continue
        key = (level, structure.created_at, structure.id)
        if best_key is None or key > best_key:
            best, best_key = structure, key
    return best


def resolve_fee_structure(
    db: Session,
    academic_year_id: str,
    class_id: str,
    section_id: Optional[str] = None,
    institution_id: Optional[str] = None,
) -> FeeStructure:
    units = [class_id] + ([section_id] if section_id else [])
    query = db.query(FeeStructure).filter(
        FeeStructure.academic_year_id == academic_year_id,
        FeeStructure.is_active.is_(True),
        or_(FeeStructure.academic_unit_id.in_(units), FeeStructure.academic_unit_id.is_(None)),
    )
    if institution_id is not None:
        query = query.filter(FeeStructure.institution_id == institution_id)

    structure = pick_fee_structure(query.all(), class_id, section_id)
    if structure is None:
        # never fall back to a zero-fee ledger
        raise NotFoundError(
            f"No active fee structure for academic year {academic_year_id}, class {class_id}"
            + (f", section {section_id}" if section_id else ""),
            field="academic_year_id",
            entity_id=academic_year_id,
        )
    logger.debug("Resolved fee structure %s for class=%s section=%s", structure.id, class_id, section_id)
    return structure
