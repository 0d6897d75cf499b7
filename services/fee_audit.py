from decimal import Decimal
from typing import Any, Optional

from models.fees.audit_models import FinanceAuditLog


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if hasattr(value, "value") and hasattr(value, "name"):  # enum members
        return value.value
    return value


def log_finance_event(
    uow,
    institution_id: str,
    entity_type: str,
    entity_id,
    action: str,
    description: str,
    user_id: Optional[str] = None,
    new_data: Optional[dict] = None,
) -> FinanceAuditLog:
    """Write one audit row inside the caller's transaction."""
    entry = FinanceAuditLog(
        institution_id=institution_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        description=description,
        user_id=user_id,
        new_data=_plain(new_data) if new_data is not None else None,
    )
    uow.db.add(entry)
    return entry
