"""Per-institution finance settings: the receipt prefix and counter."""
import logging
from typing import Optional

from schemas.fees.finance_settings_schemas import FinanceSettingsOut
from services.fee_audit import log_finance_event
from services.fee_errors import ValidationError
from services.fee_store import FeeStore, FeeUnitOfWork
from services.fee_validation import require_text

logger = logging.getLogger(__name__)

MAX_PREFIX_LENGTH = 20


def validate_receipt_prefix(value: Optional[str]) -> str:
    prefix = require_text(value, "receipt_prefix", "Receipt prefix")
    if len(prefix) > MAX_PREFIX_LENGTH:
        raise ValidationError(
            f"Receipt prefix cannot be longer than {MAX_PREFIX_LENGTH} characters", field="receipt_prefix"
        )
    if any(ch.isspace() for ch in prefix):
        raise ValidationError("Receipt prefix cannot contain spaces", field="receipt_prefix")
    return prefix


def get_finance_settings(store: FeeStore, institution_id: str) -> FinanceSettingsOut:
    institution_id = require_text(institution_id, "institution_id", "Institution")
    return store.with_transaction(
        lambda uow: FinanceSettingsOut.model_validate(uow.get_finance_settings(institution_id)),
        label="get_finance_settings",
    )


def update_finance_settings(
    store: FeeStore,
    institution_id: str,
    receipt_prefix: str,
    updated_by: Optional[str] = None,
) -> FinanceSettingsOut:
    """Change the prefix used for receipts issued from now on.

    Issued receipt numbers keep their old prefix and the counter carries on,
    so a sequence number is never handed out twice.
    """
    institution_id = require_text(institution_id, "institution_id", "Institution")
    prefix = validate_receipt_prefix(receipt_prefix)

    def _update(uow: FeeUnitOfWork):
        settings = uow.get_finance_settings(institution_id, for_update=True)
        previous = settings.receipt_prefix
        settings.receipt_prefix = prefix
        uow.add(settings)
        log_finance_event(
            uow, institution_id, "FINANCE_SETTINGS", settings.id, "UPDATED",
            f"Receipt prefix changed from '{previous}' to '{prefix}'",
            user_id=updated_by,
            new_data={"previous": previous, "receipt_prefix": prefix},
        )
        return FinanceSettingsOut.model_validate(settings)

    updated = store.with_transaction(_update, label="update_finance_settings")
    logger.info("Receipt prefix for %s set to %s", institution_id, updated.receipt_prefix)
    return updated
