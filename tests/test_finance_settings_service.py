import pytest

from conftest import BEFORE_DUE, INSTITUTION, make_ledger, make_structure
from models.fees.audit_models import FinanceAuditLog
from services import finance_settings_service, payment_service
from services.fee_errors import ValidationError


def test_settings_created_with_defaults(store):
    settings = finance_settings_service.get_finance_settings(store, INSTITUTION)
    assert settings.institution_id == INSTITUTION
    assert settings.receipt_prefix == "RCP"
    assert settings.current_receipt_number == 0


def test_prefix_change_applies_to_new_receipts_only(store):
    ledger = make_ledger(store, make_structure(store))
    first = payment_service.record_payment(store, ledger.id, "100", "CASH", now=BEFORE_DUE)
    assert first.payment.receipt_number == "RCP000001"

    updated = finance_settings_service.update_finance_settings(store, INSTITUTION, " SCH-", updated_by="bursar")
    assert updated.receipt_prefix == "SCH-"
    assert updated.current_receipt_number == 1

    second = payment_service.record_payment(store, ledger.id, "100", "CASH", now=BEFORE_DUE)
    assert second.payment.receipt_number == "SCH-000002"
    assert payment_service.get_receipt(store, INSTITUTION, "RCP000001").amount_paid == 100


def test_prefix_update_is_audited(store, session_factory):
    finance_settings_service.update_finance_settings(store, INSTITUTION, "INV", updated_by="bursar")
    db = session_factory()
    try:
        rows = db.query(FinanceAuditLog).filter_by(entity_type="FINANCE_SETTINGS").all()
    finally:
        db.close()
    assert [(row.action, row.user_id) for row in rows] == [("UPDATED", "bursar")]
    assert rows[0].new_data == {"previous": "RCP", "receipt_prefix": "INV"}


@pytest.mark.parametrize("prefix", ["", "   ", "RC P", "X" * 21])
def test_bad_prefix_rejected(store, prefix):
    with pytest.raises(ValidationError) as exc:
        finance_settings_service.update_finance_settings(store, INSTITUTION, prefix)
    assert exc.value.field == "receipt_prefix"
    assert finance_settings_service.get_finance_settings(store, INSTITUTION).receipt_prefix == "RCP"
