from fastapi import APIRouter, Depends

from schemas.fees.finance_settings_schemas import FinanceSettingsOut, FinanceSettingsUpdate
from services import finance_settings_service
from services.fee_store import FeeStore, get_fee_store

router = APIRouter(prefix="/api/fees/settings", tags=["Finance Settings"])


@router.get("/get-by/{institution_id}", response_model=FinanceSettingsOut)
def get_finance_settings(institution_id: str, store: FeeStore = Depends(get_fee_store)):
    return finance_settings_service.get_finance_settings(store, institution_id)


@router.put("/put-by/{institution_id}", response_model=FinanceSettingsOut)
def update_finance_settings(institution_id: str, payload: FinanceSettingsUpdate, store: FeeStore = Depends(get_fee_store)):
    return finance_settings_service.update_finance_settings(
        store, institution_id, payload.receipt_prefix, payload.updated_by
    )
