from fastapi import APIRouter, Depends, Query
from datetime import date
from typing import Optional

from schemas.fees.report_schemas import CollectionSummary, DuesReport
from services import fee_report_service
from services.fee_store import FeeStore, get_fee_store

router = APIRouter(prefix="/api/fees/reports", tags=["Fee Reports"])


@router.get("/dues", response_model=DuesReport)
def dues_report(
    institution_id: str = Query(...),
    academic_year_id: Optional[str] = Query(None),
    academic_unit_id: Optional[str] = Query(None),
    overdue_only: bool = Query(False),
    store: FeeStore = Depends(get_fee_store),
):
    return fee_report_service.dues_report(
        store, institution_id, academic_year_id, academic_unit_id, overdue_only=overdue_only
    )


@router.get("/collection-summary", response_model=CollectionSummary)
def collection_summary(
    institution_id: str = Query(...),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    academic_year_id: Optional[str] = Query(None),
    group_by: str = Query("day"),
    store: FeeStore = Depends(get_fee_store),
):
    return fee_report_service.collection_summary(
        store, institution_id, from_date, to_date, academic_year_id, group_by=group_by
    )
