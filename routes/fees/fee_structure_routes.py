from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from schemas.fees.fee_structure_schemas import (
    ChargeBreakdownOut,
    ChargePreviewRequest,
    FeeStructureCreate,
    FeeStructureOut,
    FeeStructureUpdate,
)
from services import fee_ledger_service, fee_structure_service
from services.fee_store import FeeStore, get_fee_store

router = APIRouter(prefix="/api/fees/structures", tags=["Fee Structures"])


@router.post("/create", response_model=FeeStructureOut, status_code=status.HTTP_201_CREATED)
def create_fee_structure(payload: FeeStructureCreate, store: FeeStore = Depends(get_fee_store)):
    return fee_structure_service.create_fee_structure(store, payload)


@router.get("/get-all", response_model=List[FeeStructureOut])
def list_fee_structures(
    institution_id: str = Query(...),
    academic_year_id: Optional[str] = Query(None),
    active_only: bool = Query(False),
    store: FeeStore = Depends(get_fee_store),
):
    return fee_structure_service.list_fee_structures(store, institution_id, academic_year_id, active_only)


# Most specific active structure for a class/section
@router.get("/resolve", response_model=FeeStructureOut)
def resolve_fee_structure(
    academic_year_id: str = Query(...),
    class_id: str = Query(...),
    section_id: Optional[str] = Query(None),
    institution_id: Optional[str] = Query(None),
    store: FeeStore = Depends(get_fee_store),
):
    return fee_structure_service.resolve_fee_structure(store, academic_year_id, class_id, section_id, institution_id)


@router.get("/get-by/{structure_id}", response_model=FeeStructureOut)
def get_fee_structure(structure_id: int, store: FeeStore = Depends(get_fee_store)):
    return fee_structure_service.get_fee_structure(store, structure_id)


@router.put("/put-by/{structure_id}", response_model=FeeStructureOut)
def update_fee_structure(structure_id: int, payload: FeeStructureUpdate, store: FeeStore = Depends(get_fee_store)):
    return fee_structure_service.update_fee_structure(store, structure_id, payload)


@router.delete("/delete-by/{structure_id}", response_model=dict)
def delete_fee_structure(
    structure_id: int,
    deleted_by: Optional[str] = Query(None),
    store: FeeStore = Depends(get_fee_store),
):
    fee_structure_service.delete_fee_structure(store, structure_id, deleted_by)
    return {"detail": "Fee structure deleted"}


@router.post("/preview/{structure_id}", response_model=ChargeBreakdownOut)
def preview_charges(structure_id: int, payload: ChargePreviewRequest, store: FeeStore = Depends(get_fee_store)):
    return fee_ledger_service.preview_charges(
        store, structure_id, payload.overrides, payload.discounts, payload.scholarships
    )
