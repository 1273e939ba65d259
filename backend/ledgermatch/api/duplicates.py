"""
Ledger duplicate endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ledgermatch.dependencies import get_db, get_household_id
from ledgermatch.schemas.duplicates import (
    DuplicateCheckRequest,
    DuplicateCheckResult,
    DuplicateGroup,
    MergeGroupRequest,
    MergeResult,
)
from ledgermatch.services import duplicate_service

router = APIRouter(prefix="/duplicates", tags=["duplicates"])


@router.get("/groups", response_model=List[DuplicateGroup])
def get_duplicate_groups(
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Groups of ledger rows that look like the same event"""
    return duplicate_service.get_duplicate_groups(db, household_id)


@router.post("/merge", response_model=MergeResult)
def merge_group(
    request: MergeGroupRequest,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Merge a confirmed group into its primary row"""
    try:
        return duplicate_service.merge_transaction_group(
            db,
            household_id,
            request.primary_id,
            request.duplicate_ids,
            final_category=request.final_category,
            final_type=request.final_type,
            notes=request.notes
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/check", response_model=DuplicateCheckResult)
def check_duplicates(
    request: DuplicateCheckRequest,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Check rows about to be saved against the ledger"""
    return duplicate_service.check_for_duplicates(db, household_id, request.transactions)
