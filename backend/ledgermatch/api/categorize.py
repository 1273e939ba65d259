"""
Categorization endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ledgermatch.dependencies import get_db, get_household_id
from ledgermatch.schemas.categorization import CategorizationResult
from ledgermatch.services import categorization_service

router = APIRouter(prefix="/categorize", tags=["categorize"])


@router.post("", response_model=CategorizationResult)
async def categorize_pending(
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Categorize pending transactions from merchant memory, then the AI classifier"""
    return await categorization_service.categorize_pending_transactions(db, household_id)


@router.post("/keywords", response_model=CategorizationResult)
def categorize_by_keywords(
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    count = categorization_service.categorize_by_keywords(db, household_id)
    return CategorizationResult(count=count, details=f"Categorized {count} transactions by keyword")
