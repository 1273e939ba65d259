"""
Statement import endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ledgermatch.dependencies import get_db, get_household_id
from ledgermatch.schemas.imports import StatementImportRequest, StatementImportResponse
from ledgermatch.services import import_service

router = APIRouter(prefix="/imports", tags=["imports"])


@router.post("/statement", response_model=StatementImportResponse)
def import_statement(
    request: StatementImportRequest,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """
    Import rows already parsed from a statement file.
    Per-row failures are reported in errors; the rest of the file still imports.
    """
    return import_service.import_statement_rows(
        db,
        household_id,
        request.rows,
        request.source_file,
        source=request.source,
        card_ending=request.card_ending
    )
