"""
Email receipt endpoints.
"""

from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ledgermatch.dependencies import get_db, get_household_id
from ledgermatch.models.email_receipt import EmailReceipt
from ledgermatch.models.transaction import Transaction
from ledgermatch.schemas.receipt import (
    ReceiptCreate,
    ReceiptLinkRequest,
    ReceiptMatch,
    ReceiptResponse,
    ReceiptStoreResponse,
)
from ledgermatch.services import receipt_matching_service

router = APIRouter(prefix="/receipts", tags=["receipts"])


def _get_receipt(db: Session, household_id: str, receipt_id: str) -> EmailReceipt:
    receipt = db.query(EmailReceipt).filter(
        EmailReceipt.id == receipt_id,
        EmailReceipt.household_id == household_id
    ).first()
    if not receipt:
        raise HTTPException(status_code=404, detail="Receipt not found")
    return receipt


@router.post("", response_model=ReceiptStoreResponse, status_code=201)
def store_receipt(
    data: ReceiptCreate,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Store a parsed receipt and link it to a transaction when one matches"""
    receipt, match, linked = receipt_matching_service.store_receipt(db, household_id, data)
    return ReceiptStoreResponse(
        receipt=ReceiptResponse.model_validate(receipt),
        match=match,
        linked=linked
    )


@router.get("/unmatched", response_model=List[ReceiptResponse])
def list_unmatched_receipts(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Receipts still waiting for a transaction (default: last 90 days)"""
    end_date = end_date or date.today()
    start_date = start_date or end_date - timedelta(days=90)
    receipts = receipt_matching_service.get_unmatched_receipts(db, household_id, start_date, end_date)
    return [ReceiptResponse.model_validate(r) for r in receipts]


@router.get("/{receipt_id}", response_model=ReceiptResponse)
def get_receipt(
    receipt_id: str,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    return ReceiptResponse.model_validate(_get_receipt(db, household_id, receipt_id))


@router.get("/{receipt_id}/match", response_model=Optional[ReceiptMatch])
def find_receipt_match(
    receipt_id: str,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Best transaction for a receipt, without linking"""
    receipt = _get_receipt(db, household_id, receipt_id)
    return receipt_matching_service.match_receipt_to_transaction(db, receipt.id)


@router.post("/{receipt_id}/link")
def link_receipt(
    receipt_id: str,
    request: ReceiptLinkRequest,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Link a receipt to a transaction chosen by the user"""
    receipt = _get_receipt(db, household_id, receipt_id)
    transaction = db.query(Transaction).filter(
        Transaction.id == request.transaction_id,
        Transaction.household_id == household_id
    ).first()
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")

    try:
        linked = receipt_matching_service.link_receipt_to_transaction(
            db, receipt.id, transaction.id, request.confidence
        )
    except receipt_matching_service.ReceiptLinkConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not linked:
        raise HTTPException(status_code=500, detail="Failed to link receipt")
    return {"linked": True, "receipt_id": receipt_id, "transaction_id": request.transaction_id}
