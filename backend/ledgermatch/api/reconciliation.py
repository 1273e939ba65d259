"""
P2P / credit card statement reconciliation endpoints.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ledgermatch.dependencies import get_db, get_household_id
from ledgermatch.schemas.reconciliation import (
    BalancePaidRequest,
    P2PMergeRequest,
    P2PMergeResponse,
    P2PReconciliationResult,
    PendingReconciliationCount,
    ReconcileCountResponse,
    ReimbursementRequest,
    WithdrawalMergeRequest,
)
from ledgermatch.schemas.transaction import TransactionResponse
from ledgermatch.services import p2p_reconciliation_service

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


@router.get("/p2p", response_model=P2PReconciliationResult)
def find_p2p_matches(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    return p2p_reconciliation_service.find_p2p_matches(db, household_id, start_date, end_date)


@router.get("/p2p/monthly", response_model=P2PReconciliationResult)
def find_monthly_p2p_matches(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    return p2p_reconciliation_service.find_monthly_p2p_matches(db, household_id, year, month)


@router.get("/p2p/count", response_model=ReconcileCountResponse)
def count_p2p_matches(
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Number of app transactions with a proposed statement match"""
    return ReconcileCountResponse(
        count=p2p_reconciliation_service.reconcile_transactions(db, household_id)
    )


@router.post("/p2p/merge", response_model=P2PMergeResponse)
def merge_p2p(
    request: P2PMergeRequest,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Confirm a match: fold the app transaction into the statement row"""
    try:
        cc = p2p_reconciliation_service.merge_p2p_transactions(
            db,
            household_id,
            request.app_transaction_id,
            request.cc_transaction_id,
            request.category
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return P2PMergeResponse(
        success=True,
        cc_transaction_id=cc.id,
        app_transaction_id=request.app_transaction_id
    )


@router.get("/p2p/pending-count", response_model=PendingReconciliationCount)
def count_pending_reconciliation(
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Entries awaiting a decision in each reconciliation queue"""
    return p2p_reconciliation_service.get_pending_reconciliation_count(db, household_id)


@router.post("/p2p/withdrawals/merge", response_model=TransactionResponse)
def merge_withdrawal(
    request: WithdrawalMergeRequest,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Confirm an app withdrawal and its bank deposit as one internal transfer"""
    try:
        return p2p_reconciliation_service.merge_withdrawal(
            db, household_id, request.withdrawal_id, request.bank_deposit_id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/p2p/{transaction_id}/balance-paid", response_model=TransactionResponse)
def mark_balance_paid(
    transaction_id: str,
    request: BalancePaidRequest,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Confirm an app payment funded from the app balance"""
    try:
        return p2p_reconciliation_service.mark_as_balance_paid(
            db, household_id, transaction_id, request.category, request.notes
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/p2p/{transaction_id}/reimbursement", response_model=TransactionResponse)
def apply_reimbursement(
    transaction_id: str,
    request: ReimbursementRequest,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Book money received through the app against an expense category"""
    try:
        return p2p_reconciliation_service.apply_reimbursement(
            db, household_id, transaction_id, request.category, request.notes
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
