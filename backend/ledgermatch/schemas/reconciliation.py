"""
P2P / credit card statement reconciliation schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List

from ledgermatch.schemas.transaction import TransactionSummary


class ReconciliationMatch(BaseModel):
    """An app-side P2P transaction and the statement rows that could be the same transfer."""
    app_transaction: TransactionSummary
    cc_candidates: List[TransactionSummary]
    confidence: int
    match_type: str  # exact | ambiguous
    reason: str


class WithdrawalMatch(BaseModel):
    """An app balance withdrawal and the bank deposits that could be the same money."""
    app_withdrawal: TransactionSummary
    bank_candidates: List[TransactionSummary]
    confidence: int
    match_type: str  # exact | fuzzy | ambiguous
    reason: str


class P2PReconciliationResult(BaseModel):
    matches: List[ReconciliationMatch]    # Exactly one candidate, proposed
    ambiguous: List[ReconciliationMatch]  # Several candidates, manual review
    withdrawals: List[WithdrawalMatch] = []
    balance_paid: List[TransactionSummary] = []    # Sent with no statement counterpart
    reimbursements: List[TransactionSummary] = []  # Money received through the app
    app_count: int
    cc_count: int


class P2PMergeRequest(BaseModel):
    app_transaction_id: str
    cc_transaction_id: str
    category: Optional[str] = None


class P2PMergeResponse(BaseModel):
    success: bool
    cc_transaction_id: str
    app_transaction_id: str


class WithdrawalMergeRequest(BaseModel):
    withdrawal_id: str
    bank_deposit_id: str


class BalancePaidRequest(BaseModel):
    category: Optional[str] = None
    notes: Optional[str] = None


class ReimbursementRequest(BaseModel):
    category: str = Field(..., min_length=1)
    notes: Optional[str] = None


class ReconcileCountResponse(BaseModel):
    count: int


class PendingReconciliationCount(BaseModel):
    matches: int
    withdrawals: int
    balance_paid: int
    reimbursements: int
    total: int
