"""
Ledger duplicate schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date
from decimal import Decimal

from ledgermatch.models.transaction import TransactionType
from ledgermatch.schemas.transaction import TransactionSummary


class DuplicateGroup(BaseModel):
    """Two or more ledger rows believed to describe one event. First member is the merge primary."""
    key: str
    transactions: List[TransactionSummary]


class MergeGroupRequest(BaseModel):
    primary_id: str
    duplicate_ids: List[str] = Field(..., min_length=1)
    final_category: Optional[str] = None
    final_type: Optional[TransactionType] = None
    notes: Optional[str] = None


class MergeResult(BaseModel):
    success: bool
    primary_id: str
    merged_count: int


class NewTransactionCheck(BaseModel):
    """A row about to be saved, checked against the ledger first."""
    date: date
    merchant_raw: str
    amount: Decimal


class DuplicateMatch(BaseModel):
    new_transaction: NewTransactionCheck
    existing_transaction: TransactionSummary
    confidence: int
    reason: str


class DuplicateCheckRequest(BaseModel):
    transactions: List[NewTransactionCheck]


class DuplicateCheckResult(BaseModel):
    has_duplicates: bool
    matches: List[DuplicateMatch]
    clean_transactions: int
