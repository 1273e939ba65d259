"""
Transaction schemas.
"""

from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime
from decimal import Decimal

from ledgermatch.models.transaction import (
    CategorySource,
    P2PDirection,
    ReconciliationStatus,
    TransactionStatus,
    TransactionType,
)


class TransactionSummary(BaseModel):
    """Compact view used inside match and duplicate payloads."""
    id: str
    date: date
    amount: Decimal
    currency: str
    merchant_raw: str
    merchant_normalized: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    type: TransactionType
    status: TransactionStatus
    source: str
    p2p_direction: Optional[P2PDirection] = None
    reconciliation_status: Optional[ReconciliationStatus] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TransactionUpdate(BaseModel):
    merchant_normalized: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[TransactionStatus] = None
    type: Optional[TransactionType] = None


class TransactionResponse(BaseModel):
    id: str
    household_id: str
    date: date
    amount: Decimal
    currency: str
    original_amount: Optional[Decimal]
    original_currency: Optional[str]
    merchant_raw: str
    merchant_normalized: Optional[str]
    category: Optional[str]
    category_source: Optional[CategorySource]
    category_confidence: Optional[int]
    status: TransactionStatus
    type: TransactionType
    source: str
    notes: Optional[str]
    is_duplicate: bool
    duplicate_of: Optional[str]
    sms_id: Optional[str]
    receipt_id: Optional[str]
    source_file: Optional[str]
    source_row: Optional[int]
    p2p_direction: Optional[P2PDirection] = None
    reconciliation_status: Optional[ReconciliationStatus] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TransactionListResponse(BaseModel):
    items: list[TransactionResponse]
    total: int
    page: int
    pages: int
