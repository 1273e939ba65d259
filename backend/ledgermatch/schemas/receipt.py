"""
Email receipt schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal


class ReceiptItem(BaseModel):
    """A product or service line from a receipt."""
    name: str
    quantity: Optional[Decimal] = None
    price: Optional[Decimal] = None


class ReceiptCreate(BaseModel):
    """A receipt already parsed out of an inbound email."""
    sender_email: Optional[str] = None
    raw_subject: Optional[str] = None
    is_receipt: bool = True
    merchant_name: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str = "ILS"
    receipt_date: Optional[date] = None
    items: List[ReceiptItem] = []
    confidence: Optional[int] = Field(None, ge=0, le=100)


class ReceiptResponse(BaseModel):
    id: str
    household_id: str
    merchant_name: Optional[str]
    amount: Optional[Decimal]
    currency: str
    receipt_date: Optional[date]
    items: List[ReceiptItem]
    is_receipt: bool
    matched_transaction_id: Optional[str]
    match_confidence: Optional[int]
    matched_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class ReceiptMatch(BaseModel):
    """Proposed receipt-to-transaction link."""
    receipt_id: str
    transaction_id: str
    receipt_merchant_name: str
    receipt_items: List[ReceiptItem] = []
    confidence: int
    reason: str  # exact_date_match | date_proximity_match


class ReceiptStoreResponse(BaseModel):
    receipt: ReceiptResponse
    match: Optional[ReceiptMatch] = None
    linked: bool = False


class ReceiptLinkRequest(BaseModel):
    transaction_id: str
    confidence: int = Field(100, ge=0, le=100)
