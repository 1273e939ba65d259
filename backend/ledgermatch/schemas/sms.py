"""
SMS parsing and deduplication schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal

from ledgermatch.models.sms_transaction import CardProvider


class ParsedSms(BaseModel):
    """Structured purchase candidate read from one card-alert SMS."""
    is_valid: bool
    card_ending: Optional[str] = None
    merchant_name: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str
    transaction_date: Optional[date] = None
    provider: CardProvider = CardProvider.unknown
    raw_message: str
    confidence: int = Field(0, ge=0, le=100)


class SmsParseRequest(BaseModel):
    message: str = Field(..., min_length=1)
    skip_trigger_check: bool = False


class SmsBatchParseRequest(BaseModel):
    messages: List[str]
    skip_trigger_check: bool = False


class SmsIngestResponse(BaseModel):
    status: str  # created | invalid
    sms_id: Optional[str] = None
    transaction_id: Optional[str] = None
    parsed: ParsedSms


class SmsTransactionResponse(BaseModel):
    id: str
    household_id: str
    card_ending: str
    merchant_name: Optional[str]
    amount: Decimal
    currency: str
    transaction_date: date
    provider: CardProvider
    raw_message: str
    transaction_id: Optional[str]
    cc_matched: bool
    cc_matched_at: Optional[datetime]
    received_at: datetime

    model_config = {"from_attributes": True}


class CcSlipData(BaseModel):
    """Authoritative statement row confirming an SMS purchase."""
    date: date
    amount: Decimal
    merchant_raw: str = ""
    source_file: Optional[str] = None
    source_row: Optional[int] = None


class CcSlipMatchResult(BaseModel):
    matched: bool
    sms_transaction: Optional[SmsTransactionResponse] = None
    confidence: int = 0


class FlagResponse(BaseModel):
    count: int
    details: str
