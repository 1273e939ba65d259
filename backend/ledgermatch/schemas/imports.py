"""
Statement import schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date
from decimal import Decimal

from ledgermatch.models.transaction import P2PDirection, TransactionType


class ParsedTransaction(BaseModel):
    """One line item produced by an external statement parser."""
    date: date
    merchant_raw: str
    amount: Decimal
    currency: str = "ILS"
    type: TransactionType = TransactionType.expense
    original_amount: Optional[Decimal] = None
    original_currency: Optional[str] = None
    p2p_direction: Optional[P2PDirection] = None  # Payment-app rows only


class StatementImportRequest(BaseModel):
    source_file: str = Field(..., min_length=1)
    source: str = "cc_slip"
    card_ending: Optional[str] = Field(None, pattern=r"^\d{4}$")
    rows: List[ParsedTransaction]


class StatementImportResponse(BaseModel):
    imported: int = 0
    merged_with_sms: int = 0
    receipts_matched: int = 0
    errors: List[str] = []
    transaction_ids: List[str] = []
