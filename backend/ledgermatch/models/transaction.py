"""
Transaction database model.
"""

import uuid
import enum
from datetime import datetime
from sqlalchemy import (
    Column, String, Boolean, DateTime, Date, Numeric, Text, Integer, Enum, ForeignKey, Index
)
from sqlalchemy.orm import relationship
from ledgermatch.database import Base


class TransactionStatus(str, enum.Enum):
    """Ledger lifecycle status."""
    provisional = "provisional"  # SMS evidence only
    pending = "pending"          # Financially confirmed, not yet reviewed
    flagged = "flagged"
    skipped = "skipped"
    categorized = "categorized"
    verified = "verified"


class TransactionType(str, enum.Enum):
    """Transaction type enumeration."""
    expense = "expense"
    income = "income"
    transfer = "transfer"


class CategorySource(str, enum.Enum):
    """Who set the category."""
    auto = "auto"
    user_manual = "user_manual"
    rule = "rule"


class P2PDirection(str, enum.Enum):
    """Money flow of a payment-app entry."""
    sent = "sent"
    received = "received"
    withdrawal = "withdrawal"  # App balance moved to the bank account


class ReconciliationStatus(str, enum.Enum):
    """Outcome of payment-app reconciliation."""
    matched = "matched"
    balance_paid = "balance_paid"
    withdrawal_matched = "withdrawal_matched"
    reimbursement = "reimbursement"


class Transaction(Base):
    """Canonical ledger row, scoped to one household."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    household_id = Column(String(36), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)  # Always in `currency`
    currency = Column(String(3), nullable=False, default="ILS")
    original_amount = Column(Numeric(12, 2), nullable=True)  # Foreign charge as issued
    original_currency = Column(String(3), nullable=True)
    merchant_raw = Column(Text, nullable=False)
    merchant_normalized = Column(String(255), nullable=True)
    category = Column(String(100), nullable=True)
    category_source = Column(Enum(CategorySource), nullable=True)
    category_confidence = Column(Integer, nullable=True)
    status = Column(Enum(TransactionStatus), nullable=False, default=TransactionStatus.pending)
    type = Column(Enum(TransactionType), nullable=False, default=TransactionType.expense)
    source = Column(String(100), nullable=False, default="manual")
    notes = Column(Text, nullable=True)
    is_duplicate = Column(Boolean, default=False, nullable=False)
    duplicate_of = Column(String(36), ForeignKey("transactions.id"), nullable=True)
    # Evidence references (no FK: the evidence tables point back here)
    sms_id = Column(String(36), nullable=True, index=True)
    receipt_id = Column(String(36), nullable=True)
    source_file = Column(String(255), nullable=True)
    source_row = Column(Integer, nullable=True)
    cc_slip_linked_at = Column(DateTime, nullable=True)
    # Payment-app reconciliation
    p2p_direction = Column(Enum(P2PDirection), nullable=True)
    reconciliation_status = Column(Enum(ReconciliationStatus), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    canonical = relationship("Transaction", remote_side=[id], backref="duplicates")

    # Indexes for common queries
    __table_args__ = (
        Index("idx_transaction_household_date", "household_id", "date"),
        Index("idx_transaction_household_status", "household_id", "status"),
    )
