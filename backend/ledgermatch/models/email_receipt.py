"""
Email receipt database model.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Date, Numeric, Text, Integer, JSON, ForeignKey, Index
from sqlalchemy.orm import relationship
from ledgermatch.database import Base


class EmailReceipt(Base):
    """Receipt forwarded by email, matched to at most one transaction."""

    __tablename__ = "email_receipts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    household_id = Column(String(36), nullable=False, index=True)
    sender_email = Column(String(255), nullable=True)
    raw_subject = Column(Text, nullable=True)
    merchant_name = Column(String(255), nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="ILS")
    receipt_date = Column(Date, nullable=True)
    items = Column(JSON, nullable=False, default=list)  # [{name, quantity?, price?}]
    is_receipt = Column(Boolean, default=True, nullable=False)
    parse_confidence = Column(Integer, nullable=True)
    matched_transaction_id = Column(String(36), ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True)
    match_confidence = Column(Integer, nullable=True)
    matched_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    matched_transaction = relationship("Transaction")

    __table_args__ = (
        Index("idx_receipt_household_date", "household_id", "receipt_date"),
    )
