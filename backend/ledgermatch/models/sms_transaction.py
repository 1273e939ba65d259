"""
SMS transaction database model.
"""

import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Date, Numeric, Text, Enum, ForeignKey, Index
from sqlalchemy.orm import relationship
from ledgermatch.database import Base


class CardProvider(str, enum.Enum):
    """Credit card issuers whose SMS formats we recognise."""
    isracard = "isracard"
    cal = "cal"
    max = "max"
    leumi = "leumi"
    unknown = "unknown"


class SmsTransaction(Base):
    """One accepted card-alert SMS and the provisional transaction it created."""

    __tablename__ = "sms_transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    household_id = Column(String(36), nullable=False, index=True)
    card_ending = Column(String(4), nullable=False)
    merchant_name = Column(String(255), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="ILS")
    transaction_date = Column(Date, nullable=False)
    provider = Column(Enum(CardProvider), nullable=False, default=CardProvider.unknown)
    raw_message = Column(Text, nullable=False)
    transaction_id = Column(String(36), ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True)
    cc_matched = Column(Boolean, default=False, nullable=False)
    cc_matched_at = Column(DateTime, nullable=True)
    received_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    transaction = relationship("Transaction")

    __table_args__ = (
        Index("idx_sms_pending", "household_id", "cc_matched"),
        Index("idx_sms_matching", "household_id", "transaction_date", "amount"),
    )
