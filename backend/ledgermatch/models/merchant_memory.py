"""
Merchant memory database model.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, UniqueConstraint
from ledgermatch.database import Base


class MerchantMemory(Base):
    """Household-learned merchant to category mapping, from user corrections."""

    __tablename__ = "merchant_memory"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    household_id = Column(String(36), nullable=False, index=True)
    merchant_normalized = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("household_id", "merchant_normalized", name="uq_memory_household_merchant"),
    )
