"""
Category classification schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from decimal import Decimal


class ClassifierInput(BaseModel):
    id: str
    merchant_raw: str
    amount: Decimal
    currency: str


class ClassifierOutput(BaseModel):
    """Per-id answer from the category classifier."""
    id: str
    category: Optional[str] = None
    merchant_normalized: Optional[str] = None
    confidence: int = Field(0, ge=0, le=100)
    suggestions: List[str] = []


class CategorizationResult(BaseModel):
    count: int
    details: Optional[str] = None
    error: Optional[str] = None
