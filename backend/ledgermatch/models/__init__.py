"""
Database models package.
"""

from ledgermatch.models.category import Category
from ledgermatch.models.email_receipt import EmailReceipt
from ledgermatch.models.merchant_memory import MerchantMemory
from ledgermatch.models.sms_transaction import CardProvider, SmsTransaction
from ledgermatch.models.transaction import (
    CategorySource,
    P2PDirection,
    ReconciliationStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "Category",
    "CardProvider",
    "CategorySource",
    "EmailReceipt",
    "MerchantMemory",
    "P2PDirection",
    "ReconciliationStatus",
    "SmsTransaction",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
]
