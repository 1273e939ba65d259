"""
Pydantic schemas package.
"""

from ledgermatch.schemas.categorization import (
    CategorizationResult,
    ClassifierInput,
    ClassifierOutput,
)
from ledgermatch.schemas.duplicates import (
    DuplicateCheckRequest,
    DuplicateCheckResult,
    DuplicateGroup,
    DuplicateMatch,
    MergeGroupRequest,
    MergeResult,
    NewTransactionCheck,
)
from ledgermatch.schemas.imports import (
    ParsedTransaction,
    StatementImportRequest,
    StatementImportResponse,
)
from ledgermatch.schemas.receipt import (
    ReceiptCreate,
    ReceiptItem,
    ReceiptLinkRequest,
    ReceiptMatch,
    ReceiptResponse,
    ReceiptStoreResponse,
)
from ledgermatch.schemas.reconciliation import (
    P2PMergeRequest,
    P2PMergeResponse,
    P2PReconciliationResult,
    ReconcileCountResponse,
    ReconciliationMatch,
)
from ledgermatch.schemas.sms import (
    CcSlipData,
    CcSlipMatchResult,
    FlagResponse,
    ParsedSms,
    SmsBatchParseRequest,
    SmsIngestResponse,
    SmsParseRequest,
    SmsTransactionResponse,
)
from ledgermatch.schemas.transaction import (
    TransactionListResponse,
    TransactionResponse,
    TransactionSummary,
    TransactionUpdate,
)

__all__ = [
    "CategorizationResult",
    "ClassifierInput",
    "ClassifierOutput",
    "DuplicateCheckRequest",
    "DuplicateCheckResult",
    "DuplicateGroup",
    "DuplicateMatch",
    "MergeGroupRequest",
    "MergeResult",
    "NewTransactionCheck",
    "ParsedTransaction",
    "StatementImportRequest",
    "StatementImportResponse",
    "ReceiptCreate",
    "ReceiptItem",
    "ReceiptLinkRequest",
    "ReceiptMatch",
    "ReceiptResponse",
    "ReceiptStoreResponse",
    "P2PMergeRequest",
    "P2PMergeResponse",
    "P2PReconciliationResult",
    "ReconcileCountResponse",
    "ReconciliationMatch",
    "CcSlipData",
    "CcSlipMatchResult",
    "FlagResponse",
    "ParsedSms",
    "SmsBatchParseRequest",
    "SmsIngestResponse",
    "SmsParseRequest",
    "SmsTransactionResponse",
    "TransactionListResponse",
    "TransactionResponse",
    "TransactionSummary",
    "TransactionUpdate",
]
