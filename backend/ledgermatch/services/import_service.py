"""
Import service for parsed statement rows.
"""

import logging
from pathlib import Path
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledgermatch.config import settings
from ledgermatch.models.transaction import Transaction, TransactionStatus, TransactionType
from ledgermatch.parsers.base import StatementParser
from ledgermatch.schemas.imports import ParsedTransaction, StatementImportResponse
from ledgermatch.schemas.sms import CcSlipData
from ledgermatch.services.currency_service import convert_to_local
from ledgermatch.services.p2p_reconciliation_service import is_app_source
from ledgermatch.services.receipt_matching_service import apply_receipt_matches, match_transactions_to_receipts
from ledgermatch.services.sms_dedup_service import find_matching_sms_for_cc_slip, merge_cc_slip_with_sms

logger = logging.getLogger(__name__)


def create_transaction(
    db: Session,
    household_id: str,
    row: ParsedTransaction,
    source: str,
    source_file: Optional[str] = None,
    source_row: Optional[int] = None
) -> Transaction:
    """
    Store one parsed row as a pending ledger row.

    Foreign-currency rows are converted to the local currency and keep the
    charge as issued in original_amount / original_currency. An original
    pair repeating the settlement currency is dropped.
    """
    amount = row.amount
    currency = row.currency
    original_amount = row.original_amount
    original_currency = row.original_currency

    if currency != settings.local_currency:
        original_amount, original_currency = amount, currency
        amount = convert_to_local(amount, currency)
        currency = settings.local_currency

    if original_currency == currency or original_amount is None:
        original_amount, original_currency = None, None

    transaction = Transaction(
        household_id=household_id,
        date=row.date,
        amount=amount,
        currency=currency,
        original_amount=original_amount,
        original_currency=original_currency,
        merchant_raw=row.merchant_raw,
        status=TransactionStatus.pending,
        type=row.type,
        p2p_direction=row.p2p_direction,
        source=source,
        source_file=source_file,
        source_row=source_row,
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)
    return transaction


def import_statement_rows(
    db: Session,
    household_id: str,
    rows: List[ParsedTransaction],
    source_file: str,
    source: str = "cc_slip",
    card_ending: Optional[str] = None
) -> StatementImportResponse:
    """
    Import parsed statement rows.

    Card statement expenses first try to confirm an SMS-created row;
    everything else becomes a new pending row. App screenshots never match
    SMS. Afterwards the touched rows are matched against stored receipts.
    A failing row is reported and the rest carry on.
    """
    result = StatementImportResponse()
    touched: List[Transaction] = []
    check_sms = not is_app_source(source)

    for index, row in enumerate(rows, start=1):
        try:
            if check_sms and row.type == TransactionType.expense:
                match = find_matching_sms_for_cc_slip(db, household_id, row.amount, row.date, card_ending)
                if match.matched:
                    transaction = merge_cc_slip_with_sms(
                        db,
                        match.sms_transaction.id,
                        CcSlipData(
                            date=row.date,
                            amount=row.amount,
                            merchant_raw=row.merchant_raw,
                            source_file=source_file,
                            source_row=index,
                        ),
                    )
                    result.merged_with_sms += 1
                    result.transaction_ids.append(transaction.id)
                    touched.append(transaction)
                    continue

            transaction = create_transaction(db, household_id, row, source, source_file, index)
            result.imported += 1
            result.transaction_ids.append(transaction.id)
            touched.append(transaction)

        except (ValueError, SQLAlchemyError) as e:
            db.rollback()
            logger.warning("Row %d of %s failed: %s", index, source_file, e)
            result.errors.append(f"Row {index}: {e}")

    if touched:
        matches = match_transactions_to_receipts(db, household_id, touched)
        result.receipts_matched = apply_receipt_matches(db, matches)

    logger.info(
        "Imported %s: %d new, %d confirmed SMS, %d receipts, %d errors",
        source_file, result.imported, result.merged_with_sms, result.receipts_matched, len(result.errors)
    )
    return result


def import_statement_file(
    db: Session,
    household_id: str,
    parser: StatementParser,
    file_path: Path,
    source: str = "cc_slip",
    card_ending: Optional[str] = None
) -> StatementImportResponse:
    """Parse a statement file and import its rows"""
    if not parser.can_parse(file_path):
        raise ValueError(f"No parser available for file type: {file_path.suffix}")

    rows = list(parser.parse(file_path))
    return import_statement_rows(db, household_id, rows, file_path.name, source, card_ending)
