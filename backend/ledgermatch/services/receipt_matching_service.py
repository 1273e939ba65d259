"""
Receipt to transaction matching.

Two entry points share the amount matcher: a batch pass when new
transactions arrive, and a single-receipt pass when a new receipt arrives.
Batch allocation is greedy in input order; a receipt taken by one
transaction leaves the pool for the rest of the pass.
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledgermatch.models.email_receipt import EmailReceipt
from ledgermatch.models.transaction import Transaction
from ledgermatch.schemas.receipt import ReceiptCreate, ReceiptItem, ReceiptMatch
from ledgermatch.services.currency_service import amounts_match

logger = logging.getLogger(__name__)

MATCH_WINDOW_DAYS = 2
BATCH_QUERY_BUFFER_DAYS = 3


class ReceiptLinkConflictError(ValueError):
    """The receipt or the transaction is already linked elsewhere."""


def _receipt_items(receipt: EmailReceipt) -> List[ReceiptItem]:
    return [ReceiptItem(**item) for item in (receipt.items or [])]


def get_unmatched_receipts(
    db: Session,
    household_id: str,
    start_date: date,
    end_date: date
) -> List[EmailReceipt]:
    """Unmatched purchase receipts dated within [start_date, end_date]."""
    return db.query(EmailReceipt).filter(
        EmailReceipt.household_id == household_id,
        EmailReceipt.matched_transaction_id.is_(None),
        EmailReceipt.is_receipt == True,
        EmailReceipt.receipt_date >= start_date,
        EmailReceipt.receipt_date <= end_date,
    ).order_by(EmailReceipt.receipt_date, EmailReceipt.created_at).all()


def match_transactions_to_receipts(
    db: Session,
    household_id: str,
    transactions: Sequence[Transaction]
) -> List[ReceiptMatch]:
    """
    Find a stored receipt for each newly ingested transaction.

    Candidates must match on amount and lie within two days; the closest
    date wins (score 100 - 10 per day). Order of ``transactions`` decides
    who gets a contested receipt.
    """
    transactions = [t for t in transactions if not t.receipt_id and not t.is_duplicate]
    if not transactions:
        return []

    dates = [t.date for t in transactions]
    start_date = min(dates) - timedelta(days=BATCH_QUERY_BUFFER_DAYS)
    end_date = max(dates) + timedelta(days=BATCH_QUERY_BUFFER_DAYS)

    pool = [
        r for r in get_unmatched_receipts(db, household_id, start_date, end_date)
        if r.amount is not None and r.receipt_date is not None
    ]
    if not pool:
        logger.debug("No unmatched receipts between %s and %s", start_date, end_date)
        return []

    logger.debug("Checking %d unmatched receipts against %d transactions", len(pool), len(transactions))

    matches: List[ReceiptMatch] = []
    for tx in transactions:
        best: Optional[EmailReceipt] = None
        best_score = -1

        for receipt in pool:
            days_diff = abs((tx.date - receipt.receipt_date).days)
            if days_diff > MATCH_WINDOW_DAYS:
                continue

            result = amounts_match(
                receipt.amount,
                receipt.currency,
                tx.amount,
                tx.currency,
                tx.original_amount,
                tx.original_currency,
            )
            if not result.matches:
                continue

            score = 100 - days_diff * 10
            if score > best_score:
                best_score = score
                best = receipt

        if best is None:
            continue

        matches.append(ReceiptMatch(
            receipt_id=best.id,
            transaction_id=tx.id,
            receipt_merchant_name=best.merchant_name or "",
            receipt_items=_receipt_items(best),
            confidence=best_score,
            reason="exact_date_match" if best_score >= 95 else "date_proximity_match",
        ))
        pool.remove(best)

    logger.info("Matched %d of %d transactions to receipts", len(matches), len(transactions))
    return matches


def match_receipt_to_transaction(db: Session, receipt_id: str) -> Optional[ReceiptMatch]:
    """
    Match one newly stored receipt against unlinked ledger rows.

    An exact foreign-currency match wins outright; otherwise same-currency
    candidates beat FX-band estimates, and the closest date wins within each
    class (confidence 100 - 5 per day).
    """
    receipt = db.query(EmailReceipt).filter(EmailReceipt.id == receipt_id).first()
    if not receipt:
        raise ValueError(f"Receipt {receipt_id} not found")

    if receipt.amount is None or receipt.receipt_date is None:
        logger.debug("Receipt %s missing amount or date, skipping", receipt_id)
        return None

    start_date = receipt.receipt_date - timedelta(days=MATCH_WINDOW_DAYS)
    end_date = receipt.receipt_date + timedelta(days=MATCH_WINDOW_DAYS)

    transactions = db.query(Transaction).filter(
        Transaction.household_id == receipt.household_id,
        Transaction.receipt_id.is_(None),
        Transaction.is_duplicate == False,
        Transaction.date >= start_date,
        Transaction.date <= end_date,
    ).order_by(Transaction.date, Transaction.created_at).all()

    exact_fx: Optional[Transaction] = None
    same_currency: List[Transaction] = []
    cross_currency: List[Transaction] = []

    for tx in transactions:
        result = amounts_match(
            receipt.amount,
            receipt.currency,
            tx.amount,
            tx.currency,
            tx.original_amount,
            tx.original_currency,
        )
        if not result.matches:
            continue
        if result.is_exact_fx_match:
            exact_fx = tx
            break
        if result.is_cross_currency:
            cross_currency.append(tx)
        else:
            same_currency.append(tx)

    def closest(candidates: List[Transaction]) -> Optional[Transaction]:
        if not candidates:
            return None
        return min(candidates, key=lambda t: abs((t.date - receipt.receipt_date).days))

    best = exact_fx or closest(same_currency) or closest(cross_currency)
    if best is None:
        logger.debug("No amount match for receipt %s", receipt_id)
        return None

    days_diff = abs((best.date - receipt.receipt_date).days)
    match = ReceiptMatch(
        receipt_id=receipt.id,
        transaction_id=best.id,
        receipt_merchant_name=receipt.merchant_name or "",
        receipt_items=_receipt_items(receipt),
        confidence=100 - days_diff * 5,
        reason="exact_date_match" if days_diff == 0 else "date_proximity_match",
    )
    logger.debug("Receipt %s matched transaction %s (%d)", receipt_id, best.id, match.confidence)
    return match


def link_receipt_to_transaction(
    db: Session,
    receipt_id: str,
    transaction_id: str,
    confidence: int
) -> bool:
    """
    Write both sides of a receipt link.

    The receipt is updated first, then the transaction. Each step is an
    idempotent overwrite, so a link that failed half way is repaired by
    calling this again with the same arguments. Failures are logged and
    reported, not retried.

    Raises:
        ReceiptLinkConflictError: the receipt already points at another
            transaction, or the transaction already holds another receipt
    """
    receipt = db.query(EmailReceipt).filter(EmailReceipt.id == receipt_id).first()
    if not receipt:
        logger.error("Link failed: receipt %s not found", receipt_id)
        return False
    transaction = db.query(Transaction).filter(Transaction.id == transaction_id).first()
    if not transaction:
        logger.error("Link failed: transaction %s not found", transaction_id)
        return False

    if receipt.matched_transaction_id and receipt.matched_transaction_id != transaction_id:
        raise ReceiptLinkConflictError(
            f"Receipt {receipt_id} is already linked to transaction {receipt.matched_transaction_id}"
        )
    if transaction.receipt_id and transaction.receipt_id != receipt_id:
        raise ReceiptLinkConflictError(
            f"Transaction {transaction_id} already has receipt {transaction.receipt_id}"
        )

    try:
        updated = db.query(EmailReceipt).filter(EmailReceipt.id == receipt_id).update(
            {
                EmailReceipt.matched_transaction_id: transaction_id,
                EmailReceipt.match_confidence: confidence,
                EmailReceipt.matched_at: datetime.utcnow(),
            },
            synchronize_session=False
        )
        if not updated:
            logger.error("Link failed: receipt %s not found", receipt_id)
            return False
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Receipt update failed for %s: %s", receipt_id, e)
        return False

    try:
        updated = db.query(Transaction).filter(Transaction.id == transaction_id).update(
            {Transaction.receipt_id: receipt_id},
            synchronize_session=False
        )
        if not updated:
            logger.error("Link failed: transaction %s not found", transaction_id)
            return False
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Transaction update failed for %s: %s", transaction_id, e)
        return False

    db.expire_all()
    logger.debug("Linked receipt %s to transaction %s", receipt_id, transaction_id)
    return True


def apply_receipt_matches(db: Session, matches: List[ReceiptMatch]) -> int:
    """Link each match independently; returns how many links succeeded."""
    linked = 0
    for match in matches:
        try:
            if link_receipt_to_transaction(db, match.receipt_id, match.transaction_id, match.confidence):
                linked += 1
        except ReceiptLinkConflictError as e:
            logger.warning("Skipping receipt link: %s", e)
    return linked


def store_receipt(
    db: Session,
    household_id: str,
    data: ReceiptCreate
) -> Tuple[EmailReceipt, Optional[ReceiptMatch], bool]:
    """
    Persist a parsed inbound receipt and try to link it right away.

    Returns:
        (receipt, match or None, whether the link was written)
    """
    receipt = EmailReceipt(
        household_id=household_id,
        sender_email=data.sender_email,
        raw_subject=data.raw_subject,
        is_receipt=data.is_receipt,
        merchant_name=data.merchant_name,
        amount=data.amount,
        currency=data.currency,
        receipt_date=data.receipt_date,
        items=[item.model_dump(mode="json", exclude_none=True) for item in data.items],
        parse_confidence=data.confidence,
    )
    db.add(receipt)
    db.commit()
    db.refresh(receipt)
    logger.info("Stored receipt %s from %s", receipt.id, data.sender_email)

    if not receipt.is_receipt:
        return receipt, None, False

    match = match_receipt_to_transaction(db, receipt.id)
    if match is None:
        return receipt, None, False

    try:
        linked = link_receipt_to_transaction(db, match.receipt_id, match.transaction_id, match.confidence)
    except ReceiptLinkConflictError as e:
        logger.warning("Receipt %s not linked: %s", receipt.id, e)
        linked = False
    db.refresh(receipt)
    return receipt, match, linked
