"""
SMS ingestion and SMS / credit card slip deduplication.

A purchase first appears as a card-alert SMS and becomes a provisional
ledger row. When the statement (CC slip) arrives, the matching SMS row is
confirmed and moves to pending; SMS rows never confirmed are flagged for
review after a while.
"""

import logging
import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledgermatch.config import settings
from ledgermatch.models.sms_transaction import SmsTransaction
from ledgermatch.models.transaction import Transaction, TransactionStatus, TransactionType
from ledgermatch.schemas.sms import CcSlipData, CcSlipMatchResult, ParsedSms, SmsTransactionResponse

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 80
BASE_SCORE = 50
SAME_DAY_POINTS = 30
ADJACENT_DAY_POINTS = 20
CARD_POINTS = 15

HEBREW_PATTERN = re.compile(r"[א-ת]")


class DuplicateSmsError(ValueError):
    """The same card alert was already received recently."""


def is_duplicate_sms(
    db: Session,
    household_id: str,
    parsed: ParsedSms,
    window: Optional[timedelta] = None
) -> bool:
    """Same card, amount and date received within the window (SMS gateways redeliver)."""
    if window is None:
        window = timedelta(minutes=settings.sms_duplicate_window_minutes)
    since = datetime.utcnow() - window

    existing = db.query(SmsTransaction).filter(
        SmsTransaction.household_id == household_id,
        SmsTransaction.card_ending == parsed.card_ending,
        SmsTransaction.amount == parsed.amount,
        SmsTransaction.transaction_date == parsed.transaction_date,
        SmsTransaction.received_at >= since,
    ).first()
    return existing is not None


def _insert_sms_record(db: Session, sms: SmsTransaction) -> SmsTransaction:
    db.add(sms)
    db.commit()
    db.refresh(sms)
    return sms


def store_sms_transaction(db: Session, household_id: str, parsed: ParsedSms) -> SmsTransaction:
    """
    Store a valid parsed SMS and create its provisional ledger row.

    Raises:
        ValueError: the parse is not valid or lacks card ending / amount
        DuplicateSmsError: the same alert was stored within the window
    """
    if not parsed.is_valid or parsed.amount is None or not parsed.card_ending:
        raise ValueError("SMS is not a valid transaction alert")

    if is_duplicate_sms(db, household_id, parsed):
        logger.info("Duplicate SMS for card %s amount %s, skipping", parsed.card_ending, parsed.amount)
        raise DuplicateSmsError("Duplicate SMS")

    txn_date = parsed.transaction_date or date.today()

    transaction = Transaction(
        household_id=household_id,
        date=txn_date,
        amount=parsed.amount,
        currency=parsed.currency,
        merchant_raw=parsed.merchant_name or "Unknown",
        merchant_normalized=parsed.merchant_name,
        status=TransactionStatus.provisional,
        type=TransactionType.expense,
        source="sms",
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)

    sms = SmsTransaction(
        household_id=household_id,
        card_ending=parsed.card_ending,
        merchant_name=parsed.merchant_name,
        amount=parsed.amount,
        currency=parsed.currency,
        transaction_date=txn_date,
        provider=parsed.provider,
        raw_message=parsed.raw_message,
        transaction_id=transaction.id,
    )
    try:
        sms = _insert_sms_record(db, sms)
    except SQLAlchemyError:
        db.rollback()
        logger.error("SMS insert failed, removing orphan transaction %s", transaction.id)
        db.query(Transaction).filter(Transaction.id == transaction.id).delete(synchronize_session=False)
        db.commit()
        raise

    transaction.sms_id = sms.id
    db.commit()

    logger.info("Stored SMS %s with provisional transaction %s", sms.id, transaction.id)
    return sms


def find_matching_sms_for_cc_slip(
    db: Session,
    household_id: str,
    amount: Decimal,
    txn_date: date,
    card_ending: Optional[str] = None
) -> CcSlipMatchResult:
    """
    Find the unmatched SMS a statement row confirms.

    Score: 50 for the amount, plus 30 same day or 20 one day off, plus 15
    when the card ending matches. Only the best candidate is considered and
    it must reach 80; amount alone is never enough.
    """
    query = db.query(SmsTransaction).filter(
        SmsTransaction.household_id == household_id,
        SmsTransaction.cc_matched == False,
        SmsTransaction.transaction_date >= txn_date - timedelta(days=1),
        SmsTransaction.transaction_date <= txn_date + timedelta(days=1),
    )
    if card_ending:
        query = query.filter(SmsTransaction.card_ending == card_ending)

    amount = abs(Decimal(str(amount)))
    best: Optional[SmsTransaction] = None
    best_score = 0

    for sms in query.order_by(SmsTransaction.received_at).all():
        if abs(Decimal(str(sms.amount))) != amount:
            continue

        score = BASE_SCORE
        score += SAME_DAY_POINTS if sms.transaction_date == txn_date else ADJACENT_DAY_POINTS
        if card_ending and sms.card_ending == card_ending:
            score += CARD_POINTS

        if score > best_score:
            best_score = score
            best = sms

    if best is None or best_score < MATCH_THRESHOLD:
        return CcSlipMatchResult(matched=False, confidence=best_score)

    return CcSlipMatchResult(
        matched=True,
        sms_transaction=SmsTransactionResponse.model_validate(best),
        confidence=best_score,
    )


def best_merchant_name(sms_merchant: Optional[str], cc_merchant: Optional[str]) -> Optional[str]:
    """
    Pick the more useful merchant text.

    Hebrew beats Latin (statements often transliterate); otherwise the
    longer, more descriptive string wins.
    """
    if not sms_merchant:
        return cc_merchant or None
    if not cc_merchant:
        return sms_merchant

    sms_local = bool(HEBREW_PATTERN.search(sms_merchant))
    cc_local = bool(HEBREW_PATTERN.search(cc_merchant))
    if sms_local != cc_local:
        return sms_merchant if sms_local else cc_merchant

    return sms_merchant if len(sms_merchant) >= len(cc_merchant) else cc_merchant


def merge_cc_slip_with_sms(db: Session, sms_id: str, cc_slip: CcSlipData) -> Transaction:
    """
    Confirm an SMS-created transaction with its statement row.

    The statement is authoritative for amount and date, and its merchant text
    becomes merchant_raw. The more readable of the two merchant names becomes
    merchant_normalized. Existing category data is never touched. The SMS is
    marked matched afterwards; if that write fails the transaction update
    still stands.
    """
    sms = db.query(SmsTransaction).filter(SmsTransaction.id == sms_id).first()
    if not sms:
        raise ValueError(f"SMS transaction {sms_id} not found")
    if not sms.transaction_id:
        raise ValueError(f"SMS transaction {sms_id} has no linked transaction")

    transaction = db.query(Transaction).filter(Transaction.id == sms.transaction_id).first()
    if not transaction:
        raise ValueError(f"Transaction {sms.transaction_id} not found")

    now = datetime.utcnow()
    transaction.amount = cc_slip.amount
    transaction.date = cc_slip.date
    transaction.merchant_raw = cc_slip.merchant_raw or transaction.merchant_raw
    transaction.merchant_normalized = (
        best_merchant_name(sms.merchant_name, cc_slip.merchant_raw) or transaction.merchant_normalized
    )
    transaction.status = TransactionStatus.pending
    transaction.source_file = cc_slip.source_file
    transaction.source_row = cc_slip.source_row
    transaction.cc_slip_linked_at = now
    db.commit()
    db.refresh(transaction)

    try:
        sms.cc_matched = True
        sms.cc_matched_at = now
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to mark SMS %s as matched: %s", sms_id, e)

    logger.info("Merged CC slip into transaction %s (SMS %s)", transaction.id, sms_id)
    return transaction


def get_unmatched_sms_transactions(
    db: Session,
    household_id: str,
    older_than_days: Optional[int] = None
) -> List[SmsTransaction]:
    """SMS rows never confirmed by a statement and received more than N days ago."""
    if older_than_days is None:
        older_than_days = settings.sms_stale_days
    cutoff = datetime.utcnow() - timedelta(days=older_than_days)

    return db.query(SmsTransaction).filter(
        SmsTransaction.household_id == household_id,
        SmsTransaction.cc_matched == False,
        SmsTransaction.received_at < cutoff,
    ).order_by(SmsTransaction.received_at).all()


def flag_unmatched_sms_transactions(
    db: Session,
    household_id: str,
    older_than_days: Optional[int] = None
) -> int:
    """
    Flag provisional rows whose SMS was never confirmed.

    Rows a user already moved out of provisional are left alone.

    Returns:
        Number of transactions flagged
    """
    stale = get_unmatched_sms_transactions(db, household_id, older_than_days)
    transaction_ids = [s.transaction_id for s in stale if s.transaction_id]
    if not transaction_ids:
        return 0

    count = db.query(Transaction).filter(
        Transaction.id.in_(transaction_ids),
        Transaction.status == TransactionStatus.provisional,
    ).update({Transaction.status: TransactionStatus.flagged}, synchronize_session=False)
    db.commit()

    logger.info("Flagged %d stale SMS transactions for household %s", count, household_id)
    return count


def get_sms_source_for_transaction(
    db: Session,
    household_id: str,
    transaction_id: str
) -> Optional[SmsTransaction]:
    """The SMS evidence behind a ledger row, if any."""
    return db.query(SmsTransaction).filter(
        SmsTransaction.household_id == household_id,
        SmsTransaction.transaction_id == transaction_id,
    ).first()


def get_sms_transaction(db: Session, household_id: str, sms_id: str) -> Optional[SmsTransaction]:
    return db.query(SmsTransaction).filter(
        SmsTransaction.household_id == household_id,
        SmsTransaction.id == sms_id,
    ).first()
