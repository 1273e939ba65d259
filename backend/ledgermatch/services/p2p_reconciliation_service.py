"""
Reconcile payment-app (BIT / PayBox) entries with card and bank statements.

An app screenshot and the card statement describe the same transfer twice.
App-side rows carry the readable counterparty; statement rows carry the
settled amount. A confirmed match folds the app row into the statement row.

One pass sorts the household's unreconciled app rows into four queues:
outgoing transfers with a statement counterpart, withdrawals of the app
balance to the bank, outgoing transfers paid from the app balance, and
money received. Nothing is written until the user confirms an entry.
"""

import calendar
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ledgermatch.models.transaction import (
    CategorySource,
    P2PDirection,
    ReconciliationStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from ledgermatch.schemas.reconciliation import (
    P2PReconciliationResult,
    PendingReconciliationCount,
    ReconciliationMatch,
    WithdrawalMatch,
)
from ledgermatch.schemas.transaction import TransactionSummary

logger = logging.getLogger(__name__)

P2P_KEYWORDS = ["BIT", "ביט", "PAYBOX", "פייבוקס", "PEPPER", "PAY PAL", "PAYPAL", "P.P"]
BANK_DEPOSIT_KEYWORDS = ["BIT", "ביט", "PAYBOX", "פייבוקס", "PEPPER", "העברה מ"]
APP_SOURCE_MARKERS = ("screenshot", "image")

AMOUNT_TOLERANCE = Decimal("1")
DAYS_BEFORE = 1
DAYS_AFTER = 7

BASE_CONFIDENCE = 90
CLOSE_DATE_CONFIDENCE = 95
EXACT_AMOUNT_BONUS = 2
MAX_CONFIDENCE = 99

# Bank deposits land the same day or a few days after the withdrawal
WITHDRAWAL_DAYS_BEFORE = 1
WITHDRAWAL_DAYS_AFTER = 3
WITHDRAWAL_BASE_CONFIDENCE = 70
WITHDRAWAL_EXACT_AMOUNT_BONUS = 15
WITHDRAWAL_SAME_DAY_BONUS = 15
WITHDRAWAL_NEXT_DAY_BONUS = 10
WITHDRAWAL_EXACT_THRESHOLD = 90


def is_app_source(source: Optional[str]) -> bool:
    """Rows that came from a payment-app screenshot."""
    lower = (source or "").lower()
    return any(marker in lower for marker in APP_SOURCE_MARKERS)


def has_p2p_keyword(merchant: Optional[str]) -> bool:
    upper = (merchant or "").upper()
    return any(keyword in upper for keyword in P2P_KEYWORDS)


def has_bank_deposit_keyword(merchant: Optional[str]) -> bool:
    upper = (merchant or "").upper()
    return any(keyword in upper for keyword in BANK_DEPOSIT_KEYWORDS)


def p2p_direction(transaction: Transaction) -> P2PDirection:
    """Stored direction, or the one implied by the row type."""
    if transaction.p2p_direction:
        return transaction.p2p_direction
    if transaction.type == TransactionType.income:
        return P2PDirection.received
    return P2PDirection.sent


def _abs_amount(transaction: Transaction) -> Decimal:
    return abs(Decimal(str(transaction.amount)))


def _live_rows(
    db: Session,
    household_id: str,
    start_date: Optional[date],
    end_date: Optional[date],
    days_before: int = 0,
    days_after: int = 0
) -> List[Transaction]:
    """Unmerged, not yet reconciled rows, optionally within a widened range."""
    query = db.query(Transaction).filter(
        Transaction.household_id == household_id,
        Transaction.is_duplicate == False,
        Transaction.reconciliation_status.is_(None),
    )
    if start_date:
        query = query.filter(Transaction.date >= start_date - timedelta(days=days_before))
    if end_date:
        query = query.filter(Transaction.date <= end_date + timedelta(days=days_after))
    return query.order_by(Transaction.date.desc(), Transaction.created_at.asc()).all()


def _candidates(app: Transaction, cc_side: List[Transaction]) -> List[Transaction]:
    app_abs = _abs_amount(app)
    matches = []
    for cc in cc_side:
        if abs(_abs_amount(cc) - app_abs) > AMOUNT_TOLERANCE:
            continue
        days = (cc.date - app.date).days
        if days < -DAYS_BEFORE or days > DAYS_AFTER:
            continue
        if not has_p2p_keyword(cc.merchant_raw):
            continue
        matches.append(cc)
    return matches


def _confidence(app: Transaction, cc: Transaction) -> int:
    gap = abs((cc.date - app.date).days)
    confidence = CLOSE_DATE_CONFIDENCE if gap <= 1 else BASE_CONFIDENCE
    if _abs_amount(cc) == _abs_amount(app):
        confidence += EXACT_AMOUNT_BONUS
    return min(confidence, MAX_CONFIDENCE)


def _withdrawal_candidates(withdrawal: Transaction, deposits: List[Transaction]) -> List[Transaction]:
    amount = _abs_amount(withdrawal)
    matches = []
    for deposit in deposits:
        if abs(_abs_amount(deposit) - amount) > AMOUNT_TOLERANCE:
            continue
        days = (deposit.date - withdrawal.date).days
        if days < -WITHDRAWAL_DAYS_BEFORE or days > WITHDRAWAL_DAYS_AFTER:
            continue
        matches.append(deposit)
    return matches


def _withdrawal_confidence(withdrawal: Transaction, deposit: Transaction) -> Tuple[int, str]:
    confidence = WITHDRAWAL_BASE_CONFIDENCE
    reasons = []
    if _abs_amount(deposit) == _abs_amount(withdrawal):
        confidence += WITHDRAWAL_EXACT_AMOUNT_BONUS
        reasons.append("exact amount")

    days = (deposit.date - withdrawal.date).days
    if days == 0:
        confidence += WITHDRAWAL_SAME_DAY_BONUS
        reasons.append("same day")
    elif abs(days) == 1:
        confidence += WITHDRAWAL_NEXT_DAY_BONUS
        reasons.append("1 day apart")

    return confidence, ", ".join(reasons) or "amount within tolerance"


def _match_withdrawals(
    app_withdrawals: List[Transaction],
    deposits: List[Transaction]
) -> List[WithdrawalMatch]:
    """A deposit claimed by a single-candidate withdrawal leaves the pool."""
    used = set()
    results: List[WithdrawalMatch] = []

    for withdrawal in app_withdrawals:
        candidates = _withdrawal_candidates(withdrawal, [d for d in deposits if d.id not in used])
        if not candidates:
            continue

        withdrawal_summary = TransactionSummary.model_validate(withdrawal)
        bank_summaries = [TransactionSummary.model_validate(d) for d in candidates]

        if len(candidates) == 1:
            confidence, reason = _withdrawal_confidence(withdrawal, candidates[0])
            results.append(WithdrawalMatch(
                app_withdrawal=withdrawal_summary,
                bank_candidates=bank_summaries,
                confidence=confidence,
                match_type="exact" if confidence >= WITHDRAWAL_EXACT_THRESHOLD else "fuzzy",
                reason=reason,
            ))
            used.add(candidates[0].id)
        else:
            results.append(WithdrawalMatch(
                app_withdrawal=withdrawal_summary,
                bank_candidates=bank_summaries,
                confidence=WITHDRAWAL_BASE_CONFIDENCE,
                match_type="ambiguous",
                reason=f"{len(candidates)} bank deposits match, needs review",
            ))
    return results


def find_p2p_matches(
    db: Session,
    household_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> P2PReconciliationResult:
    """
    Propose app/statement pairs and sort the remaining app rows.

    The optional range limits the app side; statement rows are searched in
    the range widened by the posting window. An outgoing app row with
    exactly one candidate gets a proposal; several candidates are left for
    a human; none at all means it was paid from the app balance.
    Withdrawals are paired with bank deposits, received money is listed
    as a reimbursement.
    """
    app_side = [
        t for t in _live_rows(db, household_id, start_date, end_date)
        if is_app_source(t.source)
    ]
    statement_side = [
        t for t in _live_rows(db, household_id, start_date, end_date, DAYS_BEFORE, DAYS_AFTER)
        if not is_app_source(t.source)
    ]
    cc_side = [t for t in statement_side if t.type == TransactionType.expense]
    deposits = [
        t for t in statement_side
        if t.type == TransactionType.income and has_bank_deposit_keyword(t.merchant_raw)
    ]

    matches: List[ReconciliationMatch] = []
    ambiguous: List[ReconciliationMatch] = []
    balance_paid: List[TransactionSummary] = []

    for app in app_side:
        if p2p_direction(app) != P2PDirection.sent:
            continue

        candidates = _candidates(app, cc_side)
        app_summary = TransactionSummary.model_validate(app)
        if not candidates:
            balance_paid.append(app_summary)
            continue

        cc_summaries = [TransactionSummary.model_validate(c) for c in candidates]

        if len(candidates) == 1:
            matches.append(ReconciliationMatch(
                app_transaction=app_summary,
                cc_candidates=cc_summaries,
                confidence=_confidence(app, candidates[0]),
                match_type="exact",
                reason="Matched amount, date and payment app keyword",
            ))
        else:
            ambiguous.append(ReconciliationMatch(
                app_transaction=app_summary,
                cc_candidates=cc_summaries,
                confidence=0,
                match_type="ambiguous",
                reason=f"{len(candidates)} statement rows match, needs review",
            ))

    withdrawals = _match_withdrawals(
        [t for t in app_side if p2p_direction(t) == P2PDirection.withdrawal],
        deposits,
    )
    reimbursements = [
        TransactionSummary.model_validate(t) for t in app_side
        if p2p_direction(t) == P2PDirection.received
    ]

    logger.info(
        "P2P reconciliation for household %s: %d proposals, %d ambiguous, %d withdrawals, "
        "%d balance-paid, %d reimbursements",
        household_id, len(matches), len(ambiguous), len(withdrawals),
        len(balance_paid), len(reimbursements)
    )
    return P2PReconciliationResult(
        matches=matches,
        ambiguous=ambiguous,
        withdrawals=withdrawals,
        balance_paid=balance_paid,
        reimbursements=reimbursements,
        app_count=len(app_side),
        cc_count=len(cc_side),
    )


def find_monthly_p2p_matches(db: Session, household_id: str, year: int, month: int) -> P2PReconciliationResult:
    """Proposals for app rows dated within one calendar month."""
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    last_day = calendar.monthrange(year, month)[1]
    return find_p2p_matches(db, household_id, date(year, month, 1), date(year, month, last_day))


def reconcile_transactions(db: Session, household_id: str) -> int:
    """Number of app rows with a single proposed statement match."""
    return len(find_p2p_matches(db, household_id).matches)


def get_pending_reconciliation_count(db: Session, household_id: str) -> PendingReconciliationCount:
    """Entries awaiting a decision, per queue."""
    result = find_p2p_matches(db, household_id)
    counts = dict(
        matches=len(result.matches) + len(result.ambiguous),
        withdrawals=len(result.withdrawals),
        balance_paid=len(result.balance_paid),
        reimbursements=len(result.reimbursements),
    )
    return PendingReconciliationCount(total=sum(counts.values()), **counts)


def _get_transaction(db: Session, household_id: str, transaction_id: str) -> Transaction:
    transaction = db.query(Transaction).filter(
        Transaction.id == transaction_id,
        Transaction.household_id == household_id,
    ).first()
    if not transaction:
        raise ValueError(f"Transaction {transaction_id} not found")
    return transaction


def _get_app_transaction(db: Session, household_id: str, transaction_id: str) -> Transaction:
    transaction = _get_transaction(db, household_id, transaction_id)
    if not is_app_source(transaction.source):
        raise ValueError(f"Transaction {transaction_id} is not a payment-app entry")
    return transaction


def _append_note(transaction: Transaction, annotation: str) -> None:
    if not transaction.notes:
        transaction.notes = annotation
    elif annotation not in transaction.notes:
        transaction.notes = f"{transaction.notes} | {annotation}"


def merge_p2p_transactions(
    db: Session,
    household_id: str,
    app_transaction_id: str,
    cc_transaction_id: str,
    category: Optional[str] = None
) -> Transaction:
    """
    Fold an app row into its statement row.

    The app row is soft-deleted first, then the statement row is enriched
    with the app's merchant and category. Both writes are overwrites, so a
    merge interrupted half way completes when run again.
    """
    if app_transaction_id == cc_transaction_id:
        raise ValueError("Cannot merge a transaction with itself")

    app = _get_transaction(db, household_id, app_transaction_id)
    cc = _get_transaction(db, household_id, cc_transaction_id)

    app.is_duplicate = True
    app.duplicate_of = cc.id
    app.reconciliation_status = ReconciliationStatus.matched
    app.status = TransactionStatus.verified
    db.commit()

    cc.merchant_normalized = app.merchant_normalized or app.merchant_raw
    if category:
        cc.category = category
        cc.category_source = CategorySource.user_manual
    elif app.category:
        cc.category = app.category
        cc.category_source = app.category_source

    _append_note(cc, app.notes or f"Original: {app.merchant_raw}")
    cc.reconciliation_status = ReconciliationStatus.matched
    cc.status = TransactionStatus.verified
    db.commit()
    db.refresh(cc)

    logger.info("Merged app transaction %s into statement transaction %s", app.id, cc.id)
    return cc


def merge_withdrawal(
    db: Session,
    household_id: str,
    withdrawal_id: str,
    bank_deposit_id: str
) -> Transaction:
    """
    Pair an app balance withdrawal with the bank deposit it produced.

    The money only moved between the household's own accounts. The app row
    is soft-deleted in favour of the deposit, then the deposit is turned
    into a transfer so it no longer counts as income. Both writes are
    overwrites and the pair can be merged again after a partial failure.
    """
    if withdrawal_id == bank_deposit_id:
        raise ValueError("Cannot merge a transaction with itself")

    withdrawal = _get_app_transaction(db, household_id, withdrawal_id)
    deposit = _get_transaction(db, household_id, bank_deposit_id)
    if is_app_source(deposit.source):
        raise ValueError(f"Transaction {bank_deposit_id} is not a bank statement row")

    withdrawal.is_duplicate = True
    withdrawal.duplicate_of = deposit.id
    withdrawal.p2p_direction = P2PDirection.withdrawal
    withdrawal.reconciliation_status = ReconciliationStatus.withdrawal_matched
    withdrawal.status = TransactionStatus.verified
    db.commit()

    deposit.type = TransactionType.transfer
    _append_note(deposit, f"Withdrawal from {withdrawal.merchant_normalized or withdrawal.merchant_raw}")
    deposit.reconciliation_status = ReconciliationStatus.withdrawal_matched
    deposit.status = TransactionStatus.verified
    db.commit()
    db.refresh(deposit)

    logger.info("Merged app withdrawal %s with bank deposit %s", withdrawal.id, deposit.id)
    return deposit


def mark_as_balance_paid(
    db: Session,
    household_id: str,
    transaction_id: str,
    category: Optional[str] = None,
    notes: Optional[str] = None
) -> Transaction:
    """Confirm an app payment that was funded from the app balance, not a card."""
    transaction = _get_app_transaction(db, household_id, transaction_id)

    transaction.reconciliation_status = ReconciliationStatus.balance_paid
    transaction.status = TransactionStatus.verified
    if category:
        transaction.category = category
        transaction.category_source = CategorySource.user_manual
    if notes:
        transaction.notes = notes
    db.commit()
    db.refresh(transaction)

    logger.info("Marked app transaction %s as paid from balance", transaction.id)
    return transaction


def apply_reimbursement(
    db: Session,
    household_id: str,
    transaction_id: str,
    category: str,
    notes: Optional[str] = None
) -> Transaction:
    """
    Book money received through the app as a reimbursement.

    The row becomes a negative expense in the given category, so it offsets
    the spending it pays back instead of counting as income.
    """
    transaction = _get_app_transaction(db, household_id, transaction_id)

    transaction.type = TransactionType.expense
    transaction.amount = -_abs_amount(transaction)
    transaction.category = category
    transaction.category_source = CategorySource.user_manual
    transaction.p2p_direction = P2PDirection.received
    transaction.reconciliation_status = ReconciliationStatus.reimbursement
    transaction.status = TransactionStatus.verified
    if notes:
        transaction.notes = notes
    db.commit()
    db.refresh(transaction)

    logger.info("Applied reimbursement %s to category %s", transaction.id, category)
    return transaction
