"""
Duplicate detection within a household ledger.
"""

import logging
import re
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from ledgermatch.models.transaction import Transaction, TransactionStatus, TransactionType
from ledgermatch.schemas.duplicates import (
    DuplicateCheckResult, DuplicateGroup, DuplicateMatch, MergeResult, NewTransactionCheck
)
from ledgermatch.schemas.transaction import TransactionSummary

logger = logging.getLogger(__name__)

DATE_WINDOW_DAYS = 3
AMOUNT_TOLERANCE = Decimal("1.0")
NOTES_SEPARATOR = " | "

P2P_MERCHANT_PATTERN = re.compile(r"ביט|bit|paybox", re.IGNORECASE)


def _amount_diff(a, b) -> Decimal:
    return abs(abs(Decimal(str(a))) - abs(Decimal(str(b))))


def get_duplicate_groups(db: Session, household_id: str) -> List[DuplicateGroup]:
    """
    Cluster live ledger rows that probably describe the same event.

    Rows within three days of each other whose absolute amounts differ by at
    most 1.0 land in one group. A row absorbed into a group never starts a
    group of its own. Soft-deleted rows are ignored, so a merged ledger
    yields no groups.
    """
    transactions = db.query(Transaction).filter(
        Transaction.household_id == household_id,
        Transaction.is_duplicate == False,
    ).order_by(Transaction.date.desc(), Transaction.created_at.asc()).all()

    groups: List[DuplicateGroup] = []
    visited = set()

    for i, t1 in enumerate(transactions):
        if t1.id in visited:
            continue

        members = [t1]
        for t2 in transactions[i + 1:]:
            # Sorted by date, so everything further on is further away
            if (t1.date - t2.date).days > DATE_WINDOW_DAYS:
                break
            if t2.id in visited:
                continue
            if _amount_diff(t1.amount, t2.amount) <= AMOUNT_TOLERANCE:
                members.append(t2)

        if len(members) < 2:
            continue

        for member in members:
            visited.add(member.id)

        groups.append(DuplicateGroup(
            key=f"group-{len(groups) + 1}",
            transactions=[TransactionSummary.model_validate(m) for m in members],
        ))

    logger.info("Found %d duplicate groups for household %s", len(groups), household_id)
    return groups


def merge_transaction_group(
    db: Session,
    household_id: str,
    primary_id: str,
    duplicate_ids: Sequence[str],
    final_category: Optional[str] = None,
    final_type: Optional[TransactionType] = None,
    notes: Optional[str] = None
) -> MergeResult:
    """
    Fold a confirmed duplicate group into its primary row.

    The losing rows are soft-deleted first, then the primary is updated.
    Both steps overwrite to fixed values, so a merge interrupted between
    them is completed by running it again with the same arguments.
    """
    duplicate_ids = [d for d in dict.fromkeys(duplicate_ids) if d != primary_id]
    if not duplicate_ids:
        raise ValueError("No duplicates to merge")

    primary = db.query(Transaction).filter(
        Transaction.id == primary_id,
        Transaction.household_id == household_id,
    ).first()
    if not primary:
        raise ValueError(f"Transaction {primary_id} not found")

    others = db.query(Transaction).filter(
        Transaction.id.in_(duplicate_ids),
        Transaction.household_id == household_id,
    ).all()
    found = {t.id for t in others}
    missing = [d for d in duplicate_ids if d not in found]
    if missing:
        raise ValueError(f"Transactions not found: {', '.join(missing)}")

    # Keep caller order so "first non-null" is deterministic
    others.sort(key=lambda t: duplicate_ids.index(t.id))
    members = [primary] + others

    if notes is not None:
        merged_notes = notes or None
    else:
        distinct = []
        for member in members:
            # A previous merge may already have joined notes
            for part in (member.notes or "").split(NOTES_SEPARATOR):
                part = part.strip()
                if part and part not in distinct:
                    distinct.append(part)
        merged_notes = NOTES_SEPARATOR.join(distinct) or None

    category = final_category or primary.category or next(
        (t.category for t in others if t.category), None
    )
    merchant_normalized = primary.merchant_normalized or next(
        (t.merchant_normalized for t in others if t.merchant_normalized), None
    )
    if any(m.status == TransactionStatus.verified for m in members):
        status = TransactionStatus.verified
    else:
        status = primary.status

    for other in others:
        other.is_duplicate = True
        other.duplicate_of = primary.id
    db.commit()

    primary.notes = merged_notes
    if category != primary.category:
        primary.category = category
        if not final_category:
            primary.category_source = next(
                (t.category_source for t in others if t.category == category), primary.category_source
            )
    primary.merchant_normalized = merchant_normalized
    primary.status = status
    primary.type = final_type or primary.type
    db.commit()

    logger.info("Merged %d duplicates into %s", len(others), primary.id)
    return MergeResult(success=True, primary_id=primary.id, merged_count=len(others))


def check_for_duplicates(
    db: Session,
    household_id: str,
    rows: List[NewTransactionCheck]
) -> DuplicateCheckResult:
    """
    Check rows about to be saved against the existing ledger.

    Each new row reports at most one existing match: the first found within
    three days and 1.0 of its amount.
    """
    matches: List[DuplicateMatch] = []

    for row in rows:
        existing = db.query(Transaction).filter(
            Transaction.household_id == household_id,
            Transaction.is_duplicate == False,
            Transaction.date >= row.date - timedelta(days=DATE_WINDOW_DAYS),
            Transaction.date <= row.date + timedelta(days=DATE_WINDOW_DAYS),
        ).order_by(Transaction.date, Transaction.created_at).all()

        for tx in existing:
            diff = _amount_diff(tx.amount, row.amount)
            if diff > AMOUNT_TOLERANCE:
                continue

            confidence = 80
            reasons = ["similar amount"]
            if tx.date == row.date:
                confidence += 10
                reasons.append("same day")
            if diff == 0:
                confidence += 10
                reasons.append("exact amount")
            if P2P_MERCHANT_PATTERN.search(row.merchant_raw) or P2P_MERCHANT_PATTERN.search(tx.merchant_raw):
                confidence += 5
                reasons.append("payment app")

            matches.append(DuplicateMatch(
                new_transaction=row,
                existing_transaction=TransactionSummary.model_validate(tx),
                confidence=min(confidence, 100),
                reason=", ".join(reasons),
            ))
            break

    return DuplicateCheckResult(
        has_duplicates=bool(matches),
        matches=matches,
        clean_transactions=len(rows) - len(matches),
    )
