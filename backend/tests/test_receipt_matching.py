"""Tests for receipt to transaction matching."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from ledgermatch.models.email_receipt import EmailReceipt
from ledgermatch.models.transaction import Transaction
from ledgermatch.schemas.receipt import ReceiptCreate, ReceiptItem, ReceiptMatch
from ledgermatch.services import receipt_matching_service
from ledgermatch.services.receipt_matching_service import (
    ReceiptLinkConflictError,
    apply_receipt_matches,
    link_receipt_to_transaction,
    match_receipt_to_transaction,
    match_transactions_to_receipts,
    store_receipt,
)

from conftest import HOUSEHOLD_ID, OTHER_HOUSEHOLD_ID


class TestBatchMatching:
    """Test matching new transactions against stored receipts."""

    def test_same_day_match(self, db_session, make_transaction, make_receipt):
        txn = make_transaction()
        receipt = make_receipt()

        matches = match_transactions_to_receipts(db_session, HOUSEHOLD_ID, [txn])

        assert len(matches) == 1
        assert matches[0].receipt_id == receipt.id
        assert matches[0].transaction_id == txn.id
        assert matches[0].confidence == 100
        assert matches[0].reason == "exact_date_match"
        assert matches[0].receipt_merchant_name == "Shufersal Online"
        assert matches[0].receipt_items[0].name == "Milk"

    def test_closest_date_wins(self, db_session, make_transaction, make_receipt):
        txn = make_transaction(date=date(2026, 3, 10))
        make_receipt(receipt_date=date(2026, 3, 8))
        near = make_receipt(receipt_date=date(2026, 3, 11))

        matches = match_transactions_to_receipts(db_session, HOUSEHOLD_ID, [txn])

        assert matches[0].receipt_id == near.id
        assert matches[0].confidence == 90
        assert matches[0].reason == "date_proximity_match"

    def test_outside_two_days(self, db_session, make_transaction, make_receipt):
        txn = make_transaction(date=date(2026, 3, 10))
        make_receipt(receipt_date=date(2026, 3, 13))

        assert match_transactions_to_receipts(db_session, HOUSEHOLD_ID, [txn]) == []

    def test_no_double_allocation(self, db_session, make_transaction, make_receipt):
        """One receipt, two identical transactions: only the first gets it."""
        first = make_transaction()
        second = make_transaction()
        make_receipt()

        matches = match_transactions_to_receipts(db_session, HOUSEHOLD_ID, [first, second])

        assert len(matches) == 1
        assert matches[0].transaction_id == first.id

    def test_each_receipt_used_once(self, db_session, make_transaction, make_receipt):
        txns = [make_transaction() for _ in range(3)]
        receipts = [make_receipt() for _ in range(2)]

        matches = match_transactions_to_receipts(db_session, HOUSEHOLD_ID, txns)

        receipt_ids = [m.receipt_id for m in matches]
        assert len(matches) == 2
        assert len(set(receipt_ids)) == 2
        assert set(receipt_ids) == {r.id for r in receipts}

    def test_ignores_non_receipts_and_other_households(self, db_session, make_transaction, make_receipt):
        txn = make_transaction()
        make_receipt(is_receipt=False)
        make_receipt(household_id=OTHER_HOUSEHOLD_ID)

        assert match_transactions_to_receipts(db_session, HOUSEHOLD_ID, [txn]) == []

    def test_idempotent_after_linking(self, db_session, make_transaction, make_receipt):
        txn = make_transaction()
        make_receipt()

        first = match_transactions_to_receipts(db_session, HOUSEHOLD_ID, [txn])
        assert apply_receipt_matches(db_session, first) == 1

        db_session.refresh(txn)
        assert match_transactions_to_receipts(db_session, HOUSEHOLD_ID, [txn]) == []

    def test_empty_batch(self, db_session):
        assert match_transactions_to_receipts(db_session, HOUSEHOLD_ID, []) == []


class TestSingleReceiptMatching:
    """Test matching one new receipt against the ledger."""

    def test_exact_fx_beats_closer_estimate(self, db_session, make_transaction, make_receipt):
        make_transaction(date=date(2026, 3, 10), amount=Decimal("37.00"), merchant_raw="AMAZON")
        recorded = make_transaction(
            date=date(2026, 3, 12),
            amount=Decimal("36.50"),
            original_amount=Decimal("10.00"),
            original_currency="USD",
            merchant_raw="AMAZON MKTPLACE",
        )
        receipt = make_receipt(amount=Decimal("10.00"), currency="USD")

        match = match_receipt_to_transaction(db_session, receipt.id)

        assert match.transaction_id == recorded.id
        assert match.confidence == 90
        assert match.reason == "date_proximity_match"

    def test_same_currency_beats_cross_currency(self, db_session, make_transaction, make_receipt):
        make_transaction(amount=Decimal("37.00"))
        same = make_transaction(date=date(2026, 3, 11), amount=Decimal("10.00"), currency="USD")
        receipt = make_receipt(amount=Decimal("10.00"), currency="USD")

        match = match_receipt_to_transaction(db_session, receipt.id)

        assert match.transaction_id == same.id
        assert match.confidence == 95

    def test_skips_linked_and_duplicate_rows(self, db_session, make_transaction, make_receipt):
        make_transaction(receipt_id="some-receipt")
        make_transaction(is_duplicate=True)
        receipt = make_receipt()

        assert match_receipt_to_transaction(db_session, receipt.id) is None

    def test_missing_amount(self, db_session, make_transaction, make_receipt):
        make_transaction()
        receipt = make_receipt(amount=None)

        assert match_receipt_to_transaction(db_session, receipt.id) is None

    def test_unknown_receipt(self, db_session):
        try:
            match_receipt_to_transaction(db_session, "nope")
        except ValueError as e:
            assert "not found" in str(e)
        else:
            raise AssertionError("expected ValueError")


class TestLinking:
    """Test writing receipt links."""

    def test_link_writes_both_sides(self, db_session, make_transaction, make_receipt):
        txn = make_transaction()
        receipt = make_receipt()

        assert link_receipt_to_transaction(db_session, receipt.id, txn.id, 95) is True

        receipt = db_session.query(EmailReceipt).filter(EmailReceipt.id == receipt.id).one()
        txn = db_session.query(Transaction).filter(Transaction.id == txn.id).one()
        assert receipt.matched_transaction_id == txn.id
        assert receipt.match_confidence == 95
        assert receipt.matched_at is not None
        assert txn.receipt_id == receipt.id

    def test_link_is_rerunnable(self, db_session, make_transaction, make_receipt):
        txn = make_transaction()
        receipt = make_receipt()

        assert link_receipt_to_transaction(db_session, receipt.id, txn.id, 95) is True
        assert link_receipt_to_transaction(db_session, receipt.id, txn.id, 95) is True

    def test_missing_transaction_reports_failure(self, db_session, make_receipt):
        receipt = make_receipt()
        assert link_receipt_to_transaction(db_session, receipt.id, "missing", 90) is False

    def test_database_error_reports_failure(self, db_session, make_transaction, make_receipt, monkeypatch):
        txn = make_transaction()
        receipt = make_receipt()

        def fail_commit():
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(db_session, "commit", fail_commit)
        assert link_receipt_to_transaction(db_session, receipt.id, txn.id, 90) is False

    def test_linked_receipt_cannot_move(self, db_session, make_transaction, make_receipt):
        first = make_transaction()
        second = make_transaction()
        receipt = make_receipt()
        assert link_receipt_to_transaction(db_session, receipt.id, first.id, 95) is True

        with pytest.raises(ReceiptLinkConflictError):
            link_receipt_to_transaction(db_session, receipt.id, second.id, 60)

        db_session.refresh(receipt)
        db_session.refresh(first)
        db_session.refresh(second)
        assert receipt.matched_transaction_id == first.id
        assert receipt.match_confidence == 95
        assert first.receipt_id == receipt.id
        assert second.receipt_id is None

    def test_transaction_keeps_its_receipt(self, db_session, make_transaction, make_receipt):
        txn = make_transaction()
        kept = make_receipt()
        other = make_receipt()
        assert link_receipt_to_transaction(db_session, kept.id, txn.id, 95) is True

        with pytest.raises(ReceiptLinkConflictError):
            link_receipt_to_transaction(db_session, other.id, txn.id, 60)

        db_session.refresh(txn)
        db_session.refresh(other)
        assert txn.receipt_id == kept.id
        assert other.matched_transaction_id is None

    def test_half_written_link_is_completed(self, db_session, make_transaction, make_receipt):
        txn = make_transaction()
        receipt = make_receipt(matched_transaction_id=txn.id, match_confidence=90)

        assert link_receipt_to_transaction(db_session, receipt.id, txn.id, 90) is True

        db_session.refresh(txn)
        assert txn.receipt_id == receipt.id

    def test_batch_skips_conflicting_link(self, db_session, make_transaction, make_receipt):
        first = make_transaction()
        second = make_transaction()
        receipt = make_receipt()
        link_receipt_to_transaction(db_session, receipt.id, first.id, 95)
        stale = ReceiptMatch(
            receipt_id=receipt.id, transaction_id=second.id,
            receipt_merchant_name="Shufersal Online", confidence=100, reason="exact_date_match"
        )

        assert apply_receipt_matches(db_session, [stale]) == 0
        db_session.refresh(second)
        assert second.receipt_id is None


class TestStoreReceipt:
    """Test storing an inbound receipt."""

    def test_store_and_link(self, db_session, make_transaction):
        txn = make_transaction()
        data = ReceiptCreate(
            sender_email="orders@shufersal.co.il",
            merchant_name="Shufersal Online",
            amount=Decimal("100.00"),
            receipt_date=date(2026, 3, 10),
            items=[ReceiptItem(name="Bread", price=Decimal("12.90"))],
        )

        receipt, match, linked = store_receipt(db_session, HOUSEHOLD_ID, data)

        assert linked is True
        assert match.transaction_id == txn.id
        assert receipt.matched_transaction_id == txn.id
        assert receipt.items == [{"name": "Bread", "price": "12.90"}]

    def test_store_without_match(self, db_session):
        data = ReceiptCreate(amount=Decimal("5.00"), receipt_date=date(2026, 3, 10))

        receipt, match, linked = store_receipt(db_session, HOUSEHOLD_ID, data)

        assert receipt.id is not None
        assert match is None
        assert linked is False

    def test_non_receipt_not_matched(self, db_session, make_transaction, monkeypatch):
        make_transaction()
        called = []
        monkeypatch.setattr(
            receipt_matching_service, "match_receipt_to_transaction",
            lambda db, receipt_id: called.append(receipt_id)
        )
        data = ReceiptCreate(is_receipt=False, amount=Decimal("100.00"), receipt_date=date(2026, 3, 10))

        _, match, linked = store_receipt(db_session, HOUSEHOLD_ID, data)

        assert match is None
        assert linked is False
        assert called == []
