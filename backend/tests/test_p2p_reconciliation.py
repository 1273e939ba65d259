"""Tests for payment-app / statement reconciliation."""

from datetime import date
from decimal import Decimal

import pytest

from ledgermatch.models.transaction import (
    CategorySource,
    P2PDirection,
    ReconciliationStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from ledgermatch.services.p2p_reconciliation_service import (
    apply_reimbursement,
    find_monthly_p2p_matches,
    find_p2p_matches,
    get_pending_reconciliation_count,
    has_bank_deposit_keyword,
    has_p2p_keyword,
    is_app_source,
    mark_as_balance_paid,
    merge_p2p_transactions,
    merge_withdrawal,
    p2p_direction,
    reconcile_transactions,
)

from conftest import HOUSEHOLD_ID, OTHER_HOUSEHOLD_ID


@pytest.fixture
def make_app_row(make_transaction):
    def _make(**overrides):
        fields = dict(merchant_raw="דני כהן", source="bit_screenshot")
        fields.update(overrides)
        return make_transaction(**fields)
    return _make


@pytest.fixture
def make_cc_row(make_transaction):
    def _make(**overrides):
        fields = dict(merchant_raw="BIT PAYMENT", source="cc_slip")
        fields.update(overrides)
        return make_transaction(**fields)
    return _make


@pytest.fixture
def make_withdrawal(make_app_row):
    def _make(**overrides):
        fields = dict(merchant_raw="משיכה לחשבון", amount=Decimal("500.00"), p2p_direction=P2PDirection.withdrawal)
        fields.update(overrides)
        return make_app_row(**fields)
    return _make


@pytest.fixture
def make_deposit(make_transaction):
    def _make(**overrides):
        fields = dict(
            merchant_raw="העברה מ-BIT", amount=Decimal("500.00"),
            type=TransactionType.income, source="bank_statement"
        )
        fields.update(overrides)
        return make_transaction(**fields)
    return _make

class TestHelpers:
    def test_app_source(self):
        assert is_app_source("bit_screenshot") is True
        assert is_app_source("PayBox Image") is True
        assert is_app_source("cc_slip") is False
        assert is_app_source(None) is False

    def test_keywords(self):
        assert has_p2p_keyword("bit payment") is True
        assert has_p2p_keyword("העברה ביט") is True
        assert has_p2p_keyword("PAYBOX TRANSFER") is True
        assert has_p2p_keyword("SHUFERSAL") is False

    def test_bank_deposit_keywords(self):
        assert has_bank_deposit_keyword("העברה מ-BIT") is True
        assert has_bank_deposit_keyword("PAYBOX DEPOSIT") is True
        assert has_bank_deposit_keyword("SALARY") is False

    def test_direction_defaults_from_type(self, make_app_row):
        assert p2p_direction(make_app_row()) == P2PDirection.sent
        assert p2p_direction(make_app_row(type=TransactionType.income)) == P2PDirection.received
        assert p2p_direction(make_app_row(p2p_direction=P2PDirection.withdrawal)) == P2PDirection.withdrawal


class TestFindP2PMatches:
    """Test proposing app/statement pairs."""

    def test_single_candidate_same_day(self, db_session, make_app_row, make_cc_row):
        app = make_app_row()
        cc = make_cc_row()

        result = find_p2p_matches(db_session, HOUSEHOLD_ID)

        assert result.app_count == 1
        assert result.cc_count == 1
        assert len(result.matches) == 1
        match = result.matches[0]
        assert match.app_transaction.id == app.id
        assert [c.id for c in match.cc_candidates] == [cc.id]
        assert match.match_type == "exact"
        assert match.confidence == 97

    def test_later_posting_lower_confidence(self, db_session, make_app_row, make_cc_row):
        make_app_row(date=date(2026, 3, 10))
        make_cc_row(date=date(2026, 3, 15), amount=Decimal("100.50"))

        result = find_p2p_matches(db_session, HOUSEHOLD_ID)

        assert result.matches[0].confidence == 90

    def test_posting_window(self, db_session, make_app_row, make_cc_row):
        make_app_row(date=date(2026, 3, 10))
        make_cc_row(date=date(2026, 3, 8))
        make_cc_row(date=date(2026, 3, 18))

        result = find_p2p_matches(db_session, HOUSEHOLD_ID)

        assert result.matches == []
        assert result.ambiguous == []

    def test_keyword_required_on_statement_side(self, db_session, make_app_row, make_cc_row):
        make_app_row()
        make_cc_row(merchant_raw="SHUFERSAL DEAL")

        assert find_p2p_matches(db_session, HOUSEHOLD_ID).matches == []

    def test_two_candidates_are_ambiguous(self, db_session, make_app_row, make_cc_row):
        make_app_row()
        first = make_cc_row(date=date(2026, 3, 10))
        second = make_cc_row(date=date(2026, 3, 12))

        result = find_p2p_matches(db_session, HOUSEHOLD_ID)

        assert result.matches == []
        assert len(result.ambiguous) == 1
        entry = result.ambiguous[0]
        assert entry.match_type == "ambiguous"
        assert entry.confidence == 0
        assert {c.id for c in entry.cc_candidates} == {first.id, second.id}

    def test_merged_rows_ignored(self, db_session, make_app_row, make_cc_row):
        app = make_app_row()
        cc = make_cc_row()
        merge_p2p_transactions(db_session, HOUSEHOLD_ID, app.id, cc.id)

        result = find_p2p_matches(db_session, HOUSEHOLD_ID)

        assert result.matches == []
        assert result.app_count == 0

    def test_household_scope(self, db_session, make_app_row, make_cc_row):
        make_app_row()
        make_cc_row(household_id=OTHER_HOUSEHOLD_ID)

        assert find_p2p_matches(db_session, HOUSEHOLD_ID).matches == []

    def test_count(self, db_session, make_app_row, make_cc_row):
        make_app_row()
        make_cc_row()

        assert reconcile_transactions(db_session, HOUSEHOLD_ID) == 1


class TestMonthlyMatches:
    def test_statement_after_month_end(self, db_session, make_app_row, make_cc_row):
        """A transfer on the 31st posting in the next month is still found."""
        make_app_row(date=date(2026, 3, 31))
        make_cc_row(date=date(2026, 4, 2))

        result = find_monthly_p2p_matches(db_session, HOUSEHOLD_ID, 2026, 3)

        assert len(result.matches) == 1

    def test_other_month_app_rows_excluded(self, db_session, make_app_row, make_cc_row):
        make_app_row(date=date(2026, 4, 5))
        make_cc_row(date=date(2026, 4, 5))

        assert find_monthly_p2p_matches(db_session, HOUSEHOLD_ID, 2026, 3).matches == []

    def test_invalid_month(self, db_session):
        with pytest.raises(ValueError):
            find_monthly_p2p_matches(db_session, HOUSEHOLD_ID, 2026, 13)


class TestMergeP2P:
    """Test folding an app row into its statement row."""

    def test_merge_enriches_statement_row(self, db_session, make_app_row, make_cc_row):
        app = make_app_row(category="Transfers", category_source=CategorySource.rule)
        cc = make_cc_row()

        merged = merge_p2p_transactions(db_session, HOUSEHOLD_ID, app.id, cc.id)

        assert merged.id == cc.id
        assert merged.merchant_normalized == "דני כהן"
        assert merged.category == "Transfers"
        assert merged.category_source == CategorySource.rule
        assert merged.notes == "Original: דני כהן"
        assert merged.status == TransactionStatus.verified

        assert merged.reconciliation_status == ReconciliationStatus.matched

        app = db_session.query(Transaction).filter(Transaction.id == app.id).one()
        assert app.is_duplicate is True
        assert app.duplicate_of == cc.id
        assert app.reconciliation_status == ReconciliationStatus.matched

    def test_explicit_category(self, db_session, make_app_row, make_cc_row):
        app = make_app_row(category="Transfers")
        cc = make_cc_row()

        merged = merge_p2p_transactions(db_session, HOUSEHOLD_ID, app.id, cc.id, category="Dining")

        assert merged.category == "Dining"
        assert merged.category_source == CategorySource.user_manual

    def test_app_notes_appended(self, db_session, make_app_row, make_cc_row):
        app = make_app_row(notes="dinner split")
        cc = make_cc_row(notes="card 1234")

        merged = merge_p2p_transactions(db_session, HOUSEHOLD_ID, app.id, cc.id)

        assert merged.notes == "card 1234 | dinner split"

    def test_rerun_does_not_repeat_notes(self, db_session, make_app_row, make_cc_row):
        app = make_app_row()
        cc = make_cc_row()

        merge_p2p_transactions(db_session, HOUSEHOLD_ID, app.id, cc.id)
        merged = merge_p2p_transactions(db_session, HOUSEHOLD_ID, app.id, cc.id)

        assert merged.notes == "Original: דני כהן"

    def test_missing_row(self, db_session, make_app_row):
        app = make_app_row()
        with pytest.raises(ValueError, match="not found"):
            merge_p2p_transactions(db_session, HOUSEHOLD_ID, app.id, "missing")

    def test_self_merge_rejected(self, db_session, make_app_row):
        app = make_app_row()
        with pytest.raises(ValueError):
            merge_p2p_transactions(db_session, HOUSEHOLD_ID, app.id, app.id)


class TestBalancePaid:
    """Test app payments with no statement counterpart."""

    def test_unmatched_outgoing_listed(self, db_session, make_app_row, make_cc_row):
        app = make_app_row()
        make_cc_row(merchant_raw="SHUFERSAL DEAL")

        result = find_p2p_matches(db_session, HOUSEHOLD_ID)

        assert result.matches == []
        assert [t.id for t in result.balance_paid] == [app.id]

    def test_ambiguous_row_not_balance_paid(self, db_session, make_app_row, make_cc_row):
        make_app_row()
        make_cc_row(date=date(2026, 3, 10))
        make_cc_row(date=date(2026, 3, 12))

        result = find_p2p_matches(db_session, HOUSEHOLD_ID)

        assert len(result.ambiguous) == 1
        assert result.balance_paid == []

    def test_mark_as_balance_paid(self, db_session, make_app_row):
        app = make_app_row()

        marked = mark_as_balance_paid(db_session, HOUSEHOLD_ID, app.id, category="Dining", notes="paid from balance")

        assert marked.reconciliation_status == ReconciliationStatus.balance_paid
        assert marked.status == TransactionStatus.verified
        assert marked.category == "Dining"
        assert marked.category_source == CategorySource.user_manual
        assert marked.notes == "paid from balance"

        result = find_p2p_matches(db_session, HOUSEHOLD_ID)
        assert result.balance_paid == []
        assert result.app_count == 0

    def test_statement_row_rejected(self, db_session, make_cc_row):
        cc = make_cc_row()
        with pytest.raises(ValueError, match="not a payment-app entry"):
            mark_as_balance_paid(db_session, HOUSEHOLD_ID, cc.id)

    def test_other_household_row(self, db_session, make_app_row):
        app = make_app_row(household_id=OTHER_HOUSEHOLD_ID)
        with pytest.raises(ValueError, match="not found"):
            mark_as_balance_paid(db_session, HOUSEHOLD_ID, app.id)


class TestWithdrawals:
    """Test pairing app balance withdrawals with bank deposits."""

    def test_same_day_exact(self, db_session, make_withdrawal, make_deposit):
        withdrawal = make_withdrawal()
        deposit = make_deposit()

        result = find_p2p_matches(db_session, HOUSEHOLD_ID)

        assert len(result.withdrawals) == 1
        entry = result.withdrawals[0]
        assert entry.app_withdrawal.id == withdrawal.id
        assert [d.id for d in entry.bank_candidates] == [deposit.id]
        assert entry.confidence == 100
        assert entry.match_type == "exact"
        assert entry.reason == "exact amount, same day"
        assert result.balance_paid == []

    def test_later_deposit_is_fuzzy(self, db_session, make_withdrawal, make_deposit):
        make_withdrawal(date=date(2026, 3, 10))
        make_deposit(date=date(2026, 3, 12), amount=Decimal("500.50"))

        entry = find_p2p_matches(db_session, HOUSEHOLD_ID).withdrawals[0]

        assert entry.confidence == 70
        assert entry.match_type == "fuzzy"

    def test_deposit_window(self, db_session, make_withdrawal, make_deposit):
        make_withdrawal(date=date(2026, 3, 10))
        make_deposit(date=date(2026, 3, 8))
        make_deposit(date=date(2026, 3, 14))

        assert find_p2p_matches(db_session, HOUSEHOLD_ID).withdrawals == []

    def test_deposit_needs_keyword(self, db_session, make_withdrawal, make_deposit):
        make_withdrawal()
        make_deposit(merchant_raw="SALARY")

        assert find_p2p_matches(db_session, HOUSEHOLD_ID).withdrawals == []

    def test_deposit_claimed_once(self, db_session, make_withdrawal, make_deposit):
        make_withdrawal()
        make_withdrawal()
        make_deposit()

        result = find_p2p_matches(db_session, HOUSEHOLD_ID)

        assert len(result.withdrawals) == 1
        assert result.withdrawals[0].match_type == "exact"

    def test_two_deposits_are_ambiguous(self, db_session, make_withdrawal, make_deposit):
        make_withdrawal()
        make_deposit()
        make_deposit(date=date(2026, 3, 11))

        entry = find_p2p_matches(db_session, HOUSEHOLD_ID).withdrawals[0]

        assert entry.match_type == "ambiguous"
        assert entry.confidence == 70
        assert len(entry.bank_candidates) == 2

    def test_merge_withdrawal(self, db_session, make_withdrawal, make_deposit):
        withdrawal = make_withdrawal()
        deposit = make_deposit()

        merged = merge_withdrawal(db_session, HOUSEHOLD_ID, withdrawal.id, deposit.id)

        assert merged.id == deposit.id
        assert merged.type == TransactionType.transfer
        assert merged.reconciliation_status == ReconciliationStatus.withdrawal_matched
        assert merged.status == TransactionStatus.verified
        assert merged.notes == "Withdrawal from משיכה לחשבון"

        withdrawal = db_session.query(Transaction).filter(Transaction.id == withdrawal.id).one()
        assert withdrawal.is_duplicate is True
        assert withdrawal.duplicate_of == deposit.id
        assert withdrawal.reconciliation_status == ReconciliationStatus.withdrawal_matched

        assert find_p2p_matches(db_session, HOUSEHOLD_ID).withdrawals == []

    def test_merge_rerun_keeps_single_note(self, db_session, make_withdrawal, make_deposit):
        withdrawal = make_withdrawal()
        deposit = make_deposit()

        merge_withdrawal(db_session, HOUSEHOLD_ID, withdrawal.id, deposit.id)
        merged = merge_withdrawal(db_session, HOUSEHOLD_ID, withdrawal.id, deposit.id)

        assert merged.notes == "Withdrawal from משיכה לחשבון"

    def test_withdrawal_must_be_app_row(self, db_session, make_cc_row, make_deposit):
        cc = make_cc_row()
        deposit = make_deposit()
        with pytest.raises(ValueError, match="not a payment-app entry"):
            merge_withdrawal(db_session, HOUSEHOLD_ID, cc.id, deposit.id)

    def test_deposit_must_be_statement_row(self, db_session, make_withdrawal, make_app_row):
        withdrawal = make_withdrawal()
        other = make_app_row(type=TransactionType.income)
        with pytest.raises(ValueError, match="not a bank statement row"):
            merge_withdrawal(db_session, HOUSEHOLD_ID, withdrawal.id, other.id)


class TestReimbursements:
    """Test money received through the app."""

    def test_received_listed(self, db_session, make_app_row):
        received = make_app_row(type=TransactionType.income, merchant_raw="רונית לוי")

        result = find_p2p_matches(db_session, HOUSEHOLD_ID)

        assert [t.id for t in result.reimbursements] == [received.id]
        assert result.balance_paid == []

    def test_apply_reimbursement(self, db_session, make_app_row):
        received = make_app_row(type=TransactionType.income)

        booked = apply_reimbursement(db_session, HOUSEHOLD_ID, received.id, "Dining", notes="dinner split")

        assert booked.type == TransactionType.expense
        assert booked.amount == Decimal("-100.00")
        assert booked.category == "Dining"
        assert booked.category_source == CategorySource.user_manual
        assert booked.p2p_direction == P2PDirection.received
        assert booked.reconciliation_status == ReconciliationStatus.reimbursement
        assert booked.notes == "dinner split"

        again = apply_reimbursement(db_session, HOUSEHOLD_ID, received.id, "Dining")
        assert again.amount == Decimal("-100.00")
        assert find_p2p_matches(db_session, HOUSEHOLD_ID).reimbursements == []


class TestPendingCount:
    def test_counts_each_queue(self, db_session, make_app_row, make_cc_row, make_withdrawal, make_deposit):
        make_app_row()
        make_cc_row()
        make_app_row(amount=Decimal("42.00"))
        make_app_row(type=TransactionType.income, amount=Decimal("60.00"))
        make_withdrawal()
        make_deposit()

        counts = get_pending_reconciliation_count(db_session, HOUSEHOLD_ID)

        assert counts.matches == 1
        assert counts.withdrawals == 1
        assert counts.balance_paid == 1
        assert counts.reimbursements == 1
        assert counts.total == 4

    def test_empty_household(self, db_session):
        assert get_pending_reconciliation_count(db_session, HOUSEHOLD_ID).total == 0
