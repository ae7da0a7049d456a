"""
Transaction recorder tests (payments and balance adjustments).
"""

from dataclasses import replace

import pytest

from creditdesk.extensions import db
from creditdesk.models import TechnicalServiceHistory, TechnicalServiceTransaction
from creditdesk.services import account_service, transaction_service
from creditdesk.services.balance_engine import LimitExceededWarning, apply_delta
from creditdesk.services.concurrency import StorageError
from creditdesk.services.transaction_service import AdjustmentTo, Payment, parse_entry
from creditdesk.validation import NotFoundError, ValidationError


def _transactions(account_id):
    return db.session.query(TechnicalServiceTransaction).filter_by(technical_service_id=account_id).all()


def _set_balance(account, cents):
    result = transaction_service.record_transaction(
        account.id, AdjustmentTo(cents), created_by="tester", confirm_over_limit=True
    )
    assert result.account.current_balance_cents == cents


class TestParseEntry:

    def test_payment(self):
        assert parse_entry("payment", 500) == Payment(500)

    def test_adjustment(self):
        assert parse_entry("adjustment", -20) == AdjustmentTo(-20)

    def test_unknown_type(self):
        with pytest.raises(ValidationError) as exc:
            parse_entry("refund", 100)
        assert exc.value.code == "invalid-type"

    def test_amount_out_of_range(self):
        with pytest.raises(ValidationError) as exc:
            parse_entry("payment", 10_000_000_000)
        assert exc.value.code == "invalid-amount"


class TestPayment:

    def test_payment_reduces_balance(self, account):
        _set_balance(account, 1000)
        result = transaction_service.record_transaction(
            account.id, Payment(300), payment_method="cash", reference_number="R-1", created_by="tester"
        )

        assert result.account.current_balance_cents == 700
        assert result.transaction.amount_cents == -300
        assert result.transaction.entered_amount_cents == 300
        assert result.transaction.balance_before_cents == 1000
        assert result.transaction.balance_after_cents == 700
        assert result.history.action_type == "payment"
        assert result.history.transaction_id == result.transaction.id
        assert result.history.reference == "R-1"

    def test_full_payment_settles(self, account):
        _set_balance(account, 640)
        result = transaction_service.record_transaction(account.id, Payment(640))
        assert result.account.current_balance_cents == 0
        assert result.account.balance_status == "settled"

    def test_zero_payment_rejected(self, account):
        with pytest.raises(ValidationError) as exc:
            transaction_service.record_transaction(account.id, Payment(0))
        assert exc.value.code == "invalid-amount"
        assert _transactions(account.id) == []

    @pytest.mark.parametrize("balance,amount", [(0, 1), (1000, 1001), (250, 100_000)])
    def test_overpayment_rejected_and_balance_unchanged(self, account, balance, amount):
        if balance:
            _set_balance(account, balance)
        before = len(_transactions(account.id))

        with pytest.raises(ValidationError) as exc:
            transaction_service.record_transaction(account.id, Payment(amount))

        assert exc.value.code == "overpayment"
        assert account_service.get_account(account.id).current_balance_cents == balance
        assert len(_transactions(account.id)) == before

    def test_unknown_payment_method(self, account):
        _set_balance(account, 500)
        with pytest.raises(ValidationError):
            transaction_service.record_transaction(account.id, Payment(100), payment_method="barter")


class TestAdjustment:

    def test_adjustment_to_target(self, account):
        _set_balance(account, 1000)
        result = transaction_service.record_transaction(account.id, AdjustmentTo(500), created_by="tester")

        assert result.check.delta_cents == -500
        assert result.account.current_balance_cents == 500
        assert result.transaction.amount_cents == -500
        assert result.transaction.entered_amount_cents == 500

        rows = _transactions(account.id)
        assert [r.amount_cents for r in rows if r.id == result.transaction.id] == [-500]

    def test_no_op_adjustment_writes_nothing(self, account):
        _set_balance(account, 1000)
        tx_before = len(_transactions(account.id))
        history_before = db.session.query(TechnicalServiceHistory).filter_by(technical_service_id=account.id).count()

        with pytest.raises(ValidationError) as exc:
            transaction_service.record_transaction(account.id, AdjustmentTo(1000))

        assert exc.value.code == "no-op"
        assert len(_transactions(account.id)) == tx_before
        assert db.session.query(TechnicalServiceHistory).filter_by(technical_service_id=account.id).count() == history_before

    def test_adjustment_to_negative_balance(self, account):
        result = transaction_service.record_transaction(account.id, AdjustmentTo(-250))
        assert result.account.current_balance_cents == -250
        assert result.account.balance_status == "in_credit"

    def test_upward_adjustment_past_limit_needs_confirmation(self, account):
        with pytest.raises(LimitExceededWarning):
            transaction_service.record_transaction(account.id, AdjustmentTo(1500))
        assert account_service.get_account(account.id).current_balance_cents == 0
        assert _transactions(account.id) == []

        result = transaction_service.record_transaction(account.id, AdjustmentTo(1500), confirm_over_limit=True)
        assert result.account.current_balance_cents == 1500
        assert result.check.limit_exceeded is True


class TestAccountState:

    def test_missing_account(self, db_session):
        with pytest.raises(NotFoundError):
            transaction_service.record_transaction(999_999, Payment(100))

    def test_inactive_account_rejected(self, account):
        _set_balance(account, 500)
        account_service.deactivate_account(account.id, created_by="tester")

        with pytest.raises(ValidationError) as exc:
            transaction_service.record_transaction(account.id, Payment(100))
        assert exc.value.code == "inactive-account"

    def test_stale_balance_check_retried_then_fails(self, account, monkeypatch):
        _set_balance(account, 500)
        calls = []

        def stale_apply_delta(acct, delta):
            calls.append(delta)
            check = apply_delta(acct, delta)
            return replace(check, previous_balance_cents=check.previous_balance_cents + 1)

        monkeypatch.setattr(transaction_service, "apply_delta", stale_apply_delta)

        with pytest.raises(StorageError):
            transaction_service.record_transaction(account.id, Payment(100))

        assert len(calls) == 3
        assert [t.transaction_type for t in _transactions(account.id)] == ["adjustment"]
        assert account_service.get_account(account.id).current_balance_cents == 500


def test_balance_equals_sum_of_deltas(account):
    """Balance always equals the sum of signed transaction amounts."""
    entries = [AdjustmentTo(800), Payment(300), AdjustmentTo(900), Payment(50), AdjustmentTo(-40), AdjustmentTo(0)]
    for entry in entries:
        transaction_service.record_transaction(account.id, entry, confirm_over_limit=True)

    total = sum(r.amount_cents for r in _transactions(account.id))
    assert account_service.get_account(account.id).current_balance_cents == total == 0
