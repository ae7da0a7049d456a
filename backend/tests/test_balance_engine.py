"""
Balance engine tests.

Verifies:
- New balance is previous + signed delta
- The limit only trips when the balance grows past it
- Stale checks are refused on commit
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from creditdesk.models import TechnicalService
from creditdesk.services.balance_engine import (
    LimitExceededWarning,
    apply_delta,
    commit_balance,
    require_within_limit,
)


def _account(balance: int, limit: int) -> TechnicalService:
    return TechnicalService(id=1, name="Snapshot", current_balance_cents=balance, credit_limit_cents=limit)


class TestApplyDelta:

    def test_sale_within_limit(self):
        check = apply_delta(_account(0, 1000), 1000)
        assert check.new_balance_cents == 1000
        assert check.limit_exceeded is False
        assert check.exceed_amount_cents == 0

    def test_sale_over_limit(self):
        check = apply_delta(_account(1000, 1000), 50)
        assert check.new_balance_cents == 1050
        assert check.limit_exceeded is True
        assert check.exceed_amount_cents == 50

    def test_paydown_of_over_limit_account_is_not_flagged(self):
        check = apply_delta(_account(1500, 1000), -100)
        assert check.new_balance_cents == 1400
        assert check.limit_exceeded is False

    def test_negative_balance_allowed(self):
        check = apply_delta(_account(100, 1000), -300)
        assert check.new_balance_cents == -200
        assert check.limit_exceeded is False

    def test_does_not_mutate_account(self):
        account = _account(300, 1000)
        apply_delta(account, 200)
        assert account.current_balance_cents == 300


class TestLimitConfirmation:

    def test_unconfirmed_raises_with_details(self):
        check = apply_delta(_account(1000, 1000), 50)
        with pytest.raises(LimitExceededWarning) as exc:
            require_within_limit(check, confirmed=False)
        body = exc.value.to_dict()
        assert body["code"] == "limit-exceeded"
        assert body["requires_confirmation"] is True
        assert body["details"]["new_balance_cents"] == 1050

    def test_confirmed_passes(self):
        check = apply_delta(_account(1000, 1000), 50)
        require_within_limit(check, confirmed=True)


class TestCommitBalance:

    def test_commit_writes_new_balance(self):
        account = _account(400, 1000)
        check = apply_delta(account, -100)
        commit_balance(account, check)
        assert account.current_balance_cents == 300

    def test_stale_check_refused(self):
        account = _account(400, 1000)
        check = apply_delta(account, -100)
        account.current_balance_cents = 500
        with pytest.raises(StaleDataError):
            commit_balance(account, check)
        assert account.current_balance_cents == 500
