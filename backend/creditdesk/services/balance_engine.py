"""
Balance engine for technical service accounts.

Pure arithmetic over an account snapshot: it computes what the balance would
become and whether that breaches the credit limit. Callers decide whether to
proceed and are responsible for persisting the result.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm.exc import StaleDataError

from ..models import TechnicalService


@dataclass(frozen=True)
class BalanceCheck:
    previous_balance_cents: int
    delta_cents: int
    new_balance_cents: int
    credit_limit_cents: int
    limit_exceeded: bool

    @property
    def exceed_amount_cents(self) -> int:
        return max(0, self.new_balance_cents - self.credit_limit_cents)

    def to_dict(self) -> dict:
        return {
            "previous_balance_cents": self.previous_balance_cents,
            "delta_cents": self.delta_cents,
            "new_balance_cents": self.new_balance_cents,
            "credit_limit_cents": self.credit_limit_cents,
            "limit_exceeded": self.limit_exceeded,
            "exceed_amount_cents": self.exceed_amount_cents,
        }


class LimitExceededWarning(Exception):
    """
    The operation would push the balance above the credit limit.

    Not a hard failure: re-submitting with explicit operator confirmation
    turns it into a normal write.
    """
    def __init__(self, check: BalanceCheck):
        super().__init__(
            f"Credit limit would be exceeded by {check.exceed_amount_cents} cents"
        )
        self.check = check

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "code": "limit-exceeded",
            "requires_confirmation": True,
            "details": self.check.to_dict(),
        }


def apply_delta(account: TechnicalService, delta_cents: int) -> BalanceCheck:
    """
    Compute the balance after applying a signed delta.

    Positive delta: the service owes more. The limit only matters when the
    balance grows; paying down an account that is already over its limit is
    always allowed. Negative balances (overpaid) are allowed.
    """
    previous = account.current_balance_cents
    new_balance = previous + delta_cents
    return BalanceCheck(
        previous_balance_cents=previous,
        delta_cents=delta_cents,
        new_balance_cents=new_balance,
        credit_limit_cents=account.credit_limit_cents,
        limit_exceeded=delta_cents > 0 and new_balance > account.credit_limit_cents,
    )


def require_within_limit(check: BalanceCheck, *, confirmed: bool) -> None:
    if check.limit_exceeded and not confirmed:
        raise LimitExceededWarning(check)


def commit_balance(account: TechnicalService, check: BalanceCheck) -> None:
    """
    Write the checked balance onto the (locked) account row.

    Refuses a stale check: if the balance moved since the check was taken the
    caller must re-read and re-check, which run_with_retry does.
    """
    if account.current_balance_cents != check.previous_balance_cents:
        raise StaleDataError(
            f"Stale balance check for technical service {account.id}: "
            f"expected {check.previous_balance_cents}, found {account.current_balance_cents}"
        )
    account.current_balance_cents = check.new_balance_cents
