"""
Payments and balance adjustments on technical service accounts.

The amount an operator types means different things per transaction type,
so each type is its own entry class with its own conversion to a signed
ledger delta:

- Payment(amount_cents): money received; must be > 0 and no more than is
  owed. Delta = -amount.
- AdjustmentTo(target_balance_cents): the balance the account should end
  up with. Delta = target - current. A zero delta is rejected.

"Pay full balance" in the UI is just Payment(current_balance_cents).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union

from flask import current_app

from ..extensions import db
from ..models import TechnicalService, TechnicalServiceHistory, TechnicalServiceTransaction
from ..models.technical_services import PAYMENT_METHODS, TRANSACTION_TYPES
from ..validation import ValidationError, enforce_amount_range
from .account_service import get_account_for_update, require_active
from .balance_engine import BalanceCheck, apply_delta, commit_balance, require_within_limit
from .concurrency import begin_immediate, run_with_retry
from .history_service import append_history
from .system_log_service import writer as system_log


@dataclass(frozen=True)
class Payment:
    amount_cents: int
    transaction_type: ClassVar[str] = "payment"

    @property
    def entered_amount_cents(self) -> int:
        return self.amount_cents

    def to_delta(self, current_balance_cents: int) -> int:
        if self.amount_cents <= 0:
            raise ValidationError(
                "Payment amount must be greater than zero",
                code="invalid-amount",
                details={"amount_cents": self.amount_cents},
            )
        if self.amount_cents > current_balance_cents:
            raise ValidationError(
                "Payment exceeds the outstanding balance",
                code="overpayment",
                details={
                    "amount_cents": self.amount_cents,
                    "current_balance_cents": current_balance_cents,
                },
            )
        return -self.amount_cents


@dataclass(frozen=True)
class AdjustmentTo:
    target_balance_cents: int
    transaction_type: ClassVar[str] = "adjustment"

    @property
    def entered_amount_cents(self) -> int:
        return self.target_balance_cents

    def to_delta(self, current_balance_cents: int) -> int:
        delta = self.target_balance_cents - current_balance_cents
        if delta == 0:
            raise ValidationError(
                "Adjustment does not change the balance",
                code="no-op",
                details={"target_balance_cents": self.target_balance_cents},
            )
        return delta


LedgerEntry = Union[Payment, AdjustmentTo]


def parse_entry(transaction_type: str | None, amount_cents: int) -> LedgerEntry:
    if transaction_type == "payment":
        enforce_amount_range(amount_cents, "amount_cents", allow_negative=True)
        return Payment(amount_cents)
    if transaction_type == "adjustment":
        enforce_amount_range(amount_cents, "amount_cents", allow_negative=True)
        return AdjustmentTo(amount_cents)
    raise ValidationError(
        f"type must be one of: {', '.join(TRANSACTION_TYPES)}",
        code="invalid-type",
        details={"type": transaction_type},
    )


@dataclass(frozen=True)
class TransactionResult:
    transaction: TechnicalServiceTransaction
    history: TechnicalServiceHistory | None
    account: TechnicalService
    check: BalanceCheck

    def to_dict(self) -> dict:
        return {
            "transaction": self.transaction.to_dict(),
            "history": self.history.to_dict() if self.history else None,
            "technical_service": self.account.to_dict(),
            "balance": self.check.to_dict(),
        }


def _describe(entry: LedgerEntry, check: BalanceCheck, description: str | None) -> str:
    if description:
        return description
    if isinstance(entry, Payment):
        return f"Payment received: {entry.amount_cents} cents"
    return f"Balance adjusted from {check.previous_balance_cents} to {check.new_balance_cents} cents"


def record_transaction(
    account_id: int,
    entry: LedgerEntry,
    *,
    description: str | None = None,
    reference_number: str | None = None,
    payment_method: str | None = None,
    created_by: str | None = None,
    confirm_over_limit: bool = False,
) -> TransactionResult:
    """
    Record a payment or adjustment as one unit:
    transaction row + new balance + history row, or nothing at all.

    Raises ValidationError, LimitExceededWarning (only an upward adjustment
    can trigger it), NotFoundError or StorageError.
    """
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"payment_method": payment_method},
        )

    def _op():
        begin_immediate()
        account = get_account_for_update(account_id)
        require_active(account)

        delta = entry.to_delta(account.current_balance_cents)
        check = apply_delta(account, delta)
        require_within_limit(check, confirmed=confirm_over_limit)

        tx = TechnicalServiceTransaction(
            technical_service_id=account.id,
            transaction_type=entry.transaction_type,
            amount_cents=check.delta_cents,
            entered_amount_cents=entry.entered_amount_cents,
            balance_before_cents=check.previous_balance_cents,
            balance_after_cents=check.new_balance_cents,
            description=description,
            reference_number=reference_number,
            payment_method=payment_method,
            created_by=created_by,
        )
        db.session.add(tx)
        commit_balance(account, check)
        db.session.flush()

        history = append_history(
            technical_service_id=account.id,
            action_type=entry.transaction_type,
            description=_describe(entry, check, description),
            amount_cents=check.delta_cents,
            previous_balance_cents=check.previous_balance_cents,
            new_balance_cents=check.new_balance_cents,
            reference=reference_number,
            transaction_id=tx.id,
            created_by=created_by,
        )
        db.session.commit()
        return TransactionResult(transaction=tx, history=history, account=account, check=check)

    result = run_with_retry(_op)

    if result.check.limit_exceeded:
        current_app.logger.info(
            "Credit limit override confirmed on technical service %s by %s (new balance %s, limit %s)",
            account_id, created_by, result.check.new_balance_cents, result.check.credit_limit_cents,
        )

    system_log.log(
        action=entry.transaction_type,
        entity_type="technical_service",
        entity_id=account_id,
        description=_describe(entry, result.check, description),
        user_id=created_by,
        old_values={"current_balance_cents": result.check.previous_balance_cents},
        new_values={
            "current_balance_cents": result.check.new_balance_cents,
            "transaction_id": result.transaction.id,
        },
    )
    return result
