"""
Technical service accounts: persistence for the credit ledger.

Owns account CRUD and the read side of transactions and sales. The balance
column is never written here except by verify_balance(fix=True); ledger
movements go through transaction_service and credit_sale_service.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import (
    TechnicalService,
    TechnicalServiceSale,
    TechnicalServiceTransaction,
)
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_technical_service,
    validate_payload,
)
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .history_service import append_history
from .system_log_service import writer as system_log

# no current_balance_cents: only ledger operations move it
TECHNICAL_SERVICE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "name",
        "contact_person",
        "phone",
        "email",
        "address",
        "tax_number",
        "notes",
        "credit_limit_cents",
        "is_active",
    }),
    required_on_create=frozenset({"name"}),
)


@dataclass(frozen=True)
class BalanceVerification:
    technical_service_id: int
    stored_balance_cents: int
    recomputed_balance_cents: int
    fixed: bool = False

    @property
    def drift_cents(self) -> int:
        return self.stored_balance_cents - self.recomputed_balance_cents

    @property
    def is_consistent(self) -> bool:
        return self.drift_cents == 0

    def to_dict(self) -> dict:
        return {
            "technical_service_id": self.technical_service_id,
            "stored_balance_cents": self.stored_balance_cents,
            "recomputed_balance_cents": self.recomputed_balance_cents,
            "drift_cents": self.drift_cents,
            "is_consistent": self.is_consistent,
            "fixed": self.fixed,
        }


def get_account(account_id: int) -> TechnicalService:
    account = db.session.get(TechnicalService, account_id)
    if not account:
        raise NotFoundError(f"Technical service {account_id} not found")
    return account


def get_account_for_update(account_id: int) -> TechnicalService:
    """Load an account under a row lock (SELECT ... FOR UPDATE where supported)."""
    account = lock_for_update(db.session.query(TechnicalService).filter_by(id=account_id)).first()
    if not account:
        raise NotFoundError(f"Technical service {account_id} not found")
    return account


def require_active(account: TechnicalService) -> None:
    if not account.is_active:
        raise ValidationError(
            f"Technical service {account.id} is inactive",
            code="inactive-account",
            details={"technical_service_id": account.id},
        )


def list_accounts(*, include_inactive: bool = False, search: str | None = None) -> list[TechnicalService]:
    q = db.session.query(TechnicalService)
    if not include_inactive:
        q = q.filter(TechnicalService.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            or_(
                TechnicalService.name.ilike(pattern),
                TechnicalService.contact_person.ilike(pattern),
                TechnicalService.tax_number.ilike(pattern),
            )
        )
    return q.order_by(TechnicalService.name.asc(), TechnicalService.id.asc()).all()


def create_account(payload: dict, *, created_by: str | None = None) -> TechnicalService:
    patch = validate_payload(
        model=TechnicalService,
        payload=payload,
        policy=TECHNICAL_SERVICE_POLICY,
        partial=False,
    )
    enforce_rules_technical_service(patch)

    def _op():
        account = TechnicalService(**patch)
        account.current_balance_cents = 0
        db.session.add(account)
        db.session.flush()

        append_history(
            technical_service_id=account.id,
            action_type="created",
            description=f"Technical service created: {account.name}",
            previous_balance_cents=0,
            new_balance_cents=0,
            created_by=created_by,
        )
        db.session.commit()
        return account

    account = run_with_retry(_op)

    system_log.log(
        action="created",
        entity_type="technical_service",
        entity_id=account.id,
        description=f"Technical service created: {account.name}",
        user_id=created_by,
        new_values=account.to_dict(),
    )
    return account


def update_account(account_id: int, payload: dict, *, created_by: str | None = None) -> TechnicalService:
    patch = validate_payload(
        model=TechnicalService,
        payload=payload,
        policy=TECHNICAL_SERVICE_POLICY,
        partial=True,
    )
    enforce_rules_technical_service(patch)

    def _op():
        begin_immediate()
        account = get_account_for_update(account_id)
        before = account.to_dict()

        changed = {k: v for k, v in patch.items() if getattr(account, k) != v}
        for key, value in changed.items():
            setattr(account, key, value)

        if changed:
            db.session.flush()
            append_history(
                technical_service_id=account.id,
                action_type="updated",
                description=f"Technical service updated: {account.name} ({', '.join(sorted(changed))})",
                previous_balance_cents=account.current_balance_cents,
                new_balance_cents=account.current_balance_cents,
                created_by=created_by,
            )
        db.session.commit()
        return account, before, changed

    account, before, changed = run_with_retry(_op)

    if changed:
        system_log.log(
            action="updated",
            entity_type="technical_service",
            entity_id=account.id,
            description=f"Technical service updated: {account.name}",
            user_id=created_by,
            old_values={k: before[k] for k in changed},
            new_values=changed,
        )
    return account


def deactivate_account(account_id: int, *, created_by: str | None = None) -> TechnicalService:
    """
    Soft delete: the account disappears from active lists and refuses new
    ledger activity, but its balance and audit trail are preserved.
    """
    def _op():
        begin_immediate()
        account = get_account_for_update(account_id)
        was_active = account.is_active
        if was_active:
            account.is_active = False
            db.session.flush()
            append_history(
                technical_service_id=account.id,
                action_type="deleted",
                description=f"Technical service deactivated: {account.name}",
                previous_balance_cents=account.current_balance_cents,
                new_balance_cents=account.current_balance_cents,
                created_by=created_by,
            )
        db.session.commit()
        return account, was_active

    account, was_active = run_with_retry(_op)

    if was_active:
        system_log.log(
            action="deleted",
            entity_type="technical_service",
            entity_id=account.id,
            description=f"Technical service deactivated: {account.name}",
            user_id=created_by,
            old_values={"is_active": True},
            new_values={"is_active": False},
        )
    return account


def purge_account(account_id: int, *, created_by: str | None = None) -> dict:
    """
    Hard delete an account together with its transactions, sales and
    history. Operator CLI only; there is no HTTP route for this.
    """
    def _op():
        begin_immediate()
        account = get_account_for_update(account_id)
        counts = {
            "transactions": len(account.transactions),
            "sales": len(account.sales),
            "history": len(account.history),
        }
        snapshot = account.to_dict()
        db.session.delete(account)
        db.session.commit()
        return snapshot, counts

    snapshot, counts = run_with_retry(_op)
    current_app.logger.warning(
        "Technical service %s purged with %s", account_id, counts
    )

    system_log.log(
        action="purged",
        entity_type="technical_service",
        entity_id=account_id,
        description=f"Technical service purged: {snapshot['name']}",
        user_id=created_by,
        old_values={"account": snapshot, "removed": counts},
    )
    return counts


def list_transactions(account_id: int) -> list[TechnicalServiceTransaction]:
    get_account(account_id)
    return (
        db.session.query(TechnicalServiceTransaction)
        .filter_by(technical_service_id=account_id)
        .order_by(TechnicalServiceTransaction.created_at.desc(), TechnicalServiceTransaction.id.desc())
        .all()
    )


def list_sales(account_id: int) -> list[TechnicalServiceSale]:
    get_account(account_id)
    return (
        db.session.query(TechnicalServiceSale)
        .filter_by(technical_service_id=account_id)
        .order_by(TechnicalServiceSale.created_at.desc(), TechnicalServiceSale.id.desc())
        .all()
    )


def recompute_balance(account_id: int) -> int:
    """Re-derive the balance from the ledger rows: signed transactions plus sale totals."""
    tx_total = (
        db.session.query(func.coalesce(func.sum(TechnicalServiceTransaction.amount_cents), 0))
        .filter(TechnicalServiceTransaction.technical_service_id == account_id)
        .scalar()
    )
    sales_total = (
        db.session.query(func.coalesce(func.sum(TechnicalServiceSale.total_amount_cents), 0))
        .filter(TechnicalServiceSale.technical_service_id == account_id)
        .scalar()
    )
    return int(tx_total) + int(sales_total)


def verify_balance(account_id: int, *, fix: bool = False, created_by: str | None = None) -> BalanceVerification:
    """
    Compare the stored balance with the ledger. With fix=True a drifted
    balance is overwritten by the recomputed value and the correction is
    written to history.
    """
    if not fix:
        account = get_account(account_id)
        return BalanceVerification(
            technical_service_id=account.id,
            stored_balance_cents=account.current_balance_cents,
            recomputed_balance_cents=recompute_balance(account.id),
        )

    def _op():
        begin_immediate()
        account = get_account_for_update(account_id)
        stored = account.current_balance_cents
        recomputed = recompute_balance(account.id)
        fixed = stored != recomputed
        if fixed:
            current_app.logger.warning(
                "Balance drift on technical service %s: stored=%s recomputed=%s",
                account.id, stored, recomputed,
            )
            account.current_balance_cents = recomputed
            db.session.flush()
            append_history(
                technical_service_id=account.id,
                action_type="updated",
                description=f"Balance recomputed from ledger (drift {stored - recomputed})",
                previous_balance_cents=stored,
                new_balance_cents=recomputed,
                created_by=created_by,
            )
        db.session.commit()
        return BalanceVerification(
            technical_service_id=account.id,
            stored_balance_cents=stored,
            recomputed_balance_cents=recomputed,
            fixed=fixed,
        )

    return run_with_retry(_op)


def account_summary() -> dict:
    """Portfolio totals for the technical services tab."""
    accounts = db.session.query(TechnicalService).filter(TechnicalService.is_active.is_(True)).all()
    return {
        "active_accounts": len(accounts),
        "total_outstanding_cents": sum(a.current_balance_cents for a in accounts if a.current_balance_cents > 0),
        "total_in_credit_cents": sum(-a.current_balance_cents for a in accounts if a.current_balance_cents < 0),
        "total_credit_limit_cents": sum(a.credit_limit_cents for a in accounts),
        "over_limit_accounts": sum(1 for a in accounts if a.current_balance_cents > a.credit_limit_cents),
    }
