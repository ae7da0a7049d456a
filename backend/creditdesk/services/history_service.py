"""
Technical service history: audit trail writes and the merged history feed.

History rows are written inside the ledger transaction they describe, each
in its own SAVEPOINT. A history write that fails is rolled back to its
savepoint and logged; the ledger mutation around it still commits.
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import TechnicalServiceHistory, TechnicalServiceSale, TechnicalServiceTransaction
from ..validation import ValidationError
from creditdesk.time_utils import day_bounds, to_utc_z

FEED_TYPES = ("all", "transactions", "sales")


def append_history(
    *,
    technical_service_id: int,
    action_type: str,
    description: str,
    amount_cents: int | None = None,
    previous_balance_cents: int | None = None,
    new_balance_cents: int | None = None,
    reference: str | None = None,
    transaction_id: int | None = None,
    sale_id: int | None = None,
    created_by: str | None = None,
) -> TechnicalServiceHistory | None:
    """
    Append one history row. Returns None if the write failed.

    No updates or deletes of existing rows happen here.
    """
    entry = TechnicalServiceHistory(
        technical_service_id=technical_service_id,
        action_type=action_type,
        description=description[:512],
        amount_cents=amount_cents,
        previous_balance_cents=previous_balance_cents,
        new_balance_cents=new_balance_cents,
        reference=reference,
        transaction_id=transaction_id,
        sale_id=sale_id,
        created_by=created_by,
    )
    try:
        with db.session.begin_nested():
            db.session.add(entry)
    except SQLAlchemyError:
        current_app.logger.exception(
            "History write failed for technical service %s (%s)", technical_service_id, action_type
        )
        return None
    return entry


def _history_item(row: TechnicalServiceHistory) -> dict:
    item = row.to_dict()
    item["type"] = "history"
    return item


def _sale_item(row: TechnicalServiceSale) -> dict:
    item = row.to_dict()
    item["type"] = "sale"
    return item


def _transaction_item(tx: TechnicalServiceTransaction, row: TechnicalServiceHistory | None) -> dict:
    """
    Feed item for one transaction.

    Uses the transaction's own history row when it exists. If that best-effort
    write was lost, an equivalent item is built from the transaction itself.
    """
    if row is not None:
        return _history_item(row)
    return {
        "id": None,
        "technical_service_id": tx.technical_service_id,
        "action_type": tx.transaction_type,
        "description": tx.description or tx.transaction_type.capitalize(),
        "amount_cents": tx.amount_cents,
        "previous_balance_cents": tx.balance_before_cents,
        "new_balance_cents": tx.balance_after_cents,
        "reference": tx.reference_number,
        "transaction_id": tx.id,
        "sale_id": None,
        "created_by": tx.created_by,
        "created_at": to_utc_z(tx.created_at),
        "type": "history",
    }


def get_history(
    technical_service_id: int,
    *,
    feed_type: str = "all",
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    """
    Merged, read-only feed for one account, newest first.

    Sale lines appear as "sale" items and transactions as "history" items,
    one per ledger row. The credit_sale history rows that mirror sale lines
    are left out; account lifecycle rows appear as "history" items. Ties on
    created_at fall back to reverse insertion order.
    """
    if feed_type not in FEED_TYPES:
        raise ValidationError(
            f"type must be one of: {', '.join(FEED_TYPES)}",
            details={"type": feed_type},
        )

    lower, upper = day_bounds(start_date, end_date)
    keyed: list[tuple] = []

    if feed_type in ("all", "transactions"):
        q = db.session.query(TechnicalServiceHistory).filter(
            TechnicalServiceHistory.technical_service_id == technical_service_id,
            TechnicalServiceHistory.sale_id.is_(None),
            TechnicalServiceHistory.transaction_id.is_(None),
        )
        if lower is not None:
            q = q.filter(TechnicalServiceHistory.created_at >= lower)
        if upper is not None:
            q = q.filter(TechnicalServiceHistory.created_at < upper)
        keyed.extend((row.created_at, row.id, _history_item(row)) for row in q.all())

        # transactions come from the ledger table so a lost history row
        # cannot hide one
        q = (
            db.session.query(TechnicalServiceTransaction, TechnicalServiceHistory)
            .outerjoin(
                TechnicalServiceHistory,
                TechnicalServiceHistory.transaction_id == TechnicalServiceTransaction.id,
            )
            .filter(TechnicalServiceTransaction.technical_service_id == technical_service_id)
        )
        if lower is not None:
            q = q.filter(TechnicalServiceTransaction.created_at >= lower)
        if upper is not None:
            q = q.filter(TechnicalServiceTransaction.created_at < upper)
        keyed.extend((tx.created_at, tx.id, _transaction_item(tx, row)) for tx, row in q.all())

    if feed_type in ("all", "sales"):
        q = db.session.query(TechnicalServiceSale).filter(
            TechnicalServiceSale.technical_service_id == technical_service_id,
        )
        if lower is not None:
            q = q.filter(TechnicalServiceSale.created_at >= lower)
        if upper is not None:
            q = q.filter(TechnicalServiceSale.created_at < upper)
        keyed.extend((row.created_at, row.id, _sale_item(row)) for row in q.all())

    keyed.sort(key=lambda k: (k[0], k[1]), reverse=True)
    return [item for _, _, item in keyed]


def list_history_rows(technical_service_id: int) -> list[TechnicalServiceHistory]:
    """Raw audit rows (including credit_sale rows), newest first."""
    return (
        db.session.query(TechnicalServiceHistory)
        .filter_by(technical_service_id=technical_service_id)
        .order_by(TechnicalServiceHistory.created_at.desc(), TechnicalServiceHistory.id.desc())
        .all()
    )


def summarize_feed(items: list[dict]) -> dict:
    """Totals shown under the history list."""
    sales_total = sum(i["total_amount_cents"] for i in items if i["type"] == "sale")
    payments_total = sum(
        -i["amount_cents"] for i in items
        if i["type"] == "history" and i["action_type"] == "payment" and i["amount_cents"] is not None
    )
    newest = items[0]["created_at"] if items else None
    return {
        "count": len(items),
        "sales_total_cents": sales_total,
        "payments_total_cents": payments_total,
        "latest_at": newest,
    }
