"""
History reader tests: merged feed, filters, summary.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import text

from creditdesk.extensions import db
from creditdesk.models import TechnicalServiceHistory, TechnicalServiceSale, TechnicalServiceTransaction
from creditdesk.services import credit_sale_service, history_service, transaction_service
from creditdesk.services.credit_sale_service import CartLine
from creditdesk.services.transaction_service import AdjustmentTo, Payment
from creditdesk.validation import ValidationError


@pytest.fixture
def busy_account(account, product, second_product):
    """Account with two sales (three lines) and two transactions."""
    credit_sale_service.compose_sale(account.id, [CartLine(product.id, 2)])
    transaction_service.record_transaction(account.id, Payment(100))
    credit_sale_service.compose_sale(account.id, [CartLine(product.id, 1), CartLine(second_product.id, 1)])
    transaction_service.record_transaction(account.id, AdjustmentTo(400))
    return account


def _created_at_key(item):
    return datetime.fromisoformat(item["created_at"].replace("Z", "+00:00"))


class TestMergedFeed:

    def test_sorted_newest_first(self, busy_account):
        items = history_service.get_history(busy_account.id)
        stamps = [_created_at_key(i) for i in items]
        assert stamps == sorted(stamps, reverse=True)

    def test_one_entry_per_transaction_and_sale_line(self, busy_account):
        items = history_service.get_history(busy_account.id)

        sale_ids = [i["id"] for i in items if i["type"] == "sale"]
        tx_ids = [i["transaction_id"] for i in items if i["type"] == "history" and i["transaction_id"]]

        db_sales = db.session.query(TechnicalServiceSale).filter_by(technical_service_id=busy_account.id).all()
        db_txs = db.session.query(TechnicalServiceTransaction).filter_by(technical_service_id=busy_account.id).all()

        assert sorted(sale_ids) == sorted(s.id for s in db_sales)
        assert sorted(tx_ids) == sorted(t.id for t in db_txs)
        assert len(sale_ids) == 3
        assert len(tx_ids) == 2

    def test_credit_sale_audit_rows_not_duplicated(self, busy_account):
        items = history_service.get_history(busy_account.id)
        assert not any(i["type"] == "history" and i["action_type"] == "credit_sale" for i in items)

        raw = history_service.list_history_rows(busy_account.id)
        assert sum(1 for r in raw if r.action_type == "credit_sale") == 3

    def test_lifecycle_rows_included(self, busy_account):
        items = history_service.get_history(busy_account.id)
        assert items[-1]["action_type"] == "created"

    def test_type_filter(self, busy_account):
        sales = history_service.get_history(busy_account.id, feed_type="sales")
        history = history_service.get_history(busy_account.id, feed_type="transactions")
        assert {i["type"] for i in sales} == {"sale"}
        assert {i["type"] for i in history} == {"history"}
        assert len(sales) + len(history) == len(history_service.get_history(busy_account.id))

    def test_unknown_type(self, account):
        with pytest.raises(ValidationError):
            history_service.get_history(account.id, feed_type="payments")

    def test_empty_for_other_account(self, busy_account):
        assert history_service.get_history(busy_account.id + 1000) == []


class TestDateRange:

    def test_end_date_inclusive(self, busy_account):
        today = datetime.utcnow().date()
        items = history_service.get_history(busy_account.id, start_date=today, end_date=today)
        assert len(items) == len(history_service.get_history(busy_account.id))

    def test_range_excludes_older_rows(self, busy_account):
        old = datetime.utcnow() - timedelta(days=10)
        sale = db.session.query(TechnicalServiceSale).filter_by(technical_service_id=busy_account.id).first()
        sale.created_at = old
        db.session.commit()

        since = (datetime.utcnow() - timedelta(days=1)).date()
        items = history_service.get_history(busy_account.id, feed_type="sales", start_date=since)
        assert sale.id not in [i["id"] for i in items]

        until = (datetime.utcnow() - timedelta(days=5)).date()
        items = history_service.get_history(busy_account.id, feed_type="sales", end_date=until)
        assert [i["id"] for i in items] == [sale.id]


class TestSummary:

    def test_summary_totals(self, busy_account):
        items = history_service.get_history(busy_account.id)
        summary = history_service.summarize_feed(items)

        assert summary["count"] == len(items)
        assert summary["sales_total_cents"] == 400 + 200 + 50
        assert summary["payments_total_cents"] == 100
        assert summary["latest_at"] == items[0]["created_at"]

    def test_empty_summary(self):
        assert history_service.summarize_feed([]) == {
            "count": 0,
            "sales_total_cents": 0,
            "payments_total_cents": 0,
            "latest_at": None,
        }


def test_append_history_only_adds_rows(account):
    before = db.session.query(TechnicalServiceHistory).filter_by(technical_service_id=account.id).count()
    entry = history_service.append_history(
        technical_service_id=account.id,
        action_type="updated",
        description="x" * 600,
        created_by="tester",
    )
    db.session.commit()

    assert entry is not None
    assert len(entry.description) == 512
    assert db.session.query(TechnicalServiceHistory).filter_by(technical_service_id=account.id).count() == before + 1


@pytest.fixture
def failing_payment_history(db_session):
    """History inserts for payments abort at the database."""
    db_session.execute(text(
        "CREATE TRIGGER fail_payment_history BEFORE INSERT ON technical_service_history "
        "WHEN NEW.action_type = 'payment' "
        "BEGIN SELECT RAISE(ABORT, 'history unavailable'); END"
    ))
    db_session.commit()
    yield
    db_session.rollback()
    db_session.execute(text("DROP TRIGGER IF EXISTS fail_payment_history"))
    db_session.commit()


def test_transaction_listed_when_history_write_fails(account, product, failing_payment_history):
    credit_sale_service.compose_sale(account.id, [CartLine(product.id, 2)])
    result = transaction_service.record_transaction(account.id, Payment(150))

    assert result.history is None
    assert db.session.get(TechnicalServiceTransaction, result.transaction.id) is not None

    items = history_service.get_history(account.id, feed_type="transactions")
    payments = [i for i in items if i["transaction_id"] == result.transaction.id]
    assert len(payments) == 1
    assert payments[0]["action_type"] == "payment"
    assert payments[0]["amount_cents"] == -150
    assert payments[0]["previous_balance_cents"] == 400
    assert payments[0]["new_balance_cents"] == 250

    summary = history_service.summarize_feed(history_service.get_history(account.id))
    assert summary["payments_total_cents"] == 150
