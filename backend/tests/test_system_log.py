"""
System log sink tests.

Verifies:
- Entries are written after the ledger commit
- A failing flush never undoes the ledger mutation and re-queues entries
- Buffer overflow is counted as dead letters
"""

import json

from sqlalchemy.exc import SQLAlchemyError

from creditdesk.extensions import db
from creditdesk.models import SystemLog
from creditdesk.services import account_service, system_log_service, transaction_service
from creditdesk.services.system_log_service import PendingLog, writer
from creditdesk.services.transaction_service import AdjustmentTo


def _boom(self):
    raise SQLAlchemyError("log table unavailable")


def _record(n=1):
    for i in range(n):
        writer.record(action="updated", entity_type="technical_service", entity_id=i, description=f"entry {i}")


class TestWriter:

    def test_record_then_flush(self, db_session):
        _record(2)
        assert writer.pending == 2
        assert writer.flush() == 2
        assert writer.pending == 0
        assert db.session.query(SystemLog).count() == 2

    def test_values_stored_as_json(self, db_session):
        writer.log(
            action="updated",
            entity_type="technical_service",
            entity_id=1,
            description="limit raised",
            user_id="tester",
            old_values={"credit_limit_cents": 1000},
            new_values={"credit_limit_cents": 2000},
        )
        row = db.session.query(SystemLog).one()
        assert json.loads(row.old_values) == {"credit_limit_cents": 1000}
        assert json.loads(row.new_values) == {"credit_limit_cents": 2000}
        assert row.user_id == "tester"

    def test_disabled_writer_drops_entries(self, db_session):
        writer.enabled = False
        _record(3)
        assert writer.pending == 0
        assert writer.flush() == 0

    def test_failed_flush_requeues(self, db_session, monkeypatch):
        _record(2)
        monkeypatch.setattr(PendingLog, "to_model", _boom)

        assert writer.flush() == 0
        assert writer.pending == 2
        assert writer.failed_flush_count == 1

        monkeypatch.undo()
        assert writer.flush() == 2
        assert [r.description for r in db.session.query(SystemLog).order_by(SystemLog.id).all()] == ["entry 0", "entry 1"]

    def test_overflow_counts_dead_letters(self, db_session):
        writer.max_buffer = 2
        _record(5)
        assert writer.pending == 2
        assert writer.dead_letter_count == 3
        assert writer.stats() == {
            "enabled": True,
            "pending": 2,
            "dead_letter_count": 3,
            "failed_flush_count": 0,
        }


def test_ledger_commit_survives_log_failure(account, monkeypatch):
    monkeypatch.setattr(PendingLog, "to_model", _boom)

    result = transaction_service.record_transaction(account.id, AdjustmentTo(300), created_by="tester")

    assert result.account.current_balance_cents == 300
    assert account_service.get_account(account.id).current_balance_cents == 300
    assert writer.pending == 1
    assert writer.failed_flush_count == 1


def test_list_system_logs_filters(account):
    transaction_service.record_transaction(account.id, AdjustmentTo(300), created_by="tester")

    rows = system_log_service.list_system_logs(entity_type="technical_service", entity_id=account.id)
    assert [r.action for r in rows] == ["adjustment", "created"]

    rows = system_log_service.list_system_logs(action="adjustment")
    assert len(rows) == 1
    assert json.loads(rows[0].new_values)["current_balance_cents"] == 300


def test_list_system_logs_limit(account):
    transaction_service.record_transaction(account.id, AdjustmentTo(300))
    assert len(system_log_service.list_system_logs(limit=1)) == 1
