# Overview: Service-layer operations for concurrency; encapsulates retry and locking for ledger writes.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class StorageError(Exception):
    """Persistence failure that survived retries. The session has been rolled back."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite use begin_immediate() to serialize writers instead.
    """
    return query.with_for_update()


def begin_immediate() -> None:
    """
    Take SQLite's database write lock before the first read of a
    read-check-write sequence. No-op on other dialects and when the
    connection is already inside a transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts on version_id). Any other failure rolls the
    session back and propagates, so a failed operation never leaves partial
    rows behind. SQLAlchemy errors surface as StorageError.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise StorageError(f"Ledger write failed after {attempts} attempts") from exc
            current_app.logger.warning(
                "Concurrent ledger write conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError("Ledger write failed") from exc
        except Exception:
            db.session.rollback()
            raise
    raise StorageError("Ledger write was not attempted")

