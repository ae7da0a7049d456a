# backend/creditdesk/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/creditdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///creditdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Ledger writes retry on lock contention and optimistic-lock conflicts
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.1"))

    # System log sink (audit trail for operator actions)
    SYSTEM_LOG_ENABLED = _env_bool("SYSTEM_LOG_ENABLED", True)
    SYSTEM_LOG_BUFFER_SIZE = int(os.environ.get("SYSTEM_LOG_BUFFER_SIZE", "500"))

    # Operator identity used when no X-Operator header is sent (None = header required)
    DEFAULT_OPERATOR = os.environ.get("DEFAULT_OPERATOR") or None

    CORS_ALLOWED_ORIGINS = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:4173",
        "http://127.0.0.1:4173",
    }
