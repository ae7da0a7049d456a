from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Ledger timestamps are stored as naive UTC."""
    return datetime.utcnow()


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string -> naive UTC datetime. Blank input gives None; offsets
    (including a trailing Z) are converted, naive input is taken as UTC.
    """
    raw = (value or "").strip()
    if not raw:
        return None
    if raw[-1] in "zZ":
        raw = f"{raw[:-1]}+00:00"
    return _naive_utc(datetime.fromisoformat(raw))


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse "YYYY-MM-DD" (or a full ISO datetime, keeping only its UTC date)."""
    raw = (value or "").strip()
    if not raw:
        return None
    if len(raw) == 10:
        return date.fromisoformat(raw)
    return parse_iso_datetime(raw).date()


def day_bounds(start: Optional[date], end: Optional[date]) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    Inclusive date range -> half-open [lower, upper) datetimes. The end
    date covers its whole day, so upper is the next midnight.
    """
    lower = datetime.combine(start, time.min) if start else None
    upper = datetime.combine(end + timedelta(days=1), time.min) if end else None
    return lower, upper


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Whole-second ISO-8601 with a trailing 'Z' (naive input is UTC)."""
    if dt is None:
        return None
    stamp = _naive_utc(dt).replace(microsecond=0)
    return f"{stamp.isoformat()}Z"
