"""
auth/clock.py -- UTC time helpers shared by the session layer and every store.

Timestamps are fixed-width ISO 8601 UTC strings so that plain string
comparison (in SQL or in Python) matches chronological order.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_iso(moment: datetime | None = None) -> str:
    """Fixed-width ISO 8601 UTC timestamp (microsecond precision)."""
    moment = moment or utcnow()
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")
