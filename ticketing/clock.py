"""Wall-clock helpers shared by the writer and the duplicate guard."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_ms(dt: datetime) -> str:
    """Fixed-width UTC ISO-8601 so string order equals time order in queries."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")
