"""Time helpers for consistent UTC timestamps across services."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC datetime with timezone attached."""

    return datetime.now(timezone.utc)


def utc_now_ms() -> int:
    """Return current UTC time as epoch milliseconds, the exchange's time unit."""

    return int(utc_now().timestamp() * 1000)
