"""Server timestamps: unix seconds in, readable strings out."""

from __future__ import annotations

from datetime import datetime, timezone

import pendulum

# Strict output format: YYYY-MM-DD HH:MM:SS±TZ
STRICT_FORMAT = "%Y-%m-%d %H:%M:%S%z"


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def now_timestamp() -> int:
    """Return the current time as a server timestamp (whole unix seconds)."""
    return int(now_utc().timestamp())


def from_timestamp(timestamp: int) -> datetime:
    """Convert a server timestamp into a timezone-aware UTC datetime."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def format_timestamp(timestamp: int) -> str:
    """Format a server timestamp in the strict output format.

    Output: YYYY-MM-DD HH:MM:SS+0000
    """
    return from_timestamp(timestamp).strftime(STRICT_FORMAT)


def describe_age(timestamp: int) -> str:
    """Describe how long ago a timestamp was, e.g. ``"5 minutes ago"``.

    A zero timestamp means "never".
    """
    if timestamp <= 0:
        return "never"
    return pendulum.from_timestamp(timestamp).diff_for_humans()
