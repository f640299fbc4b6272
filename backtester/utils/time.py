"""Time utilities for UTC-aware timestamps.

Run metadata timestamps are timezone-aware (UTC).
Use utc_now() instead of datetime.now() / datetime.utcnow().
"""
from datetime import datetime, timezone

import pandas as pd

__all__ = ["utc_now", "to_utc_timestamp"]


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime.

    Example ISO format: 2025-11-17T18:45:04.891604+00:00
    """
    return datetime.now(timezone.utc)


def to_utc_timestamp(value) -> pd.Timestamp:
    """Coerce a date/datetime/string into a UTC pandas Timestamp.

    Naive values are assumed to already be UTC.
    """
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")
