"""Clock helpers. All PriceWatch timestamps are timezone-aware UTC."""

from datetime import datetime

import pytz


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(pytz.utc)


def as_utc(value: datetime) -> datetime:
    """Convert a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)
