"""Instant helpers: every timestamp in the inventory is an aware UTC datetime."""
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive values are taken to be UTC already; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value) -> datetime:
    '''Parses an ISO-8601 string (or passes a datetime through) into an aware UTC datetime.'''
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid timestamp: {value!r}")
    # fromisoformat only learned the 'Z' suffix in 3.11
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return as_utc(datetime.fromisoformat(value))


def format_instant(value: datetime) -> str:
    return as_utc(value).isoformat()
