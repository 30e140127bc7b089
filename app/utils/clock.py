from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime. Patched in tests."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """
    Normalize a datetime to aware UTC.
    Naive values (client input without offset, or rows read back from
    SQLite which drops tzinfo) are taken to already be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
