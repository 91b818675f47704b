from datetime import date, datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_date(dt: datetime) -> date:
    """Calendar day of `dt` in the host's local timezone."""
    return dt.astimezone().date()
