from __future__ import annotations

from datetime import datetime, timedelta, timezone

from visitor_tracker.config import UTC_OFFSET_HOURS

LOCAL_TZ = timezone(timedelta(hours=UTC_OFFSET_HOURS))

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"


def _local(now: datetime | None) -> datetime:
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        # Naive datetimes are taken as UTC, never as host-local time
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(LOCAL_TZ)


def local_now(now: datetime | None = None) -> tuple[str, str]:
    """Return (date_time, date) strings for the current moment in LOCAL_TZ.

    Both strings come from the same instant, so a visit stored with
    ``date_time`` always falls in the ``date`` bucket used for "today".
    """
    local = _local(now)
    return local.strftime(DATETIME_FORMAT), local.strftime(DATE_FORMAT)


def local_date_days_ago(days: int, now: datetime | None = None) -> str:
    """Return the civil date ``days`` before today in LOCAL_TZ."""
    return (_local(now) - timedelta(days=days)).strftime(DATE_FORMAT)
