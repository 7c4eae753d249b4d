"""Date/time helpers. Everything stored is UTC; local time only matters for expiry."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from phone_assets.core.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_today(tz_name: str | None = None) -> date:
    return datetime.now(ZoneInfo(tz_name or settings.VERIFICATION_TIMEZONE)).date()


def compute_token_expiry(
    duration_days: int,
    *,
    now: datetime | None = None,
    tz_name: str | None = None,
) -> datetime:
    """
    End of the local day `duration_days` after today, returned in UTC.

    A 7-day campaign started on Monday 10:00 Asia/Shanghai expires the
    following Monday at 23:59:59 Shanghai time.
    """
    tz = ZoneInfo(tz_name or settings.VERIFICATION_TIMEZONE)
    local_now = (now or utcnow()).astimezone(tz)
    expiry_day = local_now.date() + timedelta(days=duration_days)
    local_expiry = datetime.combine(expiry_day, time(23, 59, 59), tzinfo=tz)
    return local_expiry.astimezone(timezone.utc)


def is_expired(expires_at: datetime, *, now: datetime | None = None) -> bool:
    return ensure_utc(expires_at) < (now or utcnow())
