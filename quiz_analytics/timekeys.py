"""
Calendar keys in Japan time (UTC+9).

Rows keep `created_at` as an absolute UTC instant. Every day/hour/weekday
label is derived here by shifting that instant +9h, and range bounds for
queries are built in the same shifted frame so boundary days are not lost.
"""
from datetime import datetime, timedelta, timezone

JST_OFFSET = timedelta(hours=9)
DATE_FORMAT = "%Y-%m-%d"


def to_instant(value) -> datetime:
    """
    Accept a datetime (naive = UTC) or an ISO-8601 string and return an
    aware UTC datetime.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _shifted(value) -> datetime:
    return to_instant(value) + JST_OFFSET


def date_key(value) -> str:
    return _shifted(value).strftime(DATE_FORMAT)


def hour_key(value) -> str:
    return f"{_shifted(value).hour:02d}"


def weekday_key(value) -> int:
    # isoweekday: Mon=1 .. Sun=7  ->  Sun=0 .. Sat=6
    return _shifted(value).isoweekday() % 7


def format_instant(value: datetime) -> str:
    """Storage representation: UTC, millisecond precision, explicit offset."""
    return to_instant(value).isoformat(timespec="milliseconds")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def today_key(now: datetime | None = None) -> str:
    return date_key(now or now_utc())


def days_ago_key(days: int, now: datetime | None = None) -> str:
    return date_key((now or now_utc()) - timedelta(days=days))


def day_bounds(start_date: str, end_date: str) -> tuple[str, str]:
    """
    Half-open [start, end) UTC bounds covering start_date 00:00 JST up to
    the JST midnight that follows end_date.
    """
    start_local = datetime.strptime(start_date, DATE_FORMAT)
    end_local = datetime.strptime(end_date, DATE_FORMAT) + timedelta(days=1)
    return (
        format_instant(start_local - JST_OFFSET),
        format_instant(end_local - JST_OFFSET),
    )


def _valid_date(raw: str) -> str:
    try:
        return datetime.strptime(raw, DATE_FORMAT).strftime(DATE_FORMAT)
    except ValueError:
        raise ValueError(f"Invalid date: {raw}") from None


def resolve_range(start_date, end_date, default_days: int | None = None,
                  default_start: str | None = None, now: datetime | None = None):
    """
    Apply endpoint defaults to the startDate/endDate query params.

    Returns (start_date, end_date, start_iso, end_iso). Raises ValueError on
    a malformed date.
    """
    if not end_date:
        end_date = today_key(now)
    if not start_date:
        start_date = default_start or days_ago_key(default_days or 30, now)

    start_date = _valid_date(start_date)
    end_date = _valid_date(end_date)
    try:
        start_iso, end_iso = day_bounds(start_date, end_date)
    except OverflowError:
        # 0001-01-01 / 9999-12-31 have no UTC bound once shifted
        raise ValueError(f"Invalid date: {start_date} .. {end_date}") from None
    return start_date, end_date, start_iso, end_iso
