"""Date-window helpers shared by analytics queries and the restore parser.

Stored timestamps are UTC. Windows ("Today", "Week", ...) are defined on the
shop's local calendar and are recomputed from the current time on every call.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo

from ..core.config import get_settings

PERIOD_TODAY = "Today"
PERIOD_WEEK = "Week"
PERIOD_MONTH = "Month"
PERIOD_CUSTOM = "Custom"

PERIOD_CHOICES = (PERIOD_TODAY, PERIOD_WEEK, PERIOD_MONTH, PERIOD_CUSTOM)

_FALLBACK_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y, %H:%M:%S",
    "%d/%m/%Y",
)


def local_tz(tz: tzinfo | None = None) -> tzinfo:
    return tz or get_settings().tzinfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def parse_timestamp(value: object, tz: tzinfo | None = None) -> datetime | None:
    """Parse a cell or JSON value into an aware datetime.

    Naive values are read as local shop time. Returns ``None`` for empty or unreadable
    values and for dates that cannot be expressed in UTC.
    """

    zone = local_tz(tz)
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        if cleaned.endswith(("Z", "z")):
            cleaned = cleaned[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(cleaned)
        except ValueError:
            dt = None
            for fmt in _FALLBACK_FORMATS:
                try:
                    dt = datetime.strptime(cleaned, fmt)
                    break
                except ValueError:
                    continue
            if dt is None:
                return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=zone)
    try:
        dt.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # Dates near year 1 or 9999 cannot be shifted into UTC.
        return None
    return dt


def start_of_day(moment: datetime, tz: tzinfo | None = None) -> datetime:
    zone = local_tz(tz)
    local = moment.astimezone(zone)
    return datetime.combine(local.date(), time.min, tzinfo=zone)


def day_window(day: date | datetime, tz: tzinfo | None = None) -> tuple[datetime, datetime]:
    """Return ``[startOfDay, startOfDay + 24h)`` for the given local day."""

    zone = local_tz(tz)
    if isinstance(day, datetime):
        start = start_of_day(day, zone)
    else:
        start = datetime.combine(day, time.min, tzinfo=zone)
    return start, start + timedelta(hours=24)


def period_window(
    period: str,
    *,
    now: datetime | None = None,
    custom_day: date | None = None,
    tz: tzinfo | None = None,
) -> tuple[datetime, datetime | None]:
    """Resolve a named period into ``(start, end)``.

    ``Today``, ``Week`` (from Monday 00:00) and ``Month`` (from the 1st) are
    open-ended, so ``end`` is ``None``. ``Custom`` is the single chosen day.
    """

    zone = local_tz(tz)
    current = (now or utcnow()).astimezone(zone)
    key = (period or "").strip().lower()

    if key == PERIOD_TODAY.lower():
        return start_of_day(current, zone), None
    if key == PERIOD_WEEK.lower():
        monday = current.date() - timedelta(days=current.weekday())
        return datetime.combine(monday, time.min, tzinfo=zone), None
    if key == PERIOD_MONTH.lower():
        first = current.date().replace(day=1)
        return datetime.combine(first, time.min, tzinfo=zone), None
    if key == PERIOD_CUSTOM.lower():
        if custom_day is None:
            raise ValueError("custom period requires a day")
        return day_window(custom_day, zone)
    raise ValueError(f"Unknown period: {period!r}")


def in_window(moment: datetime, start: datetime, end: datetime | None = None) -> bool:
    if moment < start:
        return False
    return end is None or moment < end


__all__ = [
    "PERIOD_CHOICES",
    "PERIOD_CUSTOM",
    "PERIOD_MONTH",
    "PERIOD_TODAY",
    "PERIOD_WEEK",
    "day_window",
    "in_window",
    "local_tz",
    "parse_timestamp",
    "period_window",
    "start_of_day",
    "utcnow",
]
