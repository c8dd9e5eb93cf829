# venue_booking/domain/calendar.py

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from venue_booking.domain.exceptions import InvalidDateError

FRIDAY = 4
SATURDAY = 5
DEFAULT_BOOKABLE_WEEKDAYS = frozenset({FRIDAY, SATURDAY})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso_date(value: str | None, field_name: str = "date") -> date:
    """Parse a strict ``YYYY-MM-DD`` string."""
    if not value:
        raise InvalidDateError(f"{field_name} is required")
    try:
        parsed = date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise InvalidDateError(f"Invalid {field_name} format. Use YYYY-MM-DD") from exc
    if parsed.isoformat() != value:
        raise InvalidDateError(f"Invalid {field_name} format. Use YYYY-MM-DD")
    return parsed


def is_bookable_weekday(
    event_date: date,
    weekdays: frozenset[int] = DEFAULT_BOOKABLE_WEEKDAYS,
) -> bool:
    return event_date.weekday() in weekdays


def local_today(now: datetime, tz: ZoneInfo) -> date:
    return _as_aware(now).astimezone(tz).date()


def is_past_date(event_date: date, now: datetime, tz: ZoneInfo) -> bool:
    return event_date < local_today(now, tz)


def cutoff_instant(event_date: date, cutoff_time: time, tz: ZoneInfo) -> datetime:
    """
    Wall-clock cutoff on the event date, resolved through the venue zone
    so the UTC offset follows daylight saving for that particular date.
    """
    return datetime.combine(event_date, cutoff_time.replace(tzinfo=None), tzinfo=tz)


def is_past_cutoff(
    event_date: date,
    cutoff_time: time,
    now: datetime,
    tz: ZoneInfo,
) -> bool:
    return _as_aware(now) >= cutoff_instant(event_date, cutoff_time, tz)


def bookable_dates_between(
    start: date,
    end: date,
    weekdays: frozenset[int] = DEFAULT_BOOKABLE_WEEKDAYS,
) -> list[date]:
    days = []
    current = start
    while current <= end:
        if current.weekday() in weekdays:
            days.append(current)
        current += timedelta(days=1)
    return days


def day_name(event_date: date) -> str:
    return event_date.strftime("%A")


def _as_aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
