from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo

# Every provider gets the same window for a performance
DEFAULT_EVENT_DURATION = timedelta(hours=2)

FRENCH_MONTHS = [
    'janvier', 'février', 'mars', 'avril', 'mai', 'juin',
    'juillet', 'août', 'septembre', 'octobre', 'novembre', 'décembre',
]


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every stored timestamp takes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def event_time_window(event_date: date, tz_name: str) -> Tuple[datetime, datetime]:
    """Return (start, end) for an event held on ``event_date``."""
    start = datetime.combine(event_date, time(0, 0), tzinfo=ZoneInfo(tz_name))
    return start, start + DEFAULT_EVENT_DURATION


def format_french_date(value: Optional[Union[date, datetime, str]]) -> str:
    """Format a date the way the public site shows it, e.g. ``20 SEPTEMBRE 2025``."""
    if not value:
        return 'Date non disponible'
    if isinstance(value, str):
        # YYYY-MM-DD is a local calendar date, never shift it through a timezone
        value = date.fromisoformat(value[:10])
    return f"{value.day:02d} {FRENCH_MONTHS[value.month - 1]} {value.year}".upper()


def month_bounds(today: date) -> Tuple[date, date]:
    """First and last day of the month containing ``today``."""
    start = today.replace(day=1)
    if today.month == 12:
        next_month = start.replace(year=today.year + 1, month=1)
    else:
        next_month = start.replace(month=today.month + 1)
    return start, next_month - timedelta(days=1)
