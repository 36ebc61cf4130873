"""Calendar helpers shared by reasoning and stories.

Pure datetime math. All helpers keep the tzinfo of their input, so a
window computed from an aware "now" compares cleanly with aware record
timestamps.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def get_local_tz() -> timezone:
    """Get the system's local timezone as a fixed-offset timezone."""
    offset = datetime.now().astimezone().utcoffset()
    if offset is None:
        return timezone.utc
    return timezone(offset)


def local_now() -> datetime:
    return datetime.now(get_local_tz())


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(moment: datetime, week_start: int = 0) -> datetime:
    """Midnight of the first day of moment's week.

    Args:
        moment: Any instant inside the week.
        week_start: First weekday, datetime.weekday() numbering (0 = Monday).
    """
    days_back = (moment.weekday() - week_start) % 7
    return start_of_day(moment) - timedelta(days=days_back)


def hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600.0


def format_date(moment: datetime) -> str:
    """Medium date, e.g. "Oct 17, 2026"."""
    return f"{moment:%b} {moment.day}, {moment.year}"


def format_timestamp(moment: datetime) -> str:
    """Medium date with short time, e.g. "Oct 17, 2026 at 3:04 PM"."""
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{format_date(moment)} at {hour}:{moment.minute:02d} {meridiem}"
