"""Calendar arithmetic on naive local wall-clock datetimes.

All event times in lumen_calendar are timezone-naive local datetimes. The
helpers here implement the day/week/month boundaries used by the view
ranges, plus parsing and formatting of the ``YYYY-MM-DDTHH:MM`` wire format.
Weeks start on Monday.
"""

from __future__ import annotations

import datetime
import logging
import os
from typing import Optional, Union

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
LOCAL_FORMAT = "%Y-%m-%dT%H:%M"

DateLike = Union[datetime.date, datetime.datetime]


def _as_datetime(value: DateLike) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    return datetime.datetime.combine(value, datetime.time.min)


def start_of_day(value: DateLike) -> datetime.datetime:
    """Return midnight of the day containing ``value``."""
    return datetime.datetime.combine(_as_datetime(value).date(), datetime.time.min)


def end_of_day(value: DateLike) -> datetime.datetime:
    """Return the last representable instant (23:59:59.999999) of the day."""
    return datetime.datetime.combine(_as_datetime(value).date(), datetime.time.max)


def start_of_week(value: DateLike) -> datetime.datetime:
    """Return Monday 00:00 of the week containing ``value``."""
    day = start_of_day(value)
    return day - datetime.timedelta(days=day.weekday())


def end_of_week(value: DateLike) -> datetime.datetime:
    """Return Sunday 23:59:59.999999 of the week containing ``value``."""
    return end_of_day(start_of_week(value) + datetime.timedelta(days=6))


def start_of_month(value: DateLike) -> datetime.datetime:
    return start_of_day(_as_datetime(value).replace(day=1))


def end_of_month(value: DateLike) -> datetime.datetime:
    first = start_of_month(value)
    return end_of_day(first + relativedelta(months=1) - datetime.timedelta(days=1))


def add_months(value: DateLike, months: int) -> datetime.datetime:
    """Add calendar months, clamping to the last valid day of the target month.

    Jan 31 + 1 month is Feb 28 (or Feb 29 in leap years), never Mar 2/3.
    """
    return _as_datetime(value) + relativedelta(months=months)


def minutes_since(moment: datetime.datetime, origin: datetime.datetime) -> int:
    """Whole minutes elapsed from ``origin`` to ``moment`` (may be negative)."""
    delta = moment - origin
    return int(delta.total_seconds() // 60)


def to_local_naive(value: datetime.datetime) -> datetime.datetime:
    """Convert an aware datetime to naive local wall-clock; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def parse_local_datetime(value: Union[str, DateLike, None]) -> Optional[datetime.datetime]:
    """Parse an ISO-8601 value into a naive local datetime.

    Accepts ``YYYY-MM-DD``, ``YYYY-MM-DDTHH:MM`` (with optional seconds) and
    offset-qualified strings, which are converted to local wall-clock time.

    Args:
        value: String, date or datetime to parse

    Returns:
        Naive datetime, or None if the value is missing or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return to_local_naive(value)
    if isinstance(value, datetime.date):
        return _as_datetime(value)
    if not isinstance(value, str) or not value.strip():
        return None

    try:
        parsed = date_parser.isoparse(value.strip())
    except (ValueError, OverflowError) as e:
        logger.debug("Unparseable datetime %r: %s", value, e)
        return None
    return to_local_naive(parsed)


def format_local(value: datetime.datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM`` (minute precision)."""
    return value.strftime(LOCAL_FORMAT)


def now_local() -> datetime.datetime:
    """Return the current local wall-clock time.

    Can be overridden for testing via the LUMEN_TEST_TIME environment
    variable (ISO 8601, e.g. "2024-06-01T08:00").
    """
    test_time = os.environ.get("LUMEN_TEST_TIME")
    if test_time:
        parsed = parse_local_datetime(test_time)
        if parsed is not None:
            return parsed
        logger.warning("Failed to parse LUMEN_TEST_TIME=%r; using system clock", test_time)
    return datetime.datetime.now()


def today() -> datetime.date:
    return now_local().date()


def span_intersects(
    start: datetime.datetime,
    end: datetime.datetime,
    window_start: datetime.datetime,
    window_end: datetime.datetime,
) -> bool:
    """Check whether a span touches the inclusive window ``[window_start, window_end]``.

    True when the span starts inside the window, ends inside it, or covers it
    entirely.
    """
    return (
        window_start <= start <= window_end
        or window_start <= end <= window_end
        or (start <= window_start and end >= window_end)
    )
