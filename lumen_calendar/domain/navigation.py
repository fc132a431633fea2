"""Visible ranges and date stepping for the day, week and month views."""

from __future__ import annotations

import datetime
from typing import Union

from lumen_calendar.calendar.datetime_utils import (
    add_months,
    end_of_day,
    end_of_month,
    end_of_week,
    start_of_day,
    start_of_month,
    start_of_week,
)
from lumen_calendar.calendar.models import ViewMode

MONTH_GRID_DAYS = 42


def visible_range(
    selected_date: datetime.date, view_mode: Union[ViewMode, str]
) -> tuple[datetime.datetime, datetime.datetime]:
    """Inclusive window shown for ``selected_date`` in the given view.

    Raises:
        ValueError: If view_mode is not day, week or month
    """
    mode = ViewMode(view_mode)
    if mode == ViewMode.DAY:
        return start_of_day(selected_date), end_of_day(selected_date)
    if mode == ViewMode.WEEK:
        return start_of_week(selected_date), end_of_week(selected_date)
    return start_of_week(start_of_month(selected_date)), end_of_week(end_of_month(selected_date))


def shift_date(
    selected_date: datetime.date, view_mode: Union[ViewMode, str], step: int
) -> datetime.date:
    """Move ``step`` days, weeks or months depending on the view."""
    mode = ViewMode(view_mode)
    if mode == ViewMode.DAY:
        return selected_date + datetime.timedelta(days=step)
    if mode == ViewMode.WEEK:
        return selected_date + datetime.timedelta(weeks=step)
    return add_months(selected_date, step).date()


def days_between(range_start: datetime.datetime, range_end: datetime.datetime) -> list[datetime.date]:
    """Every calendar date touched by the inclusive range."""
    days: list[datetime.date] = []
    day = range_start.date()
    while day <= range_end.date():
        days.append(day)
        day += datetime.timedelta(days=1)
    return days


def week_days(selected_date: datetime.date) -> list[datetime.date]:
    """The seven dates (Monday first) of the week containing ``selected_date``."""
    monday = start_of_week(selected_date).date()
    return [monday + datetime.timedelta(days=offset) for offset in range(7)]


def month_matrix(selected_date: datetime.date) -> list[datetime.date]:
    """Six full weeks starting at the Monday on or before the 1st of the month."""
    first = start_of_week(start_of_month(selected_date)).date()
    return [first + datetime.timedelta(days=offset) for offset in range(MONTH_GRID_DAYS)]
