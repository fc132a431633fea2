"""Event filtering and facet extraction for the calendar view."""

from __future__ import annotations

import datetime
import logging
import re
from collections.abc import Iterable, Sequence

from lumen_calendar.calendar.datetime_utils import end_of_day, span_intersects, start_of_day
from lumen_calendar.calendar.models import CalendarEvent, CalendarMetadata, FilterState

logger = logging.getLogger(__name__)

DEFAULT_CALENDAR_ID = "mi-calendario"
DEFAULT_CALENDAR_LABEL = "Mi calendario"
DEFAULT_CALENDAR_COLOR = "#6366f1"


def event_occurs_in_range(
    event: CalendarEvent,
    range_start: datetime.datetime,
    range_end: datetime.datetime,
) -> bool:
    """Check whether an event's span intersects the inclusive range."""
    return span_intersects(event.start, event.end, range_start, range_end)


class EventFilter:
    """Applies the calendar, owner, participant, date-range and text facets.

    Predicates run in a fixed order so cheap exact-match checks short-circuit
    before the text search. The visible-window check always runs last.

    An event without a calendar_id never passes a non-empty calendar set; it
    belongs to no calendar, so selecting calendars hides it.
    """

    def __init__(self, filters: FilterState):
        """Initialize event filter.

        Args:
            filters: Active filter facets
        """
        self.filters = filters
        self._term = filters.term.strip().lower()
        self._date_window: tuple[datetime.datetime, datetime.datetime] | None = None
        if filters.start_date is not None and filters.end_date is not None:
            self._date_window = (start_of_day(filters.start_date), end_of_day(filters.end_date))

    def matches(
        self,
        event: CalendarEvent,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
    ) -> bool:
        """Return True if the event passes every facet and is visible."""
        filters = self.filters

        if filters.calendars and event.calendar_id not in filters.calendars:
            return False

        if filters.owner and event.owner != filters.owner:
            return False

        if filters.participant and filters.participant not in event.attendees:
            return False

        if self._date_window is not None and not event_occurs_in_range(event, *self._date_window):
            return False

        if self._term and self._term not in self._haystack(event):
            return False

        return event_occurs_in_range(event, range_start, range_end)

    @staticmethod
    def _haystack(event: CalendarEvent) -> str:
        parts = [event.title, event.description, event.location, event.owner, *event.attendees]
        return " ".join(part for part in parts if part).lower()

    def apply(
        self,
        events: Iterable[CalendarEvent],
        range_start: datetime.datetime,
        range_end: datetime.datetime,
    ) -> list[CalendarEvent]:
        """Filter events, preserving input order.

        Each event is evaluated on its own; an event whose evaluation raises is
        logged and dropped without affecting the others.
        """
        kept: list[CalendarEvent] = []
        for event in events:
            try:
                if self.matches(event, range_start, range_end):
                    kept.append(event)
            except Exception as e:
                logger.warning("Failed to filter event %s: %s", getattr(event, "id", "<no-id>"), e)
        return kept


def filter_events(
    events: Iterable[CalendarEvent],
    filters: FilterState,
    range_start: datetime.datetime,
    range_end: datetime.datetime,
) -> list[CalendarEvent]:
    """Filter events by the given facets and visible window (convenience function)."""
    return EventFilter(filters).apply(events, range_start, range_end)


def unique_owners(events: Iterable[CalendarEvent]) -> list[str]:
    """Sorted distinct owners."""
    return sorted({event.owner for event in events if event.owner})


def unique_participants(events: Iterable[CalendarEvent]) -> list[str]:
    """Sorted distinct attendee names across all events."""
    participants: set[str] = set()
    for event in events:
        participants.update(event.attendees)
    return sorted(participants)


def humanize(value: str) -> str:
    """Turn a slug such as ``ventas-norte`` into ``Ventas Norte``."""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), value.replace("-", " "))


def derive_calendars(events: Sequence[CalendarEvent]) -> list[CalendarMetadata]:
    """Build calendar selector entries from the calendars events belong to.

    The first event seen for a calendar decides its color. When no event
    names a calendar, a single default calendar is returned.
    """
    grouped: dict[str, CalendarMetadata] = {}
    for event in events:
        if not event.calendar_id or event.calendar_id in grouped:
            continue
        grouped[event.calendar_id] = CalendarMetadata(
            id=event.calendar_id,
            label=humanize(event.calendar_id),
            color=event.color or DEFAULT_CALENDAR_COLOR,
        )

    if not grouped:
        grouped[DEFAULT_CALENDAR_ID] = CalendarMetadata(
            id=DEFAULT_CALENDAR_ID,
            label=DEFAULT_CALENDAR_LABEL,
            color=DEFAULT_CALENDAR_COLOR,
        )

    return list(grouped.values())
