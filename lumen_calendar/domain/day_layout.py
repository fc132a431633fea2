"""Collision-free column layout for events on a single day's time grid.

Overlapping events are packed into columns with a greedy sweep (interval
graph coloring): events are visited in start order and each goes into the
first column that is free by its start time. Processing in start order makes
the greedy choice optimal, so a cluster whose densest instant holds K events
uses exactly K columns.

Every event in a connected overlap cluster is then given the cluster's final
column count, so a column opened late in the cluster still narrows the
events placed before it.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from lumen_calendar.calendar.datetime_utils import MINUTES_PER_DAY, minutes_since, start_of_day
from lumen_calendar.calendar.models import CalendarEvent, PositionedEvent

logger = logging.getLogger(__name__)


@dataclass
class DayLayoutConfig:
    """Grid geometry for the day layout."""

    min_event_minutes: int = 30
    minutes_per_slot: int = 30
    slot_height: float = 56.0

    @property
    def minute_height(self) -> float:
        return self.slot_height / self.minutes_per_slot

    @classmethod
    def from_settings(cls, settings: Any) -> DayLayoutConfig:
        return cls(
            min_event_minutes=getattr(settings, "min_event_minutes", 30),
            minutes_per_slot=getattr(settings, "minutes_per_slot", 30),
            slot_height=float(getattr(settings, "slot_height", 56.0)),
        )


@dataclass
class _Placement:
    event: CalendarEvent
    column: int


@dataclass
class _Cluster:
    members: list[_Placement] = field(default_factory=list)
    column_ends: list[datetime.datetime] = field(default_factory=list)
    end: datetime.datetime | None = None

    def place(self, event: CalendarEvent, pack_end: datetime.datetime) -> None:
        for column, column_end in enumerate(self.column_ends):
            if column_end <= event.start:
                self.column_ends[column] = pack_end
                break
        else:
            column = len(self.column_ends)
            self.column_ends.append(pack_end)

        self.members.append(_Placement(event=event, column=column))
        self.end = pack_end if self.end is None else max(self.end, pack_end)


class DayLayoutEngine:
    """Computes column placement and vertical geometry for one day's events."""

    def __init__(self, settings: Any = None):
        """Initialize layout engine.

        Args:
            settings: Optional object with min_event_minutes, minutes_per_slot
                and slot_height attributes
        """
        self.config = DayLayoutConfig.from_settings(settings)
        self._min_duration = datetime.timedelta(minutes=self.config.min_event_minutes)

    def layout(self, day_events: Iterable[CalendarEvent]) -> dict[str, PositionedEvent]:
        """Place events in non-overlapping columns.

        Args:
            day_events: Events anchored to the same day

        Returns:
            Mapping from event id to its PositionedEvent, in placement order
        """
        ordered = sorted(day_events, key=lambda e: (e.start, e.end))
        if not ordered:
            return {}

        clusters: list[_Cluster] = []
        current = _Cluster()

        for event in ordered:
            pack_end = self._pack_end(event)
            if current.end is not None and event.start >= current.end:
                clusters.append(current)
                current = _Cluster()
            current.place(event, pack_end)
        clusters.append(current)

        positioned: dict[str, PositionedEvent] = {}
        for cluster in clusters:
            columns = len(cluster.column_ends)
            for placement in cluster.members:
                try:
                    positioned[placement.event.id] = self._position(placement, columns)
                except Exception as e:
                    logger.warning("Failed to position event %s: %s", placement.event.id, e)

        logger.debug(
            "Laid out %d events in %d clusters (max %d columns)",
            len(positioned),
            len(clusters),
            max(len(c.column_ends) for c in clusters),
        )
        return positioned

    def _pack_end(self, event: CalendarEvent) -> datetime.datetime:
        """End used for column packing; degenerate spans get the minimum duration."""
        if event.end <= event.start:
            return event.start + self._min_duration
        return event.end

    def _position(self, placement: _Placement, columns: int) -> PositionedEvent:
        event = placement.event
        day_start = start_of_day(event.start)
        start_minute = minutes_since(event.start, day_start)
        floor_minute = start_minute + self.config.min_event_minutes
        actual_end_minute = min(minutes_since(event.end, day_start), MINUTES_PER_DAY)
        end_minute = max(floor_minute, actual_end_minute)

        minute_height = self.config.minute_height
        return PositionedEvent(
            event=event,
            start_minute=start_minute,
            end_minute=end_minute,
            column=placement.column,
            columns=columns,
            top=start_minute * minute_height,
            height=(end_minute - start_minute) * minute_height,
        )


def compute_day_layout(
    day_events: Iterable[CalendarEvent], settings: Any = None
) -> dict[str, PositionedEvent]:
    """Lay out one day's events (convenience function)."""
    return DayLayoutEngine(settings).layout(day_events)
