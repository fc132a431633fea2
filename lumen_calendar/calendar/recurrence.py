"""Recurrence expansion for lumen_calendar events."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Optional

from dateutil.relativedelta import relativedelta

from lumen_calendar.calendar.datetime_utils import span_intersects
from lumen_calendar.calendar.models import CalendarEvent, Frequency

logger = logging.getLogger(__name__)

# Days per step unit for fixed-length frequencies
_FIXED_STEP_DAYS = {
    Frequency.DAILY.value: 1,
    Frequency.WEEKLY.value: 7,
}


@dataclass
class RecurrenceExpanderConfig:
    """Configuration for recurrence expansion.

    ``max_occurrences_per_rule`` bounds a single expansion call so that a rule
    with neither COUNT nor UNTIL cannot run away over a huge range.
    """

    max_occurrences_per_rule: int = 500

    @classmethod
    def from_settings(cls, settings: Any) -> RecurrenceExpanderConfig:
        """Extract expansion configuration from a settings object.

        Args:
            settings: Object with expansion attributes (missing ones use defaults)

        Returns:
            RecurrenceExpanderConfig with values from settings or defaults
        """
        return cls(
            max_occurrences_per_rule=getattr(settings, "max_occurrences_per_rule", 500),
        )


class RecurrenceExpander:
    """Expands recurring events into concrete occurrences inside a date range.

    Occurrence ``k`` starts at ``master.start + k * interval`` frequency units
    and keeps the master's duration. Monthly steps are always computed from the
    master start, so a rule starting on the 31st clamps to the last day of
    shorter months (Jan 31, Feb 28, Mar 31, Apr 30, ...) without drifting.
    """

    def __init__(self, settings: Any = None):
        """Initialize expander with configuration settings.

        Args:
            settings: Optional configuration object with expansion settings
        """
        config = RecurrenceExpanderConfig.from_settings(settings)
        self.max_occurrences = config.max_occurrences_per_rule

    def expand(
        self,
        event: CalendarEvent,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
    ) -> list[CalendarEvent]:
        """Materialize the occurrences of ``event`` intersecting the range.

        Args:
            event: Master event (recurring or not)
            range_start: Inclusive start of the visible window
            range_end: Inclusive end of the visible window

        Returns:
            Occurrences in chronological order. Non-recurring events yield
            ``[event]`` when they intersect the range. Unsupported frequencies
            yield whatever was collected before the first step.
        """
        if not event.is_recurring:
            if span_intersects(event.start, event.end, range_start, range_end):
                return [event]
            return []

        rule = event.recurrence
        if rule is None:
            return []
        upper_bound = min(rule.until, range_end) if rule.until else range_end
        duration = event.end - event.start

        index = self._first_candidate_index(event, range_start)
        occurrences: list[CalendarEvent] = []

        while rule.count is None or index < rule.count:
            if index == 0:
                occurrence_start = event.start
            else:
                offset = self._offset(rule.frequency, rule.interval * index)
                if offset is None:
                    logger.warning(
                        "Unsupported recurrence frequency %r for event %s; "
                        "stopping after %d occurrences",
                        rule.frequency,
                        event.id,
                        len(occurrences),
                    )
                    break
                occurrence_start = event.start + offset

            if occurrence_start > upper_bound:
                break

            occurrence_end = occurrence_start + duration
            if span_intersects(occurrence_start, occurrence_end, range_start, range_end):
                occurrences.append(
                    self._build_occurrence(event, index, occurrence_start, occurrence_end)
                )
                if len(occurrences) >= self.max_occurrences:
                    logger.warning(
                        "Recurrence expansion for event %s limited to %d occurrences",
                        event.id,
                        self.max_occurrences,
                    )
                    break

            index += 1

        logger.debug(
            "Expanded event %s (%s every %d): %d occurrences in [%s, %s]",
            event.id,
            rule.frequency,
            rule.interval,
            len(occurrences),
            range_start,
            range_end,
        )
        return occurrences

    @staticmethod
    def _offset(frequency: str, units: int) -> Optional[relativedelta]:
        if frequency == Frequency.DAILY.value:
            return relativedelta(days=units)
        if frequency == Frequency.WEEKLY.value:
            return relativedelta(weeks=units)
        if frequency == Frequency.MONTHLY.value:
            return relativedelta(months=units)
        return None

    @staticmethod
    def _first_candidate_index(event: CalendarEvent, range_start: datetime.datetime) -> int:
        """Lowest repetition index that could still reach ``range_start``.

        The estimate is conservative (it may land a step early, never late), so
        skipping the indices below it cannot drop an intersecting occurrence.
        COUNT keeps being measured from the master start because the returned
        value is a real repetition index.
        """
        rule = event.recurrence
        if rule is None or event.end >= range_start:
            return 0

        step_days = _FIXED_STEP_DAYS.get(rule.frequency)
        if step_days is not None:
            step = datetime.timedelta(days=step_days * rule.interval)
            return max(0, (range_start - event.end) // step)

        if rule.frequency == Frequency.MONTHLY.value:
            months_apart = (range_start.year - event.start.year) * 12 + (
                range_start.month - event.start.month
            )
            # Long events can intersect the range from an earlier month
            duration_months = (event.end - event.start).days // 28 + 1
            return max(0, (months_apart - duration_months) // rule.interval - 1)

        return 0

    @staticmethod
    def _build_occurrence(
        master: CalendarEvent,
        index: int,
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> CalendarEvent:
        return master.model_copy(
            update={
                "start": start,
                "end": end,
                "is_expanded_instance": True,
                "occurrence_index": index,
            }
        )


def expand_recurring_event(
    event: CalendarEvent,
    range_start: datetime.datetime,
    range_end: datetime.datetime,
    settings: Any = None,
) -> list[CalendarEvent]:
    """Expand a single event over a range (convenience function)."""
    return RecurrenceExpander(settings).expand(event, range_start, range_end)
