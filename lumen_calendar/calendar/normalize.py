"""Normalization of raw event records into CalendarEvent models.

Raw records arrive from seed files, the HTTP API and live update pushes. They
may use the camelCase keys of the web client (``calendarId``, ``allDay``) and
may carry start/end values that cannot be parsed. A record with a bad start
or end is still rendered: the start falls back to the beginning of today and
the end to one hour after the start. Only records missing mandatory fields
are rejected, and only that record is lost.
"""

from __future__ import annotations

import datetime
import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError

from lumen_calendar.calendar.datetime_utils import (
    end_of_day,
    parse_local_datetime,
    start_of_day,
    today as _today,
)
from lumen_calendar.calendar.models import CalendarEvent
from lumen_calendar.core.exceptions import InvalidEventError

logger = logging.getLogger(__name__)

DEFAULT_DURATION = datetime.timedelta(hours=1)

# Wire (camelCase) key -> model field
_KEY_ALIASES = {
    "calendarId": "calendar_id",
    "allDay": "all_day",
    "isExpandedInstance": "is_expanded_instance",
    "occurrenceIndex": "occurrence_index",
}

# Display-only keys produced by the web client; derived from start instead
_DERIVED_KEYS = {"date", "time"}

RawEvent = Union[Mapping[str, Any], CalendarEvent]


def _canonical_keys(raw: Mapping[str, Any]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _DERIVED_KEYS:
            continue
        data[_KEY_ALIASES.get(key, key)] = value
    return data


def _full_day_span(
    start: datetime.datetime, end: datetime.datetime
) -> tuple[datetime.datetime, datetime.datetime]:
    """Stretch an all-day span to cover whole days (end exclusive at midnight)."""
    day_start = start_of_day(start)
    if end > start:
        last_day = (end - datetime.timedelta(microseconds=1)).date()
    else:
        last_day = day_start.date()
    return day_start, end_of_day(max(last_day, day_start.date()))


def normalize_event(raw: RawEvent, today: Optional[datetime.date] = None) -> CalendarEvent:
    """Build a well-formed CalendarEvent from a raw record.

    Args:
        raw: Mapping (snake_case or camelCase keys) or an existing event
        today: Date used for the start fallback (defaults to the local today)

    Returns:
        Normalized CalendarEvent

    Raises:
        InvalidEventError: If mandatory fields are missing or invalid
    """
    if isinstance(raw, CalendarEvent):
        data = raw.model_dump()
    elif isinstance(raw, Mapping):
        data = _canonical_keys(raw)
    else:
        raise InvalidEventError(f"Unsupported event record type: {type(raw).__name__}")

    start = parse_local_datetime(data.get("start"))
    if start is None:
        fallback_day = today or _today()
        logger.warning(
            "Event %r has invalid start %r; defaulting to %s",
            data.get("id"),
            data.get("start"),
            fallback_day,
        )
        start = start_of_day(fallback_day)

    end = parse_local_datetime(data.get("end"))
    if end is None:
        logger.debug("Event %r has invalid end %r; using one-hour duration", data.get("id"), data.get("end"))
        end = start + DEFAULT_DURATION

    if data.get("all_day"):
        start, end = _full_day_span(start, end)

    data["start"] = start
    data["end"] = end
    if data.get("attendees") is None:
        data["attendees"] = []

    try:
        return CalendarEvent.model_validate(data)
    except ValidationError as e:
        raise InvalidEventError(f"Invalid event {data.get('id')!r}: {e}") from e


def normalize_events(
    raws: Iterable[RawEvent], today: Optional[datetime.date] = None
) -> list[CalendarEvent]:
    """Normalize a batch of records, skipping (and logging) invalid ones."""
    events: list[CalendarEvent] = []
    for raw in raws:
        try:
            events.append(normalize_event(raw, today))
        except InvalidEventError as e:
            logger.warning("Skipping invalid event record: %s", e)
    return events


def load_seed_events(path: Union[str, Path]) -> list[CalendarEvent]:
    """Load seed events from a YAML or JSON file containing a list of records.

    Raises:
        OSError: If the file cannot be read
        InvalidEventError: If the file cannot be parsed or does not hold a list
    """
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    try:
        if p.suffix.lower() == ".json":
            loaded = json.loads(text)
        else:
            loaded = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise InvalidEventError(f"Seed file {p} could not be parsed: {e}") from e

    if loaded is None:
        return []
    if isinstance(loaded, Mapping) and "events" in loaded:
        loaded = loaded["events"]
    if not isinstance(loaded, list):
        raise InvalidEventError(f"Seed file {p} must contain a list of events")

    events = normalize_events(loaded)
    logger.info("Loaded %d seed events from %s", len(events), p)
    return events
