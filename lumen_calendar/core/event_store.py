"""Event persistence interface and the in-memory store used by the server.

The store is the source of truth for events. Callers never share it through
a module global; it is constructed once and injected into the view
controller and the HTTP handlers.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lumen_calendar.calendar.datetime_utils import parse_local_datetime
from lumen_calendar.calendar.models import ActivityType, CalendarEvent, RecurrenceRule
from lumen_calendar.core.exceptions import EventStoreError
from lumen_calendar.core.live_updates import (
    LiveUpdateChannel,
    calendar_created,
    calendar_deleted,
    calendar_updated,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 60

# User-facing messages for the fields the web form validates
_FIELD_MESSAGES = {
    "title": "Añade un título descriptivo",
    "start": "Fecha de inicio inválida",
    "end": "Fecha de fin inválida",
    "owner": "Asigna un responsable",
    "calendar_id": "Selecciona un calendario",
}
_CHRONOLOGY_MESSAGE = "La hora de fin debe ser posterior a la de inicio"
_NOT_FOUND_MESSAGE = "Evento no encontrado"
_INVALID_ID_MESSAGE = "Evento inválido"

FieldErrors = dict[str, list[str]]


class EventInput(BaseModel):
    """Event fields accepted by the store for create and update."""

    id: Optional[str] = None
    type: ActivityType = ActivityType.MEETING
    title: str = Field(..., min_length=3)
    description: Optional[str] = None
    start: datetime.datetime
    end: datetime.datetime
    owner: str = Field(..., min_length=1)
    organizer: Optional[str] = None
    location: Optional[str] = None
    calendar_id: str = Field(..., min_length=1, alias="calendarId")
    color: Optional[str] = None
    attendees: list[str] = Field(default_factory=list)
    all_day: bool = Field(default=False, alias="allDay")
    recurrence: Optional[RecurrenceRule] = None

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    @field_validator("start", "end", mode="before")
    @classmethod
    def _parse_datetime(cls, value: Any) -> datetime.datetime:
        parsed = parse_local_datetime(value)
        if parsed is None:
            raise ValueError(f"invalid datetime {value!r}")
        return parsed

    @field_validator("attendees", mode="before")
    @classmethod
    def _default_attendees(cls, value: Any) -> Any:
        return [] if value is None else value

    @classmethod
    def from_event(cls, event: CalendarEvent) -> EventInput:
        """Build an input that reproduces an existing event.

        Raises:
            ValidationError: If the event does not satisfy the input rules
        """
        return cls.model_validate(event_input_data(event))


def event_input_data(event: CalendarEvent) -> dict[str, Any]:
    """Editable fields of a stored event as a plain mapping.

    Nothing is validated here, so events that would fail the input rules
    (no calendar, short title) can still be merged with changes and checked
    by validate_event_input.
    """
    return event.model_dump(
        exclude={"is_expanded_instance", "occurrence_index"},
    )


def validate_event_input(data: Union[EventInput, Mapping[str, Any]]) -> tuple[Optional[EventInput], FieldErrors]:
    """Validate raw input, collecting errors per field.

    Returns:
        (EventInput, {}) on success or (None, field_errors) on failure
    """
    if isinstance(data, EventInput):
        candidate = data
    else:
        try:
            candidate = EventInput.model_validate(dict(data))
        except ValidationError as e:
            errors: FieldErrors = {}
            for error in e.errors():
                name = str(error["loc"][0]) if error["loc"] else "__root__"
                if name == "calendarId":
                    name = "calendar_id"
                message = _FIELD_MESSAGES.get(name, error["msg"])
                errors.setdefault(name, [])
                if message not in errors[name]:
                    errors[name].append(message)
            return None, errors

    if candidate.start >= candidate.end:
        return None, {"end": [_CHRONOLOGY_MESSAGE]}
    return candidate, {}


def _minute_precision(value: datetime.datetime) -> datetime.datetime:
    return value.replace(second=0, microsecond=0)


def _canonical_recurrence(rule: Optional[RecurrenceRule]) -> Optional[RecurrenceRule]:
    if rule is None or not rule.is_recurring:
        return None
    return RecurrenceRule(
        frequency=rule.frequency,
        interval=rule.interval or 1,
        count=rule.count,
        until=_minute_precision(rule.until) if rule.until else None,
    )


def build_canonical_event(data: EventInput, event_id: str) -> CalendarEvent:
    """Turn validated input into the stored form of the event."""
    return CalendarEvent(
        id=event_id,
        type=data.type,
        title=data.title,
        description=data.description or "",
        start=_minute_precision(data.start),
        end=_minute_precision(data.end),
        all_day=data.all_day,
        recurrence=_canonical_recurrence(data.recurrence),
        calendar_id=data.calendar_id,
        owner=data.owner,
        organizer=data.organizer or data.owner,
        attendees=[name for name in data.attendees if name.strip()],
        location=data.location,
        color=data.color,
    )


@dataclass
class StoreResult:
    """Outcome of a store request."""

    success: bool
    event: Optional[CalendarEvent] = None
    errors: FieldErrors = field(default_factory=dict)
    not_found: bool = False

    @classmethod
    def ok(cls, event: Optional[CalendarEvent] = None) -> StoreResult:
        return cls(success=True, event=event)

    @classmethod
    def rejected(cls, errors: FieldErrors, not_found: bool = False) -> StoreResult:
        return cls(success=False, errors=errors, not_found=not_found)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.event is not None:
            data["event"] = self.event.model_dump(mode="json")
        if self.errors:
            data["errors"] = self.errors
        return data


class EventStore(Protocol):
    """Protocol for event persistence backends."""

    async def create(self, data: Union[EventInput, Mapping[str, Any]]) -> StoreResult:
        """Validate and persist a new event.

        Returns:
            StoreResult with the canonical event, or field errors
        """
        ...

    async def update(self, data: Union[EventInput, Mapping[str, Any]]) -> StoreResult:
        """Validate and replace an existing event (matched by ``id``)."""
        ...

    async def delete(self, event_id: str) -> StoreResult:
        """Remove an event by id."""
        ...

    async def list_events(self) -> list[CalendarEvent]:
        """Return every stored event, newest first."""
        ...


class InMemoryEventStore:
    """Event store kept in process memory.

    Newly created events are placed first and the collection is capped at
    ``max_events``, dropping the oldest entries. Every successful mutation is
    announced on the injected live update channel.
    """

    def __init__(
        self,
        channel: Optional[LiveUpdateChannel] = None,
        max_events: int = DEFAULT_MAX_EVENTS,
        initial_events: Optional[Iterable[CalendarEvent]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        """Create a store.

        Args:
            channel: Channel that receives created/updated/deleted notifications
            max_events: Maximum number of retained events
            initial_events: Seed events, kept in the given order
            id_factory: Generator for new event ids (defaults to uuid4)
        """
        self.channel = channel
        self.max_events = max_events
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._events: list[CalendarEvent] = list(initial_events or [])[:max_events]
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._events)

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        channel: Optional[LiveUpdateChannel] = None,
        initial_events: Optional[Iterable[CalendarEvent]] = None,
    ) -> InMemoryEventStore:
        return cls(
            channel=channel,
            max_events=getattr(settings, "max_store_events", DEFAULT_MAX_EVENTS),
            initial_events=initial_events,
        )

    def _index_of(self, event_id: str) -> int:
        for index, event in enumerate(self._events):
            if event.id == event_id:
                return index
        return -1

    def get_event(self, event_id: str) -> CalendarEvent:
        """Look up a stored event.

        Raises:
            EventStoreError: If no event has that id
        """
        index = self._index_of(event_id)
        if index < 0:
            raise EventStoreError(f"Unknown event id: {event_id}")
        return self._events[index]

    async def create(self, data: Union[EventInput, Mapping[str, Any]]) -> StoreResult:
        validated, errors = validate_event_input(data)
        if validated is None:
            logger.info("Create rejected: %s", errors)
            return StoreResult.rejected(errors)

        event = build_canonical_event(validated, self._id_factory())
        async with self._lock:
            self._events.insert(0, event)
            del self._events[self.max_events :]

        logger.info("Created event %s (%s)", event.id, event.title)
        self._publish(calendar_created(event))
        return StoreResult.ok(event)

    async def update(self, data: Union[EventInput, Mapping[str, Any]]) -> StoreResult:
        validated, errors = validate_event_input(data)
        if validated is None:
            logger.info("Update rejected: %s", errors)
            return StoreResult.rejected(errors)
        if not validated.id:
            return StoreResult.rejected({"id": [_NOT_FOUND_MESSAGE]})

        event = build_canonical_event(validated, validated.id)
        async with self._lock:
            index = self._index_of(event.id)
            if index < 0:
                logger.info("Update rejected: unknown event %s", event.id)
                return StoreResult.rejected({"id": [_NOT_FOUND_MESSAGE]}, not_found=True)
            self._events[index] = event

        logger.info("Updated event %s", event.id)
        self._publish(calendar_updated(event))
        return StoreResult.ok(event)

    async def delete(self, event_id: str) -> StoreResult:
        if not event_id:
            return StoreResult.rejected({"id": [_INVALID_ID_MESSAGE]})

        async with self._lock:
            index = self._index_of(event_id)
            if index < 0:
                logger.info("Delete rejected: unknown event %s", event_id)
                return StoreResult.rejected({"id": [_NOT_FOUND_MESSAGE]}, not_found=True)
            del self._events[index]

        logger.info("Deleted event %s", event_id)
        self._publish(calendar_deleted(event_id))
        return StoreResult.ok()

    async def list_events(self) -> list[CalendarEvent]:
        async with self._lock:
            return list(self._events)

    def _publish(self, update: Any) -> None:
        if self.channel is not None:
            self.channel.publish(update)
