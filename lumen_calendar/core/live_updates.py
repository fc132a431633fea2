"""Live update channel: an explicit publish/subscribe object for change pushes.

The channel is created by the application and handed to whoever needs it
(the event store publishes, the view controller and the HTTP stream
subscribe). Messages are tagged unions:

    {"kind": "calendar", "payload": {"action": "created", "event": {...}}}
    {"kind": "calendar", "payload": {"action": "updated", "event": {...}}}
    {"kind": "calendar", "payload": {"action": "deleted", "eventId": "..."}}
    {"kind": "activity", "payload": {"id": "...", "type": "call", ...}}

Payloads that match none of these shapes are logged and discarded.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from lumen_calendar.calendar.models import ActivityType, CalendarEvent
from lumen_calendar.calendar.normalize import normalize_event
from lumen_calendar.core.exceptions import InvalidEventError, MalformedLiveUpdateError

logger = logging.getLogger(__name__)


class CalendarAction(str, Enum):
    """Change kinds announced for calendar events."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class Activity(BaseModel):
    """Activity feed entry."""

    id: str
    type: ActivityType
    title: str
    description: str = ""
    timestamp: str = ""
    user: str = ""

    model_config = ConfigDict(frozen=True, use_enum_values=True)


class CalendarChange(BaseModel):
    """Payload of a calendar notification."""

    action: CalendarAction
    event: Optional[CalendarEvent] = None
    event_id: Optional[str] = Field(default=None, alias="eventId")

    model_config = ConfigDict(frozen=True, populate_by_name=True, use_enum_values=True)

    @field_validator("event", mode="before")
    @classmethod
    def _normalize_event(cls, value: Any) -> Any:
        if value is None or isinstance(value, CalendarEvent):
            return value
        try:
            return normalize_event(value)
        except InvalidEventError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def _check_shape(self) -> CalendarChange:
        if self.action == CalendarAction.DELETED.value:
            if not self.event_id:
                raise ValueError("deleted notifications require eventId")
        elif self.event is None:
            raise ValueError(f"{self.action} notifications require an event")
        return self

    @property
    def target_id(self) -> str:
        """Id of the event the change applies to."""
        if self.event is not None:
            return self.event.id
        return self.event_id or ""


class CalendarUpdate(BaseModel):
    kind: Literal["calendar"] = "calendar"
    payload: CalendarChange

    model_config = ConfigDict(frozen=True)


class ActivityUpdate(BaseModel):
    kind: Literal["activity"] = "activity"
    payload: Activity

    model_config = ConfigDict(frozen=True)


LiveUpdate = Annotated[Union[CalendarUpdate, ActivityUpdate], Field(discriminator="kind")]

_live_update_adapter: TypeAdapter[Union[CalendarUpdate, ActivityUpdate]] = TypeAdapter(LiveUpdate)

Listener = Callable[[Union[CalendarUpdate, ActivityUpdate]], None]


def calendar_created(event: CalendarEvent) -> CalendarUpdate:
    return CalendarUpdate(payload=CalendarChange(action=CalendarAction.CREATED, event=event))


def calendar_updated(event: CalendarEvent) -> CalendarUpdate:
    return CalendarUpdate(payload=CalendarChange(action=CalendarAction.UPDATED, event=event))


def calendar_deleted(event_id: str) -> CalendarUpdate:
    return CalendarUpdate(payload=CalendarChange(action=CalendarAction.DELETED, event_id=event_id))


def decode_live_update(raw: Union[str, bytes, Mapping[str, Any]]) -> Union[CalendarUpdate, ActivityUpdate]:
    """Strictly decode a live update payload.

    Args:
        raw: JSON text or an already-decoded mapping

    Returns:
        CalendarUpdate or ActivityUpdate

    Raises:
        MalformedLiveUpdateError: If the payload is not valid JSON or does not
            match a known message shape
    """
    data: Any = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedLiveUpdateError(f"Live update is not valid JSON: {e}") from e

    if not isinstance(data, Mapping):
        raise MalformedLiveUpdateError(f"Live update must be an object, got {type(data).__name__}")

    try:
        return _live_update_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedLiveUpdateError(f"Unrecognized live update: {e}") from e


def parse_live_update(
    raw: Union[str, bytes, Mapping[str, Any]],
) -> Optional[Union[CalendarUpdate, ActivityUpdate]]:
    """Decode a live update, logging and discarding malformed payloads.

    Returns:
        The decoded update, or None if the payload was malformed
    """
    try:
        return decode_live_update(raw)
    except MalformedLiveUpdateError as e:
        logger.warning("Discarding malformed live update: %s", e)
        return None


def encode_live_update(update: Union[CalendarUpdate, ActivityUpdate]) -> str:
    """Serialize an update to the JSON wire format."""
    return update.model_dump_json(by_alias=True, exclude_none=True)


class Subscription:
    """Handle returned by LiveUpdateChannel.subscribe()."""

    def __init__(self, channel: LiveUpdateChannel, listener: Listener):
        self._channel = channel
        self.listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        """Stop delivery to this listener. Safe to call more than once."""
        if self.active:
            self.active = False
            self._channel._remove(self)


class LiveUpdateChannel:
    """In-process publish/subscribe channel for live updates.

    Used from a single asyncio event loop; listeners are called synchronously.
    """

    def __init__(self, name: str = "workspace") -> None:
        self.name = name
        self._subscriptions: list[Subscription] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, listener: Listener) -> Subscription:
        """Register a listener.

        Subscribing to a closed channel returns an inactive subscription that
        never receives updates.
        """
        subscription = Subscription(self, listener)
        if self._closed:
            logger.warning("Subscribe on closed channel %s ignored", self.name)
            subscription.active = False
            return subscription

        self._subscriptions.append(subscription)
        logger.debug("Channel %s: subscriber added (%d total)", self.name, self.subscriber_count)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        logger.debug("Channel %s: subscriber removed (%d left)", self.name, self.subscriber_count)

    def publish(self, update: Union[CalendarUpdate, ActivityUpdate]) -> int:
        """Deliver an update to every active subscriber.

        A listener that raises is logged; delivery to the others continues.

        Returns:
            Number of listeners the update was delivered to
        """
        if self._closed:
            logger.debug("Channel %s closed; dropping %s update", self.name, update.kind)
            return 0

        # Listeners may unsubscribe while being notified
        subscriptions = list(self._subscriptions)

        delivered = 0
        for subscription in subscriptions:
            if not subscription.active:
                continue
            try:
                subscription.listener(update)
                delivered += 1
            except Exception:
                logger.exception("Live update listener failed on channel %s", self.name)
        return delivered

    def publish_raw(self, raw: Union[str, bytes, Mapping[str, Any]]) -> bool:
        """Decode and publish a raw payload. Malformed payloads are discarded.

        Returns:
            True if the payload was valid and published
        """
        update = parse_live_update(raw)
        if update is None:
            return False
        self.publish(update)
        return True

    def close(self) -> None:
        """Close the channel and release every subscription."""
        subscriptions = list(self._subscriptions)
        self._subscriptions.clear()
        self._closed = True
        for subscription in subscriptions:
            subscription.active = False
        logger.info("Channel %s closed (%d subscriptions released)", self.name, len(subscriptions))
