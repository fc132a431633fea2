"""Exception hierarchy for lumen_calendar.

Specific exception types replace generic Exception handling at the seams
where calendar data enters the system (normalization, live updates, the
event store and configuration), so callers can decide which failures are
isolated to a single record and which abort an operation.
"""


class LumenCalendarError(Exception):
    """Base exception for all lumen_calendar errors.

    Every custom exception in the package inherits from this class so that
    callers can catch calendar failures without catching unrelated errors.
    """


class InvalidEventError(LumenCalendarError):
    """An event record could not be turned into a CalendarEvent.

    Raised when:
    - A mandatory field (id, title, owner) is missing
    - A field has a type that cannot be coerced

    Unparseable start/end values are NOT reported with this error; they are
    replaced by safe defaults during normalization.
    """


class MalformedLiveUpdateError(LumenCalendarError):
    """A live update payload did not match any known message shape.

    Raised by the strict decoder only. ``parse_live_update`` converts it into
    a logged ``None`` so a bad push never reaches the controller.
    """


class EventStoreError(LumenCalendarError):
    """The event store failed to complete a request.

    Raised when:
    - A lookup targets an unknown event id
    - The underlying storage raised unexpectedly

    Validation failures are not exceptions; they are returned as a failed
    ``StoreResult`` with field errors.
    """


class ConfigError(LumenCalendarError):
    """Configuration file could not be read or has an invalid shape."""
