"""Data models for the lumen_calendar scheduling engine."""

from __future__ import annotations

import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class ActivityType(str, Enum):
    """Kind of business activity an event represents."""

    DEAL = "deal"
    MEETING = "meeting"
    EMAIL = "email"
    CALL = "call"


class Frequency(str, Enum):
    """Supported recurrence frequencies.

    RecurrenceRule.frequency is typed as a plain string so that rules carrying
    an unsupported value still load; the expander stops softly on them.
    """

    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ViewMode(str, Enum):
    """Calendar navigation granularity."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class RecurrenceRule(BaseModel):
    """Recurrence rule owned by a single event."""

    frequency: str = Field(default=Frequency.NONE.value, description="none|daily|weekly|monthly")
    interval: int = Field(default=1, ge=1, description="Step size in frequency units")
    count: Optional[int] = Field(default=None, ge=1, description="Maximum number of occurrences")
    until: Optional[datetime.datetime] = Field(
        default=None, description="Last instant an occurrence may start"
    )

    model_config = ConfigDict(frozen=True)

    @property
    def is_recurring(self) -> bool:
        return self.frequency != Frequency.NONE.value


class CalendarEvent(BaseModel):
    """Calendar event (or a materialized occurrence of one).

    Times are naive local wall-clock datetimes. Occurrences share the master's
    id so edits and deletes performed on them act on the master event.
    """

    # Core properties
    id: str = Field(..., description="Opaque event ID")
    type: ActivityType = Field(default=ActivityType.MEETING, description="Activity type")
    title: str = Field(..., description="Event title")
    description: str = Field(default="", description="Free-text description")

    # Time information
    start: datetime.datetime = Field(..., description="Start (local wall-clock)")
    end: datetime.datetime = Field(..., description="End (local wall-clock)")
    all_day: bool = Field(default=False, description="All-day event flag")
    recurrence: Optional[RecurrenceRule] = Field(default=None, description="Recurrence rule")

    # Ownership and classification
    calendar_id: Optional[str] = Field(default=None, description="Calendar/category identifier")
    owner: str = Field(..., description="Responsible person")
    organizer: Optional[str] = Field(default=None, description="Organizer name")
    attendees: list[str] = Field(default_factory=list, description="Participant names")
    location: Optional[str] = Field(default=None, description="Location")
    color: Optional[str] = Field(default=None, description="Display color")

    # Recurrence expansion tracking
    is_expanded_instance: bool = Field(
        default=False, description="True if generated from recurrence expansion"
    )
    occurrence_index: Optional[int] = Field(
        default=None, description="Repetition number counted from the master start"
    )

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    @property
    def date(self) -> str:
        """Start date as ``YYYY-MM-DD``."""
        return self.start.strftime("%Y-%m-%d")

    @property
    def time(self) -> Optional[str]:
        """Start time as ``HH:MM``; all-day events have no time of day."""
        if self.all_day:
            return None
        return self.start.strftime("%H:%M")

    @property
    def duration(self) -> datetime.timedelta:
        return self.end - self.start

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None and self.recurrence.is_recurring

    @field_serializer("start", "end")
    def serialize_datetime(self, dt: datetime.datetime) -> str:
        """Serialize datetimes to ISO format."""
        return dt.isoformat()


class PositionedEvent(BaseModel):
    """An event paired with its computed day-grid placement."""

    event: CalendarEvent
    start_minute: int = Field(..., description="Minutes from midnight of the event's start day")
    end_minute: int = Field(..., description="Visual end minute, floored to the minimum duration")
    column: int = Field(..., ge=0, description="Assigned column within the cluster")
    columns: int = Field(..., ge=1, description="Column count of the event's overlap cluster")
    top: float = Field(default=0.0, description="Top offset in pixels")
    height: float = Field(default=0.0, description="Height in pixels")

    model_config = ConfigDict(frozen=True)

    @property
    def duration_minutes(self) -> int:
        return self.end_minute - self.start_minute

    @property
    def width_fraction(self) -> float:
        return 1.0 / self.columns

    @property
    def left_fraction(self) -> float:
        return self.column / self.columns


class CalendarMetadata(BaseModel):
    """Calendar entry shown in the calendar selector."""

    id: str
    label: str
    color: str


class FilterState(BaseModel):
    """User-selected filter facets.

    An empty ``calendars`` set means every calendar is active.
    """

    term: str = ""
    owner: Optional[str] = None
    participant: Optional[str] = None
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    calendars: frozenset[str] = Field(default_factory=frozenset)

    model_config = ConfigDict(frozen=True)

    @property
    def has_date_range(self) -> bool:
        return self.start_date is not None and self.end_date is not None

    @field_serializer("calendars")
    def serialize_calendars(self, calendars: frozenset[str]) -> list[str]:
        return sorted(calendars)
