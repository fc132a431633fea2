"""Shared fixtures for lumen_calendar tests."""

import datetime
from collections.abc import Generator
from typing import Any, Callable

import pytest

from lumen_calendar.calendar.models import CalendarEvent, RecurrenceRule
from lumen_calendar.config_loader import Config
from lumen_calendar.core.event_store import InMemoryEventStore
from lumen_calendar.core.live_updates import LiveUpdateChannel

_LUMEN_ENV_VARS = (
    "LUMEN_TEST_TIME",
    "LUMEN_DEBUG",
    "LUMEN_LOG_LEVEL",
    "LUMEN_SERVER_PORT",
    "LUMEN_SERVER_BIND",
    "LUMEN_SEED_EVENTS",
    "LUMEN_STORE_TIMEOUT",
)


def pytest_configure(config: Any) -> None:
    """Register test markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests that exercise the HTTP API end to end")
    config.addinivalue_line("markers", "smoke: Basic smoke tests")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear LUMEN_* variables so tests never see the developer's environment."""
    for var in _LUMEN_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def make_event() -> Callable[..., CalendarEvent]:
    """Factory for CalendarEvent with sensible defaults.

    ``start``/``end`` accept ``YYYY-MM-DDTHH:MM`` strings; ``recurrence`` a
    dict of RecurrenceRule fields.
    """

    def _make(
        event_id: str = "evt-1",
        start: str = "2024-06-03T09:00",
        end: str = "2024-06-03T10:00",
        **overrides: Any,
    ) -> CalendarEvent:
        recurrence = overrides.pop("recurrence", None)
        data: dict[str, Any] = {
            "id": event_id,
            "title": f"Event {event_id}",
            "owner": "Ana",
            "calendar_id": "ventas",
            "start": datetime.datetime.fromisoformat(start),
            "end": datetime.datetime.fromisoformat(end),
        }
        if recurrence is not None:
            data["recurrence"] = RecurrenceRule(**recurrence)
        data.update(overrides)
        return CalendarEvent(**data)

    return _make


@pytest.fixture
def seeded_events(make_event: Callable[..., CalendarEvent]) -> list[CalendarEvent]:
    """The two events used by the web client's calendar tests."""
    return [
        make_event(
            "1",
            "2024-06-01T09:00",
            "2024-06-01T10:00",
            type="meeting",
            title="Reunión con ventas",
            description="Revisión semanal",
            owner="Ana",
            attendees=["Luis"],
            organizer="Ana",
            location="Sala 1",
            color="#6366f1",
        ),
        make_event(
            "2",
            "2024-06-02T13:00",
            "2024-06-02T14:00",
            type="call",
            title="Llamada con proveedor",
            description="Negociación",
            owner="Luis",
            attendees=["Ana"],
            organizer="Luis",
            location="Remoto",
            color="#0ea5e9",
        ),
    ]


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def channel() -> Generator[LiveUpdateChannel, Any, None]:
    ch = LiveUpdateChannel(name="test")
    yield ch
    ch.close()


@pytest.fixture
def store(channel: LiveUpdateChannel, seeded_events: list[CalendarEvent]) -> InMemoryEventStore:
    return InMemoryEventStore(channel=channel, initial_events=seeded_events)


@pytest.fixture
def event_payload() -> dict[str, Any]:
    """A valid create payload in the web client's camelCase shape."""
    return {
        "type": "meeting",
        "title": "Demo con cliente",
        "description": "Presentación del producto",
        "start": "2024-06-04T11:00",
        "end": "2024-06-04T12:00",
        "owner": "Ana",
        "calendarId": "ventas",
        "attendees": ["Luis", "  "],
        "location": "Sala 2",
    }
