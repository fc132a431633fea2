"""Unit tests for event record normalization and seed loading."""

import datetime
import json

import pytest

from lumen_calendar.calendar.models import CalendarEvent
from lumen_calendar.calendar.normalize import load_seed_events, normalize_event, normalize_events
from lumen_calendar.core.exceptions import InvalidEventError

pytestmark = pytest.mark.unit

TODAY = datetime.date(2024, 6, 1)


def raw_event(**overrides):
    data = {
        "id": "r1",
        "title": "Revisión de pipeline",
        "owner": "Ana",
        "start": "2024-06-03T09:00",
        "end": "2024-06-03T10:00",
        "calendarId": "ventas",
    }
    data.update(overrides)
    return data


class TestNormalizeEvent:
    def test_camel_case_keys_are_accepted(self):
        event = normalize_event(raw_event(allDay=False, date="2024-06-03", time="09:00"))

        assert event.calendar_id == "ventas"
        assert event.all_day is False
        assert event.time == "09:00"

    def test_invalid_start_falls_back_to_start_of_today(self, caplog):
        event = normalize_event(raw_event(start="not-a-date", end="also-bad"), today=TODAY)

        assert event.start == datetime.datetime(2024, 6, 1, 0, 0)
        assert event.end == datetime.datetime(2024, 6, 1, 1, 0)
        assert "invalid start" in caplog.text

    def test_invalid_end_defaults_to_one_hour_after_start(self):
        event = normalize_event(raw_event(end=None))

        assert event.end - event.start == datetime.timedelta(hours=1)

    def test_offset_qualified_strings_become_naive(self):
        event = normalize_event(raw_event(start="2024-06-03T09:00:00+00:00", end="2024-06-03T10:00:00+00:00"))

        assert event.start.tzinfo is None
        assert event.end - event.start == datetime.timedelta(hours=1)

    def test_missing_attendees_default_to_empty_list(self):
        assert normalize_event(raw_event(attendees=None)).attendees == []

    def test_all_day_span_covers_whole_days(self):
        event = normalize_event(raw_event(allDay=True, start="2024-06-03", end="2024-06-05"))

        assert event.start == datetime.datetime(2024, 6, 3)
        assert event.end.date() == datetime.date(2024, 6, 4)
        assert event.end.time() == datetime.time.max
        assert event.time is None

    def test_missing_title_raises_invalid_event(self):
        data = raw_event()
        del data["title"]

        with pytest.raises(InvalidEventError):
            normalize_event(data)

    def test_unsupported_record_type_raises(self):
        with pytest.raises(InvalidEventError):
            normalize_event(["not", "a", "mapping"])

    def test_existing_event_round_trips(self, make_event):
        event = make_event()

        assert normalize_event(event) == event


class TestBatchAndSeeds:
    def test_normalize_events_skips_only_bad_records(self):
        records = [raw_event(id="ok-1"), {"id": "bad"}, raw_event(id="ok-2")]

        events = normalize_events(records)

        assert [e.id for e in events] == ["ok-1", "ok-2"]

    def test_load_seed_events_from_yaml_events_key(self, tmp_path):
        path = tmp_path / "seed.yaml"
        path.write_text(
            "events:\n"
            "  - id: y1\n"
            "    title: Llamada de seguimiento\n"
            "    owner: Luis\n"
            "    start: 2024-06-03T15:00\n"
            "    end: 2024-06-03T15:30\n"
            "    calendarId: soporte\n",
            encoding="utf-8",
        )

        events = load_seed_events(path)

        assert len(events) == 1
        assert isinstance(events[0], CalendarEvent)
        assert events[0].calendar_id == "soporte"

    def test_load_seed_events_from_json_list(self, tmp_path):
        path = tmp_path / "seed.json"
        path.write_text(json.dumps([raw_event(id="j1"), raw_event(id="j2")]), encoding="utf-8")

        assert [e.id for e in load_seed_events(path)] == ["j1", "j2"]

    def test_load_seed_events_rejects_non_list(self, tmp_path):
        path = tmp_path / "seed.json"
        path.write_text(json.dumps({"id": "x"}), encoding="utf-8")

        with pytest.raises(InvalidEventError):
            load_seed_events(path)

    def test_load_seed_events_wraps_parse_errors(self, tmp_path):
        path = tmp_path / "seed.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(InvalidEventError):
            load_seed_events(path)

    def test_empty_seed_file_yields_no_events(self, tmp_path):
        path = tmp_path / "seed.yaml"
        path.write_text("", encoding="utf-8")

        assert load_seed_events(path) == []
