"""Integration tests for the calendar HTTP API."""

import asyncio
import json

import pytest
from aiohttp.test_utils import TestClient, TestServer

from lumen_calendar.api.server import CHANNEL_KEY, STORE_KEY, make_app

pytestmark = pytest.mark.integration


@pytest.fixture
def app(config, store, channel):
    return make_app(config, store=store, channel=channel, keep_alive_seconds=0.2)


@pytest.fixture
async def client(app):
    async with TestClient(TestServer(app)) as client:
        yield client


async def read_message(response, timeout=2.0):
    """Return the next SSE line that is not a blank separator."""
    while True:
        line = await asyncio.wait_for(response.content.readline(), timeout=timeout)
        text = line.decode().strip()
        if text:
            return text


async def read_data(response):
    while True:
        text = await read_message(response)
        if text.startswith("data: "):
            return json.loads(text[len("data: ") :])


class TestHealth:
    async def test_health_reports_store_size(self, client):
        response = await client.get("/api/health")

        assert response.status == 200
        data = await response.json()
        assert data["status"] == "ok"
        assert data["event_count"] == 2
        assert data["stream_subscribers"] == 0

    async def test_request_id_is_echoed(self, client):
        response = await client.get("/api/health", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"

    def test_app_keys_hold_injected_services(self, app, store, channel):
        assert app[STORE_KEY] is store
        assert app[CHANNEL_KEY] is channel


class TestCalendarView:
    @pytest.mark.smoke
    async def test_search_in_week_view(self, client):
        response = await client.get("/api/calendar/view", params={"date": "2024-06-01", "view": "week", "q": "proveedor"})

        assert response.status == 200
        data = await response.json()
        assert data["visible_count"] == 1
        assert data["events"][0]["title"] == "Llamada con proveedor"
        assert len(data["days"]) == 7

    async def test_month_view_with_facets(self, client):
        response = await client.get(
            "/api/calendar/view",
            params={"date": "2024-06-01", "view": "month", "owner": "Ana", "calendars": "ventas, soporte"},
        )

        data = await response.json()
        assert data["view_mode"] == "month"
        assert [e["id"] for e in data["events"]] == ["1"]
        assert len(data["days"]) == 42

    async def test_positioned_events_in_day_view(self, client):
        response = await client.get("/api/calendar/view", params={"date": "2024-06-02", "view": "day"})

        day = (await response.json())["days"][0]
        assert day["positioned"][0]["event"]["id"] == "2"
        assert day["positioned"][0]["start_minute"] == 780
        assert day["positioned"][0]["columns"] == 1

    @pytest.mark.parametrize(
        "params",
        [{"view": "year"}, {"date": "mañana"}, {"from": "2024-13-40", "to": "2024-06-02"}],
    )
    async def test_bad_query_returns_400(self, client, params):
        response = await client.get("/api/calendar/view", params=params)

        assert response.status == 400
        data = await response.json()
        assert data["success"] is False
        assert data["error"]


class TestEventsCrud:
    async def test_list_events(self, client):
        response = await client.get("/api/calendar/events")

        data = await response.json()
        assert [e["id"] for e in data["events"]] == ["1", "2"]

    async def test_create_returns_201_with_canonical_event(self, client, event_payload):
        response = await client.post("/api/calendar/events", json={**event_payload, "id": "ignored"})

        assert response.status == 201
        data = await response.json()
        assert data["success"] is True
        assert data["event"]["id"] != "ignored"
        assert data["event"]["attendees"] == ["Luis"]
        assert data["event"]["organizer"] == "Ana"

    async def test_create_invalid_returns_field_errors(self, client, event_payload):
        event_payload["end"] = event_payload["start"]

        response = await client.post("/api/calendar/events", json=event_payload)

        assert response.status == 400
        data = await response.json()
        assert data == {"success": False, "errors": {"end": ["La hora de fin debe ser posterior a la de inicio"]}}

    async def test_create_with_non_json_body_returns_400(self, client):
        response = await client.post("/api/calendar/events", data="not json", headers={"Content-Type": "application/json"})

        assert response.status == 400

    async def test_update_existing_event(self, client, store, event_payload):
        response = await client.put("/api/calendar/events/2", json={**event_payload, "title": "Llamada movida"})

        assert response.status == 200
        assert store.get_event("2").title == "Llamada movida"

    async def test_update_unknown_event_returns_404(self, client, event_payload):
        response = await client.put("/api/calendar/events/missing", json=event_payload)

        assert response.status == 404

    async def test_update_invalid_returns_400(self, client, event_payload):
        response = await client.put("/api/calendar/events/1", json={**event_payload, "owner": ""})

        assert response.status == 400
        assert (await response.json())["errors"] == {"owner": ["Asigna un responsable"]}

    async def test_delete_then_delete_again(self, client, store):
        first = await client.delete("/api/calendar/events/1")
        second = await client.delete("/api/calendar/events/1")

        assert first.status == 200
        assert second.status == 404
        assert len(store) == 1


class TestEventStream:
    async def test_stream_greets_then_relays_changes(self, client, channel, event_payload):
        response = await client.get("/api/calendar/stream")
        assert response.status == 200
        assert response.headers["Content-Type"].startswith("text/event-stream")

        greeting = await read_data(response)
        assert greeting["kind"] == "activity"
        assert greeting["payload"]["title"] == "Canal en vivo conectado"
        assert channel.subscriber_count == 1

        created = await client.post("/api/calendar/events", json=event_payload)
        new_id = (await created.json())["event"]["id"]

        update = await read_data(response)
        assert update["kind"] == "calendar"
        assert update["payload"]["action"] == "created"
        assert update["payload"]["event"]["id"] == new_id

        await client.delete(f"/api/calendar/events/{new_id}")
        deleted = await read_data(response)
        assert deleted["payload"] == {"action": "deleted", "eventId": new_id}

        response.close()

    async def test_idle_stream_sends_keep_alive(self, client):
        response = await client.get("/api/calendar/stream")
        await read_data(response)

        assert await read_message(response) == ":keep-alive"

        response.close()
