"""Calendar API routes for lumen_calendar."""

from __future__ import annotations

import asyncio
import datetime
import json
import logging
import uuid
from typing import Any, Callable, Optional

from aiohttp import web

from lumen_calendar.calendar.datetime_utils import parse_local_datetime
from lumen_calendar.calendar.models import FilterState, ViewMode
from lumen_calendar.core.event_store import InMemoryEventStore, StoreResult
from lumen_calendar.core.live_updates import (
    Activity,
    ActivityUpdate,
    LiveUpdateChannel,
    encode_live_update,
)
from lumen_calendar.domain.pipeline import render_view

logger = logging.getLogger(__name__)

KEEP_ALIVE_SECONDS = 15.0


def _bad_request(message: str) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=400)


def _parse_date_param(request: web.Request, name: str) -> Optional[datetime.date]:
    """Read an optional YYYY-MM-DD query parameter.

    Raises:
        ValueError: If the parameter is present but not a date
    """
    raw = request.query.get(name)
    if not raw:
        return None
    parsed = parse_local_datetime(raw)
    if parsed is None:
        raise ValueError(f"Invalid {name!r} date: {raw}")
    return parsed.date()


def _store_response(result: StoreResult, success_status: int = 200) -> web.Response:
    if result.success:
        return web.json_response(result.to_dict(), status=success_status)
    return web.json_response(result.to_dict(), status=404 if result.not_found else 400)


async def _read_json_object(request: web.Request) -> dict[str, Any]:
    """Decode the request body as a JSON object.

    Raises:
        ValueError: If the body is not a JSON object
    """
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise ValueError(f"Request body is not valid JSON: {e}") from e
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def _connected_notice() -> ActivityUpdate:
    return ActivityUpdate(
        payload=Activity(
            id=str(uuid.uuid4()),
            type="email",
            title="Canal en vivo conectado",
            description="Recibirás actualizaciones del equipo en tiempo real",
            timestamp="Ahora",
            user="Sistema Lumen",
        )
    )


def register_calendar_routes(
    app: web.Application,
    config: Any,
    store: InMemoryEventStore,
    channel: LiveUpdateChannel,
    time_provider: Callable[[], datetime.datetime],
    keep_alive_seconds: float = KEEP_ALIVE_SECONDS,
) -> None:
    """Register calendar API routes.

    Args:
        app: aiohttp web application
        config: Application configuration (layout geometry, default view)
        store: Event store backing the endpoints
        channel: Live update channel relayed by the stream endpoint
        time_provider: Callable returning the current local time
        keep_alive_seconds: Idle interval between stream keep-alive comments
    """

    async def health_check(_request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response(
            {
                "status": "ok",
                "server_time": time_provider().isoformat(),
                "event_count": len(store),
                "stream_subscribers": channel.subscriber_count,
            }
        )

    async def calendar_view(request: web.Request) -> web.Response:
        """Render the calendar for a date, view mode and filter facets."""
        try:
            selected = _parse_date_param(request, "date") or time_provider().date()
            view_mode = ViewMode(request.query.get("view") or config.default_view)
            calendars = request.query.get("calendars", "")
            filters = FilterState(
                term=request.query.get("q", ""),
                owner=request.query.get("owner") or None,
                participant=request.query.get("participant") or None,
                start_date=_parse_date_param(request, "from"),
                end_date=_parse_date_param(request, "to"),
                calendars=frozenset(c.strip() for c in calendars.split(",") if c.strip()),
            )
        except ValueError as e:
            return _bad_request(str(e))

        events = await store.list_events()
        view = render_view(events, selected, view_mode, filters, config)
        logger.debug("/api/calendar/view %s %s -> %d events", view_mode.value, selected, view.visible_count)
        return web.json_response(view.model_dump(mode="json"))

    async def list_events(_request: web.Request) -> web.Response:
        events = await store.list_events()
        return web.json_response({"events": [event.model_dump(mode="json") for event in events]})

    async def create_event(request: web.Request) -> web.Response:
        try:
            body = await _read_json_object(request)
        except ValueError as e:
            return _bad_request(str(e))
        body.pop("id", None)
        return _store_response(await store.create(body), success_status=201)

    async def update_event(request: web.Request) -> web.Response:
        try:
            body = await _read_json_object(request)
        except ValueError as e:
            return _bad_request(str(e))
        body["id"] = request.match_info["event_id"]
        return _store_response(await store.update(body))

    async def delete_event(request: web.Request) -> web.Response:
        return _store_response(await store.delete(request.match_info["event_id"]))

    async def event_stream(request: web.Request) -> web.StreamResponse:
        """Relay live updates as server-sent events until the client leaves."""
        response = web.StreamResponse(
            headers={
                "Content-Type": "text/event-stream",
                "Cache-Control": "no-cache, no-transform",
                "Connection": "keep-alive",
            }
        )
        await response.prepare(request)

        queue: asyncio.Queue[Any] = asyncio.Queue()
        subscription = channel.subscribe(queue.put_nowait)
        logger.info("Stream client connected (%d subscribers)", channel.subscriber_count)

        try:
            await response.write(f"data: {encode_live_update(_connected_notice())}\n\n".encode())
            while not channel.closed:
                try:
                    update = await asyncio.wait_for(queue.get(), timeout=keep_alive_seconds)
                except asyncio.TimeoutError:
                    await response.write(b":keep-alive\n\n")
                    continue
                await response.write(f"data: {encode_live_update(update)}\n\n".encode())
        except (ConnectionResetError, ConnectionError) as e:
            logger.debug("Stream client went away: %s", e)
        finally:
            subscription.unsubscribe()
            logger.info("Stream client disconnected (%d subscribers)", channel.subscriber_count)

        return response

    app.router.add_get("/api/health", health_check)
    app.router.add_get("/api/calendar/view", calendar_view)
    app.router.add_get("/api/calendar/events", list_events)
    app.router.add_post("/api/calendar/events", create_event)
    app.router.add_put("/api/calendar/events/{event_id}", update_event)
    app.router.add_delete("/api/calendar/events/{event_id}", delete_event)
    app.router.add_get("/api/calendar/stream", event_stream)
