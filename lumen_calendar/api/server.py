"""aiohttp server for lumen_calendar.

Wires one InMemoryEventStore and one LiveUpdateChannel into the calendar
routes and runs them until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import uuid
from typing import Any, Awaitable, Callable, Optional

from aiohttp import web

from lumen_calendar.api.routes import register_calendar_routes
from lumen_calendar.calendar.datetime_utils import now_local
from lumen_calendar.calendar.normalize import load_seed_events
from lumen_calendar.config_loader import Config
from lumen_calendar.core.event_store import InMemoryEventStore
from lumen_calendar.core.exceptions import InvalidEventError
from lumen_calendar.core.live_updates import LiveUpdateChannel
from lumen_calendar.logging_config import configure_logging, request_id_var

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

CHANNEL_KEY = web.AppKey("channel", LiveUpdateChannel)
STORE_KEY = web.AppKey("store", InMemoryEventStore)


@web.middleware
async def request_id_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Tag log records emitted while handling a request with its id."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    token = request_id_var.set(request_id)
    try:
        response = await handler(request)
        if not response.prepared:
            response.headers["X-Request-ID"] = request_id
        return response
    finally:
        request_id_var.reset(token)


def _load_initial_events(config: Config) -> list[Any]:
    if not config.seed_events_path:
        return []
    try:
        return load_seed_events(config.seed_events_path)
    except (OSError, InvalidEventError) as e:
        logger.warning("Could not load seed events from %s: %s", config.seed_events_path, e)
        return []


def make_app(
    config: Config,
    store: Optional[InMemoryEventStore] = None,
    channel: Optional[LiveUpdateChannel] = None,
    keep_alive_seconds: Optional[float] = None,
) -> web.Application:
    """Create the aiohttp application.

    Args:
        config: Application configuration
        store: Event store (built from config and seed events if omitted)
        channel: Live update channel (a fresh one if omitted)
        keep_alive_seconds: Stream keep-alive override
    """
    channel = channel or LiveUpdateChannel()
    if store is None:
        store = InMemoryEventStore.from_settings(
            config, channel=channel, initial_events=_load_initial_events(config)
        )

    app = web.Application(middlewares=[request_id_middleware])
    app[CHANNEL_KEY] = channel
    app[STORE_KEY] = store

    extra: dict[str, Any] = {}
    if keep_alive_seconds is not None:
        extra["keep_alive_seconds"] = keep_alive_seconds
    register_calendar_routes(
        app=app,
        config=config,
        store=store,
        channel=channel,
        time_provider=now_local,
        **extra,
    )

    async def _shutdown(app_: web.Application) -> None:
        logger.info("Application shutdown requested")
        app_[CHANNEL_KEY].close()

    app.on_shutdown.append(_shutdown)
    logger.debug("Web application created with %d stored events", len(store))
    return app


async def _serve(config: Config, stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the HTTP server until ``stop_event`` is set (or a signal arrives)."""
    app = make_app(config)
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host=config.server_bind, port=config.server_port)
    try:
        await site.start()
    except OSError:
        logger.exception("Failed to start server on %s:%d", config.server_bind, config.server_port)
        await runner.cleanup()
        raise
    logger.info("Server started on %s:%d", config.server_bind, config.server_port)

    owns_signals = stop_event is None
    stop = stop_event or asyncio.Event()
    if owns_signals:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

    await stop.wait()
    logger.info("Stop event received, shutting down")
    await runner.cleanup()
    logger.info("Server shutdown complete")


def start_server(config: Config) -> None:
    """Start the asyncio event loop and HTTP server.

    Blocks the calling thread until SIGINT/SIGTERM is received.
    """
    configure_logging(debug_mode=config.log_level == "DEBUG")
    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
