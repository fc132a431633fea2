"""HTTP API for lumen_calendar."""

from lumen_calendar.api.routes import register_calendar_routes
from lumen_calendar.api.server import make_app, start_server

__all__ = ["make_app", "register_calendar_routes", "start_server"]
