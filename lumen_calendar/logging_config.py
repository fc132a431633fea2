"""
Central logging configuration for lumen_calendar.

Console output goes through colorlog's ColoredFormatter. Noisy third-party
loggers (aiohttp access logs, asyncio) are kept at WARNING while the
lumen_calendar modules follow the debug setting. Every record carries the id
of the HTTP request it was emitted under, or "-" outside a request.
"""

import contextvars
import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s [%(request_id)s] %(name)s: %(message)s"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

_TRUTHY = ("1", "true", "yes", "on")

# Loggers kept quiet regardless of the debug setting
QUIET_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "aiohttp.web_log": logging.WARNING,
    "asyncio": logging.WARNING,
}

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def build_console_handler(level: int = logging.INFO) -> logging.Handler:
    """Create a stderr handler with colorized level names."""
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
    handler.addFilter(RequestIdFilter())
    return handler


def _env_debug() -> bool:
    return os.getenv("LUMEN_DEBUG", "").strip().lower() in _TRUTHY


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure console logging and per-logger levels.

    Args:
        debug_mode: Whether to enable debug logging for lumen_calendar modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        LUMEN_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        LUMEN_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_log_level = os.getenv("LUMEN_LOG_LEVEL", "").strip().upper()

    if force_debug is not None:
        final_debug = force_debug
    elif _env_debug():
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    if not root_logger.handlers:
        root_logger.addHandler(build_console_handler(root_level))
    else:
        for handler in root_logger.handlers:
            if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
                handler.addFilter(RequestIdFilter())

    for logger_name, level in QUIET_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)
    logging.getLogger("lumen_calendar").setLevel(logging.DEBUG if final_debug else logging.INFO)

    if final_debug:
        root_logger.info("Debug logging enabled for lumen_calendar modules")
    else:
        root_logger.info("Production logging configuration applied")


def init_logging(level_name: Optional[str]) -> None:
    """Install the console handler early and set the root level by name.

    LUMEN_DEBUG forces DEBUG regardless of ``level_name``. Unknown names
    fall back to INFO.
    """
    if _env_debug():
        level_name = "DEBUG"

    level = logging.INFO
    if isinstance(level_name, str):
        candidate = logging.getLevelName(level_name.upper())
        if isinstance(candidate, int):
            level = candidate

    root = logging.getLogger()
    if not root.handlers:
        root.addHandler(build_console_handler(logging.NOTSET))
    root.setLevel(level)
    logging.getLogger(__name__).debug("Logging initialized at level %s", logging.getLevelName(level))


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["lumen_calendar", "aiohttp.access", "aiohttp.server", "asyncio"]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
