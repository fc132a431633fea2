"""lumen_calendar.config_loader

Config loader for lumen_calendar.

- Reads YAML with PyYAML (JSON files are valid YAML and load the same way).
- Exposes a typed dataclass `Config` and a `load_config()` helper that accepts
  an optional path override.
- Environment variables override file values (see ENV_OVERRIDES).
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from lumen_calendar.calendar.models import ViewMode
from lumen_calendar.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

# Environment variable -> Config field
ENV_OVERRIDES = {
    "LUMEN_SERVER_PORT": "server_port",
    "LUMEN_SERVER_BIND": "server_bind",
    "LUMEN_LOG_LEVEL": "log_level",
    "LUMEN_SEED_EVENTS": "seed_events_path",
    "LUMEN_STORE_TIMEOUT": "store_timeout_seconds",
}


@dataclass
class Config:
    """Typed configuration for lumen_calendar.

    Fields:
        default_view: initial view mode (day, week or month)
        min_event_minutes: visual floor for short events on the day grid
        minutes_per_slot: minutes covered by one grid slot
        slot_height: pixel height of one grid slot
        store_timeout_seconds: how long a mutation waits for the store
        max_occurrences_per_rule: cap on occurrences per expansion call
        max_store_events: events retained by the in-memory store
        seed_events_path: optional YAML/JSON file with initial events
        server_bind: host to bind the HTTP server to
        server_port: port for the HTTP server
        log_level: logging level name
    """

    default_view: str = ViewMode.MONTH.value
    min_event_minutes: int = 30
    minutes_per_slot: int = 30
    slot_height: float = 56.0
    store_timeout_seconds: float = 10.0
    max_occurrences_per_rule: int = 500
    max_store_events: int = 60
    seed_events_path: Optional[str] = None
    server_bind: str = "127.0.0.1"
    server_port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric values are coerced and kept within sane bounds; every coercion
        logs a warning and falls back to the default or the nearest bound.
        """
        if data is None:
            data = {}
        defaults = cls()

        def _coerce_int(key: str, default: int, minimum: int = 1) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < minimum:
                logger.warning("Config %s=%d below minimum; coercing to %d", key, value, minimum)
                return minimum
            return value

        def _coerce_float(key: str, default: float, minimum: float) -> float:
            raw = data.get(key, default)
            try:
                value = float(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not a number; using default %s", key, raw, default)
                return default
            if value < minimum:
                logger.warning("Config %s=%s below minimum; coercing to %s", key, value, minimum)
                return minimum
            return value

        default_view = str(data.get("default_view", defaults.default_view)).lower()
        if default_view not in {mode.value for mode in ViewMode}:
            logger.warning("Config default_view=%r is not a view mode; using month", default_view)
            default_view = defaults.default_view

        minutes_per_slot = _coerce_int("minutes_per_slot", defaults.minutes_per_slot)
        if minutes_per_slot > 60:
            logger.warning("minutes_per_slot %d above maximum; coercing to 60", minutes_per_slot)
            minutes_per_slot = 60

        server_port = _coerce_int("server_port", defaults.server_port)
        if server_port > 65535:
            logger.warning("server_port %d out of range; using default %d", server_port, defaults.server_port)
            server_port = defaults.server_port

        server_bind = data.get("server_bind", defaults.server_bind)
        server_bind = str(server_bind) if server_bind else defaults.server_bind

        log_level = data.get("log_level", defaults.log_level)
        log_level = str(log_level).upper() if log_level else defaults.log_level

        seed_events_path = data.get("seed_events_path")
        if seed_events_path is not None:
            seed_events_path = str(seed_events_path)

        return cls(
            default_view=default_view,
            min_event_minutes=_coerce_int("min_event_minutes", defaults.min_event_minutes),
            minutes_per_slot=minutes_per_slot,
            slot_height=_coerce_float("slot_height", defaults.slot_height, 1.0),
            store_timeout_seconds=_coerce_float(
                "store_timeout_seconds", defaults.store_timeout_seconds, 0.1
            ),
            max_occurrences_per_rule=_coerce_int(
                "max_occurrences_per_rule", defaults.max_occurrences_per_rule
            ),
            max_store_events=_coerce_int("max_store_events", defaults.max_store_events),
            seed_events_path=seed_events_path,
            server_bind=server_bind,
            server_port=server_port,
            log_level=log_level,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _load_yaml(path: Path) -> Any:
    """Load a YAML (or JSON) document; empty files yield an empty mapping."""
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Unable to read config file {path}: {exc}") from exc
    return {} if loaded is None else loaded


def apply_env_overrides(data: dict[str, Any], environ: Optional[dict[str, str]] = None) -> dict[str, Any]:
    """Return a copy of ``data`` with LUMEN_* environment values applied."""
    env = os.environ if environ is None else environ
    merged = dict(data)
    for var, key in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            logger.debug("Config %s overridden by %s", key, var)
            merged[key] = value
    return merged


def load_config(path: Optional[str] = None, environ: Optional[dict[str, str]] = None) -> Config:
    """Load configuration from a YAML/JSON file and return a Config instance.

    Args:
        path: Optional path to the config file. If not provided the default is
              ./lumen_calendar/config.yaml (relative to current working dir).
        environ: Environment mapping for overrides (defaults to os.environ)

    Returns:
        Config dataclass instance with values from file, env and defaults.

    Behavior:
    - If file is missing: defaults plus environment overrides.
    - If file exists but top-level is not a mapping: raises ConfigError.
    """
    p = Path(path) if path else Path.cwd() / "lumen_calendar" / "config.yaml"
    logger.debug("Attempting to load config from %s", p)

    raw: Any = {}
    if p.exists():
        raw = _load_yaml(p)
        if not isinstance(raw, dict):
            logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
            raise ConfigError("Config file must contain a mapping at top level")
        logger.info("Loaded configuration from %s", p)
    else:
        logger.info("Config file %s not found; using defaults", p)

    cfg = Config.from_dict(apply_env_overrides(raw, environ))
    logger.debug("Configuration values: %s", cfg)
    return cfg
