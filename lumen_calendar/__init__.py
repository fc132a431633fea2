"""lumen_calendar - calendar scheduling and layout engine with an HTTP API.

Imports here stay light so the package can be inspected without starting the
event loop or pulling in aiohttp.
"""

__version__ = "0.1.0"

from typing import Optional


def run_server(args: Optional[object] = None) -> None:
    """Start the lumen_calendar HTTP server.

    Args:
        args: Optional argparse namespace with ``port`` and ``config`` overrides

    Behavior:
    - Initialize console logging early using LUMEN_LOG_LEVEL (env) if present.
    - Load the config file (``--config`` or the default location) plus
      LUMEN_* environment overrides.
    - Apply the command line port override and delegate to start_server().
    """
    import logging
    import os

    from lumen_calendar.logging_config import init_logging

    init_logging(os.environ.get("LUMEN_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from lumen_calendar.api.server import start_server
    from lumen_calendar.config_loader import load_config

    config = load_config(getattr(args, "config", None))

    port = getattr(args, "port", None)
    if port is not None:
        config.server_port = int(port)
        logger.debug("Applied command line port override: %d", config.server_port)

    logging.getLogger().setLevel(getattr(logging, config.log_level, logging.INFO))
    logger.info("Starting lumen_calendar %s on %s:%d", __version__, config.server_bind, config.server_port)
    start_server(config)
