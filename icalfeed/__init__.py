"""icalfeed - merge iCalendar feeds into a windowed, optionally anonymized event stream.

Imports are kept light so the package can be inspected without pulling in the
server stack.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Installs a colorized stream handler so that early startup messages are
    visible. Callers may adjust the level later (e.g. from config).

    Honors the ICALFEED_DEBUG environment variable (truthy values: "1",
    "true", "yes", "on") which forces DEBUG verbosity.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("ICALFEED_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none is present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message (only the level is colorized)
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def run_server(args: Optional[object] = None) -> None:
    """Load configuration and start the icalfeed server.

    Args:
        args: Optional command line namespace with ``config``, ``host`` and ``port``

    Behavior:
    - Initialize console logging early using ICALFEED_LOG_LEVEL (env) if present.
    - Load the layered configuration and apply command line overrides.
    - Apply the configured log level, then block in the server until shutdown.
    """
    import logging
    import os
    from pathlib import Path

    _init_logging(os.environ.get("ICALFEED_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from icalfeed.api.server import start_server
    from icalfeed.core.config_manager import ConfigManager
    from icalfeed.core.logging_config import configure_logging

    config_path = getattr(args, "config", None)
    config = ConfigManager(Path(config_path) if config_path else None).load()

    overrides = {}
    host = getattr(args, "host", None)
    if host:
        overrides["host"] = host
    port = getattr(args, "port", None)
    if port is not None:
        overrides["port"] = int(port)
        logger.debug("Applied command line port override: %d", overrides["port"])
    if overrides:
        config = config.model_copy(
            update={"server": config.server.model_copy(update=overrides)}
        )

    configure_logging(config.log_level)

    # Only non-secret settings: tokens and calendar URLs stay out of the logs.
    logger.debug(
        "Resolved configuration: server=%s:%d cache_ttl=%ss feeds=%s",
        config.server.host,
        config.server.port,
        config.cache.ttl_seconds,
        [feed.name for feed in config.feeds],
    )

    start_server(config)
