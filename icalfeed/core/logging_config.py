"""Logger level configuration for icalfeed.

Suppresses verbose debug output from third-party libraries while keeping
WARNING/ERROR/INFO logs for diagnostics.
"""

import logging
import os
from typing import Optional

NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "aiohttp.web_log": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def is_debug_env() -> bool:
    return os.getenv("ICALFEED_DEBUG", "").strip().lower() in ("1", "true", "yes", "on")


def configure_logging(level_name: Optional[str] = None, force_debug: Optional[bool] = None) -> int:
    """Apply root and per-library log levels.

    Args:
        level_name: Requested root level (e.g. from config)
        force_debug: Override debug detection (None to use ICALFEED_DEBUG)

    Environment Variables:
        ICALFEED_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        ICALFEED_LOG_LEVEL: Override root log level

    Returns:
        The root level that was applied
    """
    debug = force_debug if force_debug is not None else is_debug_env()

    env_level = os.getenv("ICALFEED_LOG_LEVEL", "").upper()
    requested = (level_name or "").upper()
    if debug:
        root_level = logging.DEBUG
    elif env_level in _VALID_LEVELS:
        root_level = getattr(logging, env_level)
    elif requested in _VALID_LEVELS:
        root_level = getattr(logging, requested)
    else:
        root_level = logging.INFO

    logging.getLogger().setLevel(root_level)
    for logger_name, level in NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)
    logging.getLogger("icalfeed").setLevel(logging.DEBUG if debug else root_level)

    logging.getLogger(__name__).debug(
        "Logging configured: root=%s debug=%s", logging.getLevelName(root_level), debug
    )
    return root_level


def get_logging_status() -> dict[str, str]:
    """Map key logger names to their current levels."""
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ("icalfeed", "aiohttp.access", "httpx", "asyncio"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
