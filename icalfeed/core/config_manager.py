"""Configuration management for the icalfeed server.

Configuration is layered, later layers winning:

1. ``config-default.yml`` shipped next to the package (or in the working directory)
2. An optional override file named by ``ICALFEED_CONFIG`` (or ``--config``)
3. Environment variables (a ``.env`` file in the working directory supplies defaults)

The result is an immutable ``AppConfig`` snapshot that is passed explicitly to
the services that need it.
"""

from __future__ import annotations

import logging
import os
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from .cache import key_fingerprint

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config-default.yml"
CONFIG_PATH_ENV = "ICALFEED_CONFIG"

DEFAULT_COLORS = ["#E3826F", "#E4A9A4", "#EFBA97", "#F1CCBB", "#E7D5C7"]


class ConfigError(Exception):
    """Configuration file is missing, unreadable or invalid."""


class ServerConfig(BaseModel):
    """Address the HTTP server listens on."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="0.0.0.0", description="Host to bind to")  # nosec B104 - overridable via config/env
    port: int = Field(default=8080, ge=1, le=65535, description="Port to listen on")


class CacheConfig(BaseModel):
    """Raw calendar body cache."""

    model_config = ConfigDict(frozen=True)

    ttl_seconds: int = Field(default=60, ge=0, description="Seconds a fetched body stays fresh")
    single_flight: bool = Field(
        default=True, description="Coalesce concurrent fetches of the same uncached source"
    )


class FetchConfig(BaseModel):
    """HTTP retrieval settings for calendar sources."""

    model_config = ConfigDict(frozen=True)

    request_timeout: float = Field(default=30.0, gt=0, description="Read timeout in seconds")
    connect_timeout: float = Field(default=10.0, gt=0, description="Connect timeout in seconds")
    max_retries: int = Field(default=2, ge=0, description="Retries after the first attempt")
    retry_backoff_factor: float = Field(default=1.5, ge=0, description="Exponential backoff base")
    max_connections: int = Field(default=10, ge=1, description="Connection pool size")


class TokensConfig(BaseModel):
    """Secrets granting access to one feed."""

    model_config = ConfigDict(frozen=True)

    private: SecretStr = Field(..., description="Full access: summaries are shown")
    public: SecretStr = Field(..., description="Free/busy access: summaries are replaced")


class CalendarSourceConfig(BaseModel):
    """One iCalendar URL contributing to a feed."""

    model_config = ConfigDict(frozen=True)

    url: SecretStr = Field(..., description="iCalendar URL (may embed credentials)")
    name: Optional[str] = Field(default=None, description="Label used in log messages")

    @property
    def label(self) -> str:
        """Name for log messages; unnamed calendars get a digest of their secret URL."""
        return self.name or key_fingerprint(self.url.get_secret_value())


class FeedConfig(BaseModel):
    """A named feed merging several calendars behind a token pair."""

    model_config = ConfigDict(frozen=True)

    name: str
    tokens: TokensConfig
    calendars: list[CalendarSourceConfig] = Field(default_factory=list)

    def is_public_token(self, token: str) -> bool:
        return token == self.tokens.public.get_secret_value()

    def accepts(self, token: str) -> bool:
        return token in (
            self.tokens.private.get_secret_value(),
            self.tokens.public.get_secret_value(),
        )


class AppConfig(BaseModel):
    """Complete configuration snapshot."""

    model_config = ConfigDict(frozen=True)

    server: ServerConfig = Field(default_factory=ServerConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    log_level: str = "INFO"
    colors: list[str] = Field(default_factory=lambda: list(DEFAULT_COLORS))
    feeds: list[FeedConfig] = Field(default_factory=list)

    def get_feed_by_token(self, token: str) -> Optional[FeedConfig]:
        """Return the feed whose private or public token equals ``token``."""
        if not token:
            return None
        for feed in self.feeds:
            if feed.accepts(token):
                return feed
        return None


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
        - Handles KEY=VALUE format with optional whitespace
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return {}

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, val = line.split("=", 1)
        key = key.strip()
        if key:
            result[key] = val.strip().strip('"').strip("'")

    return result


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Unable to read config file {path}: {e}") from e
    # safe_load returns None for empty files
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at top level")
    return loaded


class ConfigManager:
    """Builds the AppConfig snapshot from files and environment variables."""

    def __init__(
        self,
        config_path: Optional[Path] = None,
        default_path: Optional[Path] = None,
        env_file_path: Optional[Path] = None,
        environ: Optional[MutableMapping[str, str]] = None,
    ):
        """Initialize configuration manager.

        Args:
            config_path: Optional override file (defaults to ``$ICALFEED_CONFIG``)
            default_path: Base config file (defaults to ``config-default.yml``)
            env_file_path: Optional .env file (defaults to .env in current directory)
            environ: Environment mapping (defaults to ``os.environ``)
        """
        self.environ = environ if environ is not None else os.environ
        self.env_file_path = env_file_path or Path.cwd() / ".env"
        self.default_path = default_path or self._find_default_config()
        self.config_path = config_path

    @staticmethod
    def _find_default_config() -> Path:
        cwd_default = Path.cwd() / DEFAULT_CONFIG_FILE
        if cwd_default.exists():
            return cwd_default
        return Path(__file__).resolve().parents[2] / DEFAULT_CONFIG_FILE

    def load_env_file(self) -> list[str]:
        """Copy .env values into the environment mapping without overriding existing keys.

        Returns:
            List of keys that were loaded from the .env file
        """
        parsed = parse_env_file(self.env_file_path)
        set_keys = []
        for key, val in parsed.items():
            if key not in self.environ:
                self.environ[key] = val
                set_keys.append(key)
        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Collect overrides from environment variables.

        Recognizes:
        - ICALFEED_SERVER_HOST -> server.host
        - ICALFEED_SERVER_PORT -> server.port (int)
        - ICALFEED_CACHE_TTL_SECONDS -> cache.ttl_seconds (int)
        - ICALFEED_LOG_LEVEL -> log_level
        """
        cfg: dict[str, Any] = {}

        host = self.environ.get("ICALFEED_SERVER_HOST")
        if host:
            cfg.setdefault("server", {})["host"] = host

        port = self.environ.get("ICALFEED_SERVER_PORT")
        if port:
            try:
                cfg.setdefault("server", {})["port"] = int(port)
            except ValueError:
                logger.warning("Invalid ICALFEED_SERVER_PORT=%r; ignoring", port)

        ttl = self.environ.get("ICALFEED_CACHE_TTL_SECONDS")
        if ttl:
            try:
                cfg.setdefault("cache", {})["ttl_seconds"] = int(ttl)
            except ValueError:
                logger.warning("Invalid ICALFEED_CACHE_TTL_SECONDS=%r; ignoring", ttl)

        log_level = self.environ.get("ICALFEED_LOG_LEVEL")
        if log_level:
            cfg["log_level"] = log_level.upper()

        return cfg

    def load(self) -> AppConfig:
        """Load every layer and validate the merged result.

        Raises:
            ConfigError: A file cannot be parsed or the merged config is invalid
        """
        self.load_env_file()

        data: dict[str, Any] = {}
        if self.default_path.exists():
            data = _load_yaml(self.default_path)
            logger.debug("Loaded default configuration from %s", self.default_path)
        else:
            logger.info("Default config %s not found; using built-in defaults", self.default_path)

        override_path = self.config_path
        if override_path is None and self.environ.get(CONFIG_PATH_ENV):
            override_path = Path(self.environ[CONFIG_PATH_ENV])
        if override_path is not None:
            if not override_path.exists():
                raise ConfigError(f"Config file {override_path} not found")
            data = _deep_merge(data, _load_yaml(override_path))
            logger.info("Loaded configuration from %s", override_path)

        data = _deep_merge(data, self.build_config_from_env())

        try:
            config = AppConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        logger.debug(
            "Configuration: %d feeds, server %s:%d",
            len(config.feeds),
            config.server.host,
            config.server.port,
        )
        return config
