"""Shared HTTP client manager for calendar retrieval.

A single pooled ``httpx.AsyncClient`` per client id is reused across fetches.
Consecutive transport errors mark a client unhealthy; it is recreated on the
next request.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from .config_manager import FetchConfig

logger = logging.getLogger(__name__)

_shared_clients: dict[str, httpx.AsyncClient] = {}
_client_health: dict[str, dict[str, float]] = {}
_client_lock = asyncio.Lock()

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "icalfeed/1.0 (+https://github.com/icalfeed/icalfeed)",
    "Accept": "text/calendar, text/plain, application/octet-stream, */*",
    "Accept-Encoding": "gzip, deflate",
    "Cache-Control": "no-cache",
}

# Recreate client after 3 consecutive errors within 5 minutes
HEALTH_ERROR_THRESHOLD = 3
HEALTH_TIMEOUT_SECONDS = 300


def build_timeout(settings: FetchConfig) -> httpx.Timeout:
    return httpx.Timeout(
        connect=settings.connect_timeout,
        read=settings.request_timeout,
        write=10.0,
        pool=settings.request_timeout,
    )


def build_limits(settings: FetchConfig) -> httpx.Limits:
    return httpx.Limits(
        max_connections=settings.max_connections,
        max_keepalive_connections=max(1, settings.max_connections // 2),
    )


def create_client(settings: FetchConfig) -> httpx.AsyncClient:
    """Create an individual client; the caller owns and closes it."""
    return httpx.AsyncClient(
        timeout=build_timeout(settings),
        limits=build_limits(settings),
        follow_redirects=True,
        verify=True,
        headers=DEFAULT_HEADERS,
    )


async def get_shared_client(
    client_id: str = "default", settings: Optional[FetchConfig] = None
) -> httpx.AsyncClient:
    """Get or create a shared HTTP client with connection pooling.

    Args:
        client_id: Identifier for the client (allows multiple clients if needed)
        settings: Fetch settings used when the client has to be created

    Returns:
        Shared httpx.AsyncClient
    """
    async with _client_lock:
        await _recreate_client_if_unhealthy(client_id)

        if client_id not in _shared_clients or _shared_clients[client_id].is_closed:
            effective = settings or FetchConfig()
            logger.debug(
                "Creating shared HTTP client '%s' with max_connections=%d",
                client_id,
                effective.max_connections,
            )
            _shared_clients[client_id] = create_client(effective)
            _client_health[client_id] = {
                "error_count": 0,
                "last_error_time": 0,
                "created_time": time.time(),
            }
            logger.info("Created shared HTTP client '%s'", client_id)

        return _shared_clients[client_id]


async def close_all_clients() -> None:
    """Close all shared HTTP clients. Called on application shutdown."""
    async with _client_lock:
        for client_id, client in _shared_clients.items():
            if not client.is_closed:
                await client.aclose()
                logger.debug("Closed shared HTTP client '%s'", client_id)
        _shared_clients.clear()
        _client_health.clear()
        logger.info("All shared HTTP clients closed")


async def record_client_error(client_id: str = "default") -> None:
    """Record an error for health tracking."""
    async with _client_lock:
        health = _client_health.setdefault(
            client_id, {"error_count": 0, "last_error_time": 0, "created_time": time.time()}
        )
        health["error_count"] += 1
        health["last_error_time"] = time.time()
        logger.debug(
            "Recorded error for client '%s', total errors: %d", client_id, health["error_count"]
        )


async def record_client_success(client_id: str = "default") -> None:
    """Reset the error count after a successful request."""
    async with _client_lock:
        if client_id in _client_health:
            _client_health[client_id]["error_count"] = 0


async def _recreate_client_if_unhealthy(client_id: str) -> None:
    """Drop a client that has failed repeatedly so it gets recreated. Caller holds the lock."""
    health = _client_health.get(client_id)
    if health is None:
        return

    should_recreate = (
        health["error_count"] >= HEALTH_ERROR_THRESHOLD
        and (time.time() - health["last_error_time"]) < HEALTH_TIMEOUT_SECONDS
    )
    if should_recreate and client_id in _shared_clients:
        logger.warning(
            "Recreating unhealthy client '%s' due to %d errors in last %d seconds",
            client_id,
            health["error_count"],
            HEALTH_TIMEOUT_SECONDS,
        )
        old_client = _shared_clients.pop(client_id)
        del _client_health[client_id]
        if not old_client.is_closed:
            await old_client.aclose()
