"""aiohttp server wiring for icalfeed."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Optional

from aiohttp import web

from icalfeed.api.routes import register_feed_routes
from icalfeed.calendar.fetcher import CalendarFetcher
from icalfeed.core.cache import InMemoryTTLCache, SourceCache
from icalfeed.core.config_manager import AppConfig
from icalfeed.core.http_client import close_all_clients
from icalfeed.domain.feed_service import Fetcher, FeedService

logger = logging.getLogger(__name__)


def build_feed_service(
    config: AppConfig,
    cache: Optional[SourceCache] = None,
    fetcher: Optional[Fetcher] = None,
) -> FeedService:
    """Create the aggregator with the default cache and fetcher unless given."""
    return FeedService(
        config,
        cache if cache is not None else InMemoryTTLCache(ttl_seconds=config.cache.ttl_seconds),
        fetcher if fetcher is not None else CalendarFetcher(config.fetch),
    )


def make_app(config: AppConfig, feed_service: Optional[FeedService] = None) -> web.Application:
    """Create the aiohttp application with feed routes registered."""
    app = web.Application()
    service = feed_service or build_feed_service(config)
    register_feed_routes(app, config, service)

    async def _shutdown(_app: web.Application) -> None:
        logger.info("Application shutdown requested")
        await close_all_clients()

    app.on_shutdown.append(_shutdown)
    return app


async def _serve(config: AppConfig, external_stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the server until signalled to stop.

    Args:
        config: Configuration snapshot
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are not registered (caller owns signal handling).
    """
    stop_event = external_stop_event or asyncio.Event()

    app = make_app(config)
    runner = web.AppRunner(app)
    await runner.setup()

    host = config.server.host
    port = config.server.port
    site = web.TCPSite(runner, host=host, port=port)
    try:
        await site.start()
    except OSError:
        logger.exception("Failed to start server on %s:%d", host, port)
        await runner.cleanup()
        raise

    logger.info(
        "Server started on %s:%d serving %d feeds", host, port, len(config.feeds)
    )

    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

    await stop_event.wait()
    logger.info("Stop event received, shutting down")
    await runner.cleanup()
    logger.info("Server shutdown complete")


def start_server(config: AppConfig) -> None:
    """Run the asyncio event loop and HTTP server; blocks until SIGINT/SIGTERM."""
    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
