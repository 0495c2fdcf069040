"""Feed aggregation: fan out over a feed's calendars and merge occurrences."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol

from ..calendar.exceptions import InvalidFeedToken, InvalidWindow, SourceError
from ..calendar.models import PrimitiveEvent
from ..calendar.parser import expand_document
from ..core.cache import SourceCache, key_fingerprint
from ..core.config_manager import AppConfig, CalendarSourceConfig

logger = logging.getLogger(__name__)

BUSY_SUMMARY = "Busy"


class Fetcher(Protocol):
    async def fetch(self, url: str) -> bytes: ...


@dataclass(frozen=True)
class SourceResult:
    """Outcome of one calendar source: its occurrences or the error that excluded it."""

    source: str
    events: list[PrimitiveEvent] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class FeedService:
    """Resolves a token to a feed and builds its occurrence list for a window.

    Example:
        service = FeedService(config, InMemoryTTLCache(60), CalendarFetcher(config.fetch))
        events = await service.get_feed(token, start, end)
    """

    def __init__(self, config: AppConfig, cache: SourceCache, fetcher: Fetcher):
        self.config = config
        self.cache = cache
        self.fetcher = fetcher
        self.single_flight = config.cache.single_flight
        self._locks: dict[str, asyncio.Lock] = {}

    async def _fetch_and_store(self, url: str) -> bytes:
        body = await self.fetcher.fetch(url)
        # only complete bodies reach the cache; a cancelled fetch stores nothing
        self.cache.insert(url, body)
        return body

    async def load_source(self, url: str) -> bytes:
        """Return the raw body for ``url`` from cache, fetching on a miss."""
        body = self.cache.get(url)
        if body is not None:
            return body

        if not self.single_flight:
            return await self._fetch_and_store(url)

        lock = self._locks.setdefault(url, asyncio.Lock())
        async with lock:
            # another task may have filled the cache while we waited
            body = self.cache.get(url)
            if body is not None:
                logger.debug("Source %s filled by concurrent fetch", key_fingerprint(url))
                return body
            return await self._fetch_and_store(url)

    async def _process_source(
        self, calendar: CalendarSourceConfig, window_start: datetime, window_end: datetime
    ) -> SourceResult:
        url = calendar.url.get_secret_value()
        label = calendar.label
        try:
            body = await self.load_source(url)
            events = await asyncio.to_thread(expand_document, body, window_start, window_end)
        except SourceError as e:
            logger.error("Calendar %s excluded from feed: %s", label, e)
            return SourceResult(source=label, error=e)
        except Exception as e:
            logger.exception("Unexpected error processing calendar %s", label)
            return SourceResult(source=label, error=e)

        logger.debug("Calendar %s contributed %d occurrences", label, len(events))
        return SourceResult(source=label, events=events)

    async def get_feed(
        self, token: str, window_start: datetime, window_end: datetime
    ) -> list[PrimitiveEvent]:
        """Merged occurrences of every calendar behind ``token`` within the window.

        Calendars are processed concurrently; results keep configured order.
        A failing calendar is logged and left out. A public token replaces
        every summary with "Busy".

        Raises:
            InvalidFeedToken: Token matches no configured feed
            InvalidWindow: Window start is after its end
        """
        feed = self.config.get_feed_by_token(token)
        if feed is None:
            raise InvalidFeedToken("Invalid token")
        if window_start > window_end:
            raise InvalidWindow("Window start must not be after window end")

        self.cache.evict_expired()

        results = await asyncio.gather(
            *(self._process_source(c, window_start, window_end) for c in feed.calendars)
        )

        events: list[PrimitiveEvent] = []
        for result in results:
            events.extend(result.events)

        failed = [r.source for r in results if not r.ok]
        if failed:
            logger.warning(
                "Feed %s served without %d of %d calendars: %s",
                feed.name,
                len(failed),
                len(results),
                ", ".join(failed),
            )

        if feed.is_public_token(token):
            events = [PrimitiveEvent(range=e.range, summary=BUSY_SUMMARY) for e in events]

        return events
