"""Time-bounded cache for raw calendar bodies.

Entries are keyed by source URL and hold the complete fetched body. A body is
inserted only after it has been received in full, so readers never observe a
partial document.
"""

from __future__ import annotations

import hashlib
import logging
import time
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


def key_fingerprint(key: str) -> str:
    """Short stable digest of a cache key, safe to log for secret URLs."""
    # MD5 for speed; not a security boundary
    return hashlib.md5(key.encode()).hexdigest()[:12]  # nosec B324


class SourceCache(Protocol):
    """Storage for fetched calendar bodies."""

    def get(self, key: str) -> Optional[bytes]:
        """Return the body for ``key`` if present and not expired."""
        ...

    def insert(self, key: str, body: bytes) -> None:
        """Store a complete body for ``key``."""
        ...

    def evict_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        ...


class InMemoryTTLCache:
    """Process-local SourceCache with a fixed time-to-live.

    Example:
        cache = InMemoryTTLCache(ttl_seconds=60)

        body = cache.get(url)
        if body is None:
            body = await fetcher.fetch(url)
            cache.insert(url, body)
    """

    def __init__(
        self,
        ttl_seconds: float = 60,
        max_size: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize cache.

        Args:
            ttl_seconds: Seconds an entry stays fresh after insertion
            max_size: Optional entry limit (oldest entry evicted first)
            clock: Monotonic time source, injectable for tests
        """
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, tuple[bytes, float]] = {}  # key -> (body, expires_at)
        self.stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[bytes]:
        entry = self._entries.get(key)
        if entry is not None:
            body, expires_at = entry
            if self._clock() < expires_at:
                self.stats["hits"] += 1
                logger.debug("Cache hit for source %s", key_fingerprint(key))
                return body
            del self._entries[key]
            self.stats["evictions"] += 1
            logger.debug("Cache entry expired for source %s", key_fingerprint(key))

        self.stats["misses"] += 1
        return None

    def insert(self, key: str, body: bytes) -> None:
        if self.max_size is not None and key not in self._entries and len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            self.stats["evictions"] += 1
        # re-insert so dict order tracks insertion time
        self._entries.pop(key, None)
        self._entries[key] = (body, self._clock() + self.ttl_seconds)
        logger.debug(
            "Cached %d bytes for source %s (ttl %ss)", len(body), key_fingerprint(key), self.ttl_seconds
        )

    def evict_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        self.stats["evictions"] += len(expired)
        if expired:
            logger.debug("Evicted %d expired cache entries", len(expired))
        return len(expired)

    def get_stats(self) -> dict[str, int]:
        return {**self.stats, "size": len(self._entries)}
