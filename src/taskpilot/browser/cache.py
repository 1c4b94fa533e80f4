"""
Page Chunk Cache

TTL cache for the embedded text chunks of a page, so repeated
SEARCH_PAGE calls on an unchanged page embed it only once.

Entries are keyed by URL plus a digest of the page text; a changed page
simply misses the cache.

Usage:
    chunks = await chunk_cache.get_or_set(
        key=chunk_cache.key(url, text),
        compute_fn=lambda: embed_chunks(text),
    )
"""

import asyncio
import hashlib
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional


@dataclass
class EmbeddedChunks:
    """Text chunks of one page and their vectors, index aligned."""

    chunks: list[str]
    vectors: list[list[float]]


class PageChunkCache:
    """
    TTL cache of embedded page chunks.

    Features:
    - Time-based expiration
    - Bounded size (oldest entry evicted first)
    - Async-safe get_or_set
    """

    def __init__(self, default_ttl: float = 300.0, max_entries: int = 32):
        """
        Initialize cache.

        Args:
            default_ttl: Time-to-live in seconds
            max_entries: Entries kept before the oldest is evicted
        """
        self._cache: dict[str, tuple[EmbeddedChunks, float]] = {}
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._lock = asyncio.Lock()

    @staticmethod
    def key(url: str, text: str) -> str:
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]
        return f"{url}#{digest}"

    def get(self, key: str) -> Optional[EmbeddedChunks]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        value, expiry = entry
        if time.time() > expiry:
            del self._cache[key]
            return None
        return value

    def set(self, key: str, value: EmbeddedChunks, ttl: Optional[float] = None) -> None:
        ttl = ttl if ttl is not None else self._default_ttl
        if key not in self._cache and len(self._cache) >= self._max_entries:
            oldest = min(self._cache, key=lambda k: self._cache[k][1])
            del self._cache[oldest]
        self._cache[key] = (value, time.time() + ttl)

    async def get_or_set(
        self,
        key: str,
        compute_fn: Callable[[], Awaitable[EmbeddedChunks]],
        ttl: Optional[float] = None,
    ) -> EmbeddedChunks:
        """
        Get chunks from cache or compute and cache them.

        Errors from compute_fn propagate and nothing is cached.
        """
        async with self._lock:
            value = self.get(key)
            if value is not None:
                return value
            value = await compute_fn()
            self.set(key, value, ttl)
            return value

    def invalidate(self, key: Optional[str] = None) -> None:
        if key is None:
            self._cache.clear()
        else:
            self._cache.pop(key, None)

    def __len__(self) -> int:
        return len(self._cache)
