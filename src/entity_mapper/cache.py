"""Record caches used by ``CacheMapper``.

A record cache maps string keys to encoded backend records (plain dicts of
JSON-friendly values).  All operations are async so the Redis-backed
implementation and the in-memory one are interchangeable.

Usage:
    from entity_mapper.cache import InMemoryRecordCache, RedisRecordCache

    cache = InMemoryRecordCache(max_size=1000, default_ttl_seconds=300)
    await cache.set("topic:1", {"topic_id": 1, "subject": "hi"})
    await cache.get("topic:1")

    cache = RedisRecordCache(registry.get("redis"), default_ttl_seconds=300)
"""

from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class RecordCache(Protocol):
    """Async cache of encoded records."""

    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the cached record, or ``None`` if missing or expired."""
        ...

    async def set(self, key: str, record: dict[str, Any], *, ttl_seconds: int | None = None) -> None:
        """Store a record; ``ttl_seconds=None`` uses the cache default."""
        ...

    async def delete(self, key: str) -> None:
        """Remove a key.  No-op if it does not exist."""
        ...


class InMemoryRecordCache:
    """Bounded single-process LRU cache with lazy TTL expiry.

    Records are copied on the way in and out so callers cannot mutate
    cached state.

    Args:
        max_size: Maximum number of keys before LRU eviction.
        default_ttl_seconds: TTL applied when ``set`` gets none
            (``None`` means no expiry).
    """

    def __init__(self, *, max_size: int = 10_000, default_ttl_seconds: int | None = 300) -> None:
        self._store: OrderedDict[str, tuple[dict[str, Any], float | None]] = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl_seconds

    async def get(self, key: str) -> dict[str, Any] | None:
        entry = self._store.get(key)
        if entry is None:
            return None

        record, expires_at = entry
        if expires_at is not None and time.monotonic() > expires_at:
            del self._store[key]
            return None

        self._store.move_to_end(key)
        return dict(record)

    async def set(self, key: str, record: dict[str, Any], *, ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        expires_at = (time.monotonic() + ttl) if ttl else None

        if key not in self._store and len(self._store) >= self._max_size:
            evicted, _ = self._store.popitem(last=False)
            logger.debug("InMemoryRecordCache: evicted %s", evicted)

        self._store[key] = (dict(record), expires_at)
        self._store.move_to_end(key)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def size(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        self._store.clear()


class RedisRecordCache:
    """Redis-backed record cache.

    Records are serialized to JSON strings and written with ``SETEX`` (or
    ``SET`` when no TTL applies).

    Args:
        client: A ``redis.asyncio.Redis`` client.
        default_ttl_seconds: TTL applied when ``set`` gets none.
    """

    def __init__(self, client: Any, *, default_ttl_seconds: int | None = 300) -> None:
        self._client = client
        self._default_ttl = default_ttl_seconds

    async def get(self, key: str) -> dict[str, Any] | None:
        raw = await self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, record: dict[str, Any], *, ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        payload = json.dumps(record, default=str)

        if ttl:
            await self._client.setex(key, ttl, payload)
        else:
            await self._client.set(key, payload)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)
