"""Read-through cache decorator for any mapper.

``CacheMapper`` wraps another mapper.  Finds consult the cache first and
populate it on a miss; updates and deletes invalidate the cached record
after delegating.  Inserts are not cached.

Usage:
    from entity_mapper import CacheMapper, DBMapper
    from entity_mapper.cache import InMemoryRecordCache

    db = DBMapper(Topic, registry, service="db", collection="topics")
    Topic.bind_mapper(CacheMapper(db, InMemoryRecordCache(), key_prefix="topic:"))
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from entity_mapper.cache import RecordCache
from entity_mapper.entity import Entity
from entity_mapper.mappers.base import Mapper

logger = logging.getLogger(__name__)


class CacheMapper(Mapper):
    """Cache decorator around ``wrapped``.

    Attributes not defined here (``select``, ``get_key``, ...) are forwarded
    to the wrapped mapper.

    Args:
        wrapped: The mapper doing the actual storage.
        cache: Record cache (``InMemoryRecordCache``, ``RedisRecordCache``).
        key_prefix: Prefix for cache keys; defaults to the entity class name.
        ttl: Seconds a cached record lives.
    """

    def __init__(
        self,
        wrapped: Mapper,
        cache: RecordCache,
        *,
        key_prefix: str = "",
        ttl: int = 300,
    ) -> None:
        super().__init__(
            wrapped.entity_class,
            wrapped.services,
            **wrapped.get_options(),
        )
        self.wrapped = wrapped
        self.cache = cache
        self.key_prefix = key_prefix or f"{wrapped.entity_class.__name__.lower()}:"
        self.ttl = ttl

    def __getattr__(self, name: str) -> Any:
        # Only called when normal lookup fails.
        if name == "wrapped":
            raise AttributeError(name)
        return getattr(self.wrapped, name)

    def get_service(self, id: Any = None) -> Any:
        return self.wrapped.get_service(id)

    def get_collection(self, id: Any = None) -> str:
        return self.wrapped.get_collection(id)

    def get_cache_key(self, id: Mapping[str, Any], collection: str | None = None) -> str:
        """Cache key for ``id``; an explicit collection is part of the key."""
        parts = [str(self.get_column(key).store(id[key])) for key in self.primary_keys]
        prefix = f"{self.key_prefix}{collection}:" if collection else self.key_prefix
        return prefix + ":".join(parts)

    # ------------------------------------------------------------------
    # Backend Operations
    # ------------------------------------------------------------------

    async def do_find(
        self,
        id: dict[str, Any],
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> Mapping[str, Any] | None:
        key = self.get_cache_key(id, collection)

        record = await self.cache.get(key)
        if record is not None:
            logger.debug("CacheMapper: hit %s", key)
            return record

        logger.debug("CacheMapper: miss %s", key)
        record = await self.wrapped.do_find(id, service=service, collection=collection)
        if record:
            cached = {k: v for k, v in record.items() if v is not None}
            await self.cache.set(key, cached, ttl_seconds=self.ttl)

        return record

    async def do_insert(
        self,
        entity: Entity,
        record: dict[str, Any],
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> Any:
        return await self.wrapped.do_insert(
            entity, record, service=service, collection=collection
        )

    async def do_update(
        self,
        entity: Entity,
        record: dict[str, Any],
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> Mapping[str, Any] | None:
        try:
            return await self.wrapped.do_update(
                entity, record, service=service, collection=collection
            )
        finally:
            await self.invalidate(entity, collection)

    async def do_delete(
        self,
        entity: Entity,
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> None:
        try:
            await self.wrapped.do_delete(entity, service=service, collection=collection)
        finally:
            await self.invalidate(entity, collection)

    async def refresh(self, entity: Entity) -> Entity:
        """Drop the cached record, then re-read from the wrapped backend."""
        if not entity.is_fresh():
            await self.invalidate(entity)
        return await super().refresh(entity)

    async def invalidate(self, entity: Entity, collection: str | None = None) -> None:
        key = self.get_cache_key(entity.get_id_values(), collection)
        logger.debug("CacheMapper: invalidate %s", key)
        await self.cache.delete(key)
