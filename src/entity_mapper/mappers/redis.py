"""Key-value mapper storing each entity as a Redis hash.

The key is ``key_prefix`` followed by the identity: the bare value for a
single primary key, ``k1:v1;k2:v2`` for a composite one.

Usage:
    from entity_mapper import RedisMapper

    Session.bind_mapper(
        RedisMapper(Session, registry, service="redis", key_prefix="session:")
    )
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from entity_mapper.entity import Entity
from entity_mapper.errors import DuplicateKeyError, MapperError
from entity_mapper.mappers.base import Mapper

if TYPE_CHECKING:
    from entity_mapper.services import ServiceRegistry

logger = logging.getLogger(__name__)


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


def _encode(value: Any) -> Any:
    """Field value accepted by HSET (str, bytes, int or float)."""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, (str, bytes, int, float)):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


class RedisMapper(Mapper):
    """Mapper for ``redis.asyncio`` clients.

    Options:
        key_prefix: Prepended to every key (default ``""``).  An explicit
            ``collection`` passed to a ``do_*`` call replaces it.
    """

    def __init__(
        self,
        entity_class: type[Entity],
        services: ServiceRegistry | None = None,
        *,
        key_prefix: str = "",
        **options: Any,
    ) -> None:
        super().__init__(entity_class, services, key_prefix=key_prefix, **options)

    def get_collection(self, id: Any = None) -> str:
        return self.options.collection

    def get_key(self, id: Mapping[str, Any], prefix: str | None = None) -> str:
        """Build the hash key for an identity mapping.

        ``prefix`` replaces the ``key_prefix`` option (an explicit
        collection override).
        """
        parts: list[str] = []
        for key in self.primary_keys:
            value = id.get(key)
            if value is None:
                raise MapperError(f"RedisMapper: {key!r} is null, cannot build key")
            parts.append(str(self.get_column(key).store(value)))

        if len(parts) == 1:
            suffix = parts[0]
        else:
            suffix = ";".join(f"{key}:{part}" for key, part in zip(self.primary_keys, parts))

        if prefix is None:
            prefix = self.get_option("key_prefix")
        return f"{prefix}{suffix}"

    async def do_find(
        self,
        id: dict[str, Any],
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> Mapping[str, Any] | None:
        redis = service if service is not None else self.get_service(id)
        key = self.get_key(id, collection)

        logger.debug("RedisMapper: HGETALL %s", key)
        record = await redis.hgetall(key)
        if not record:
            return None

        return {_decode(k): _decode(v) for k, v in record.items()}

    async def do_insert(
        self,
        entity: Entity,
        record: dict[str, Any],
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> Any:
        id_values = entity.get_id_values()
        redis = service if service is not None else self.get_service(id_values)
        key = self.get_key(id_values, collection)

        if await redis.exists(key):
            raise DuplicateKeyError(f"RedisMapper: duplicate key {key!r}")

        mapping = {k: _encode(v) for k, v in record.items() if v is not None}
        if mapping:
            await redis.hset(key, mapping=mapping)
        return None

    async def do_update(
        self,
        entity: Entity,
        record: dict[str, Any],
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> None:
        if not record:
            return None

        id_values = entity.get_id_values()
        redis = service if service is not None else self.get_service(id_values)
        key = self.get_key(id_values, collection)

        changed = {k: _encode(v) for k, v in record.items() if v is not None}
        removed = [k for k, v in record.items() if v is None]

        async with redis.pipeline(transaction=True) as pipe:
            if changed:
                pipe.hset(key, mapping=changed)
            if removed:
                pipe.hdel(key, *removed)
            await pipe.execute()
        return None

    async def do_delete(
        self,
        entity: Entity,
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> None:
        id_values = entity.get_id_values()
        redis = service if service is not None else self.get_service(id_values)

        await redis.delete(self.get_key(id_values, collection))
