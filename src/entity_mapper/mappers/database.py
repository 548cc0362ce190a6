"""Relational mapper backed by a ``DatabaseClient``.

Usage:
    from entity_mapper import DBMapper

    mapper = Topic.bind_mapper(
        DBMapper(Topic, registry, service="db", collection="topics")
    )
    recent = await mapper.select(order_by="create_time DESC", limit=20)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from entity_mapper.adapters.base import DatabaseClient
from entity_mapper.entity import Entity
from entity_mapper.mappers.base import Mapper

logger = logging.getLogger(__name__)


class DBMapper(Mapper):
    """Mapper for SQL tables.

    The ``collection`` option is the table name; ``service`` names a
    ``DatabaseClient`` in the registry.
    """

    def get_client(self, id: Any = None) -> DatabaseClient:
        return self.get_service(id)

    def _column_list(self) -> str:
        return ", ".join(self.entity_class.__columns__)

    def _route(self, id: Any, service: Any, collection: str | None) -> tuple[DatabaseClient, str]:
        client = service if service is not None else self.get_client(id)
        table = collection or self.get_collection(id)
        return client, table

    async def do_find(
        self,
        id: dict[str, Any],
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> Mapping[str, Any] | None:
        client, table = self._route(id, service, collection)

        logger.debug("DBMapper: select %s where %r", table, id)
        rows = await client.select(table, self._column_list(), filters=id, limit=1)
        return rows[0] if rows else None

    async def do_insert(
        self,
        entity: Entity,
        record: dict[str, Any],
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> Any:
        client, table = self._route(entity.get_id_values(), service, collection)

        return await client.insert(table, record, returning=list(self.primary_keys))

    async def do_update(
        self,
        entity: Entity,
        record: dict[str, Any],
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> Mapping[str, Any] | None:
        """Update the dirty columns and read back the whole row.

        The returned row carries columns the database changed on its own
        (triggers, ``ON UPDATE`` defaults).
        """
        if not record:
            return None

        id_values = entity.get_id_values()
        client, table = self._route(id_values, service, collection)

        row = await client.update(
            table,
            record,
            id_values,
            returning=list(self.entity_class.__columns__),
        )
        return row or None

    async def do_delete(
        self,
        entity: Entity,
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> None:
        id_values = entity.get_id_values()
        client, table = self._route(id_values, service, collection)

        await client.delete(table, id_values)

    async def select(
        self,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Entity]:
        """Select rows and hydrate them as persisted entities.

        Filter values are encoded with each column's ``store``.  Runs
        against the unrouted service/collection, so sharded mappers should
        override it.
        """
        encoded: dict[str, Any] | None = None
        if filters:
            encoded = {}
            for key, value in filters.items():
                column = self.get_column(key)
                encoded[key] = column.store(column.coerce(value))

        client = self.get_client()
        table = self.get_collection()

        rows = await client.select(
            table,
            self._column_list(),
            filters=encoded,
            order_by=order_by,
            limit=limit,
        )

        entities = [self.pack(row) for row in rows]
        for entity in entities:
            await entity.after_find()
        return entities
