"""Abstract mapper: CRUD orchestration between entities and a backend.

A ``Mapper`` owns the lifecycle ordering of ``find``/``save``/``destroy``
(hooks, validation, encoding) and delegates the actual storage calls to four
abstract ``do_*`` methods implemented by concrete mappers.

Usage:
    from entity_mapper import DBMapper, ServiceRegistry

    registry = ServiceRegistry.from_file("services.toml")
    mapper = Topic.bind_mapper(
        DBMapper(Topic, registry, service="db", collection="topics")
    )

    topic = await Topic.find(1)
    topic.subject = "renamed"
    await topic.save()
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from entity_mapper.columns.column import Column
from entity_mapper.entity import Entity
from entity_mapper.errors import (
    EntityDestroyedError,
    EntityNotFoundError,
    MapperError,
    ReadonlyMapperError,
    UndefinedColumnError,
    UnexpectedColumnValueError,
)

if TYPE_CHECKING:
    from entity_mapper.services import ServiceRegistry

logger = logging.getLogger(__name__)


class MapperOptions(BaseModel):
    """Immutable mapper configuration.

    Backend-specific options (``key_prefix`` for Redis, ...) are accepted
    as extra fields.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    service: str = ""
    collection: str = ""
    readonly: bool = False
    strict: bool = False


class Mapper(ABC):
    """Persistence strategy for one entity kind.

    Args:
        entity_class: The ``Entity`` subclass this mapper persists.
        services: Registry used to resolve ``service`` into a client.
        service: Name of the backend service in the registry.
        collection: Table / key namespace / collection name.
        readonly: Reject every write with ``ReadonlyMapperError``.
        strict: Default strictness for columns that do not set it.
        **options: Backend-specific options.

    Concrete mappers implement ``do_find``/``do_insert``/``do_update``/
    ``do_delete``.  Each accepts keyword-only ``service`` (a client) and
    ``collection`` overrides; when omitted they are resolved with
    ``get_service()``/``get_collection()`` for the entity's identity.

    Raises:
        MapperError: If the entity class declares no primary column.
    """

    def __init__(
        self,
        entity_class: type[Entity],
        services: ServiceRegistry | None = None,
        *,
        service: str = "",
        collection: str = "",
        readonly: bool = False,
        strict: bool = False,
        **options: Any,
    ) -> None:
        self.entity_class = entity_class
        self.services = services
        self.options = MapperOptions(
            service=service,
            collection=collection,
            readonly=readonly,
            strict=strict,
            **options,
        )

        self.primary_keys: list[str] = entity_class.get_primary_keys()
        if not self.primary_keys:
            raise MapperError(f"{entity_class.__name__} declares no primary column")

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.entity_class.__name__} "
            f"service={self.options.service!r} collection={self.options.collection!r}>"
        )

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    @property
    def readonly(self) -> bool:
        return self.options.readonly

    @property
    def strict(self) -> bool:
        return self.options.strict

    def has_option(self, key: str) -> bool:
        return key in type(self.options).model_fields or key in (self.options.model_extra or {})

    def get_option(self, key: str) -> Any:
        if not self.has_option(key):
            raise MapperError(f"Mapper: undefined option {key!r}")
        return getattr(self.options, key)

    def get_options(self) -> dict[str, Any]:
        return self.options.model_dump()

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def has_column(self, key: str) -> bool:
        return self.entity_class.has_column(key)

    def get_column(self, key: str) -> Column:
        columns = self.entity_class.__columns__
        if key not in columns:
            raise UndefinedColumnError(f"Undefined column: {key}")
        return columns[key]

    def get_columns(self) -> dict[str, Column]:
        return self.entity_class.get_columns()

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def get_service(self, id: Any = None) -> Any:
        """Resolve the backend client for ``id``.

        The identity is passed to the registry as dispatcher argument so a
        sharded service can route on it.  Override for custom routing.
        """
        if self.services is None:
            raise MapperError(f"{type(self).__name__} has no service registry")

        name = self.options.service
        if isinstance(id, Mapping) and len(id) == 1:
            id = next(iter(id.values()))

        if id is None:
            return self.services.get(name)
        return self.services.get(name, id)

    def get_collection(self, id: Any = None) -> str:
        """Collection name for ``id``; override for sharded collections."""
        collection = self.options.collection
        if not collection:
            raise MapperError(f"{type(self).__name__}: collection is not configured")
        return collection

    # ------------------------------------------------------------------
    # Identity / Encoding
    # ------------------------------------------------------------------

    def normalize_id(self, id: Any) -> dict[str, Any]:
        """Turn a scalar or mapping identity into ``{primary_key: value}``.

        Raises:
            UnexpectedColumnValueError: If a primary key value is missing,
                null, or a scalar is given for a composite key.
        """
        if isinstance(id, Mapping):
            raw = id
        elif len(self.primary_keys) == 1:
            raw = {self.primary_keys[0]: id}
        else:
            raise UnexpectedColumnValueError(
                f"Composite primary key {self.primary_keys} requires a mapping identity"
            )

        values: dict[str, Any] = {}
        for key in self.primary_keys:
            if key not in raw:
                raise UnexpectedColumnValueError(f"Illegal id value, missing {key!r}")

            value = self.get_column(key).coerce(raw[key])
            if value is None:
                raise UnexpectedColumnValueError(f"Illegal id value, {key!r} is null")
            values[key] = value

        return values

    def pack(
        self,
        record: Mapping[str, Any],
        entity: Entity | None = None,
        replace: bool = False,
    ) -> Entity:
        """Decode a backend record and hydrate ``entity`` (or a new one).

        Keys without a declared column are ignored.
        """
        values: dict[str, Any] = {}
        columns = self.entity_class.__columns__
        for key, value in record.items():
            column = columns.get(key)
            if column is not None:
                values[key] = column.restore(value)

        if entity is None:
            return self.entity_class(values, fresh=False)

        return entity.retrieve(values, replace=replace)

    def unpack(self, entity: Entity, dirty: bool = False) -> dict[str, Any]:
        """Encode entity values for the backend (only dirty fields if ``dirty``)."""
        keys = entity.dirty_fields() if dirty else list(entity.get_values())
        record: dict[str, Any] = {}
        for key in keys:
            column = self.get_column(key)
            record[key] = column.store(entity.get(key))
        return record

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def find(self, id: Any) -> Entity | None:
        """Load an entity by identity; ``None`` when the record is missing."""
        id_values = self.normalize_id(id)
        record = await self.do_find(id_values)
        if not record:
            logger.debug("%s: miss for %r", type(self).__name__, id_values)
            return None

        entity = self.pack(record)
        await entity.after_find()
        return entity

    async def refresh(self, entity: Entity) -> Entity:
        """Re-read the backend, discarding unsaved changes.

        Raises:
            EntityNotFoundError: If the record no longer exists.
        """
        if entity.is_fresh():
            return entity

        id_values = entity.get_id_values()
        record = await self.do_find(self.normalize_id(id_values))
        if not record:
            raise EntityNotFoundError(
                f"{self.entity_class.__name__} {id_values!r} no longer exists"
            )

        self.pack(record, entity, replace=True)
        await entity.after_find()
        return entity

    async def save(self, entity: Entity) -> Entity:
        """Insert a fresh entity or update the dirty fields of a persisted one."""
        self._check_writable(entity)

        if not entity.is_fresh() and not entity.is_dirty():
            return entity

        await entity.before_save()

        if entity.is_fresh():
            await self.insert(entity)
        else:
            await self.update(entity)

        await entity.after_save()
        return entity

    async def insert(self, entity: Entity) -> Entity:
        self._check_writable(entity)

        await entity.before_insert()
        entity.validate()

        record = self.unpack(entity)
        logger.debug("%s: insert %s", type(self).__name__, self.entity_class.__name__)
        result = await self.do_insert(entity, record)

        identity = self._resolve_identity(entity, result)
        self.pack({**record, **identity}, entity)

        await entity.after_insert()
        return entity

    async def update(self, entity: Entity) -> Entity:
        self._check_writable(entity)

        await entity.before_update()
        entity.validate()

        record = self.unpack(entity, dirty=True)
        logger.debug(
            "%s: update %s %r fields=%s",
            type(self).__name__,
            self.entity_class.__name__,
            entity.get_id(),
            sorted(record),
        )
        fragment = await self.do_update(entity, record)
        self.pack({**record, **(fragment or {})}, entity)

        await entity.after_update()
        return entity

    async def destroy(self, entity: Entity) -> bool:
        """Delete a persisted entity; a fresh one is a no-op returning ``True``."""
        self._check_writable(entity)

        if entity.is_fresh():
            return True

        await entity.before_delete()

        logger.debug(
            "%s: delete %s %r",
            type(self).__name__,
            self.entity_class.__name__,
            entity.get_id(),
        )
        await self.do_delete(entity)
        entity._mark_destroyed()

        await entity.after_delete()
        return True

    def _check_writable(self, entity: Entity) -> None:
        if self.readonly:
            raise ReadonlyMapperError(f"{self.entity_class.__name__} mapper is readonly")
        if entity.is_destroyed():
            raise EntityDestroyedError(f"{self.entity_class.__name__} has been destroyed")

    def _resolve_identity(self, entity: Entity, result: Any) -> dict[str, Any]:
        """Map a ``do_insert`` result onto the entity's primary keys.

        A mapping is taken as-is (identity fragment or full row).  A scalar
        is the generated value of the single primary key still unset.
        """
        if result is None:
            return {}

        if isinstance(result, Mapping):
            return dict(result)

        missing = [key for key in self.primary_keys if entity.get(key) is None]
        if not missing:
            return {}

        if len(missing) > 1:
            raise MapperError(
                f"Insert returned a scalar id but {missing} are all unassigned"
            )

        return {missing[0]: result}

    # ------------------------------------------------------------------
    # Backend Operations
    # ------------------------------------------------------------------

    @abstractmethod
    async def do_find(
        self,
        id: dict[str, Any],
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> Mapping[str, Any] | None:
        """Return the stored record for ``id`` or ``None``."""

    @abstractmethod
    async def do_insert(
        self,
        entity: Entity,
        record: dict[str, Any],
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> Any:
        """Write a new record; return an identity mapping, a scalar id or ``None``."""

    @abstractmethod
    async def do_update(
        self,
        entity: Entity,
        record: dict[str, Any],
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> Mapping[str, Any] | None:
        """Write the changed fields of a persisted entity.

        May return a fragment of the stored row (columns changed by the
        backend, e.g. by a trigger); it is merged into the entity.
        """

    @abstractmethod
    async def do_delete(
        self,
        entity: Entity,
        *,
        service: Any = None,
        collection: str | None = None,
    ) -> None:
        """Remove the record of a persisted entity."""
