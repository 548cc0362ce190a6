"""Entity state machine.

An ``Entity`` holds the field values of one record instance.  It keeps two
value sets: the *current* values (live, possibly mutated) and the *staged*
snapshot (last values known to be persisted).  A field is dirty when its
current value differs from the snapshot by value equality.

States:
    fresh + dirty  --save-->  persisted + clean  --set-->  persisted + dirty
    persisted      --destroy-->  destroyed (terminal)

Usage:
    from entity_mapper import Column, Entity, PrimaryColumn

    class Topic(Entity):
        topic_id = PrimaryColumn("integer", auto_generate=True)
        subject = Column("text")
        create_time = Column("datetime", refuse_update=True, default="now")

    topic = Topic({"subject": "hello"})
    topic.is_fresh()          # True
    topic.is_dirty()          # True
    await topic.save()        # via the bound mapper
    topic.is_dirty()          # False
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from entity_mapper.columns.column import Column
from entity_mapper.errors import (
    EntityDestroyedError,
    MapperError,
    NotNullableError,
    RefuseUpdateError,
    UndefinedColumnError,
)

if TYPE_CHECKING:
    from entity_mapper.mappers.base import Mapper


class Entity:
    """Base class for entity kinds.

    Subclasses declare fields as ``Column`` class attributes.  Columns are
    collected along the MRO, so a subclass extends (or overrides) the
    columns of its bases.

    Args:
        values: Initial field values.  Unknown keys are ignored.
        fresh: ``False`` hydrates a persisted snapshot instead (no
            defaults, no validation, nothing dirty).
    """

    __columns__: ClassVar[dict[str, Column]] = {}
    __mapper__: ClassVar[Mapper | None] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)

        columns: dict[str, Column] = {}
        for klass in reversed(cls.__mro__):
            for name, attr in vars(klass).items():
                if isinstance(attr, Column):
                    columns[name] = attr

        for name in vars(cls):
            if name in columns and hasattr(Entity, name):
                raise TypeError(f"Column name {name!r} shadows an Entity attribute")

        cls.__columns__ = columns
        cls.__mapper__ = None

    def __init__(self, values: Mapping[str, Any] | None = None, *, fresh: bool = True) -> None:
        self._values: dict[str, Any] = {}
        self._staged: dict[str, Any] = {}
        self._fresh = fresh
        self._destroyed = False

        if not fresh:
            self.retrieve(values or {})
            return

        columns = self.__columns__
        for key, value in (values or {}).items():
            if key in columns:
                self.set(key, value)

        for key, column in columns.items():
            if key in self._values:
                continue

            default = column.get_default_value()
            if default is not None:
                self._values[key] = default

    def __repr__(self) -> str:
        state = "fresh" if self._fresh else "persisted"
        return f"<{type(self).__name__} {state} id={self._safe_id()!r}>"

    # ------------------------------------------------------------------
    # Mapper Binding
    # ------------------------------------------------------------------

    @classmethod
    def bind_mapper(cls, mapper: Mapper) -> Mapper:
        """Attach the persistence strategy for this entity kind."""
        cls.__mapper__ = mapper
        return mapper

    @classmethod
    def get_mapper(cls) -> Mapper:
        if cls.__mapper__ is None:
            raise MapperError(f"No mapper bound to {cls.__name__}")
        return cls.__mapper__

    @classmethod
    def get_columns(cls) -> dict[str, Column]:
        return dict(cls.__columns__)

    @classmethod
    def has_column(cls, key: str) -> bool:
        return key in cls.__columns__

    @classmethod
    def get_primary_keys(cls) -> list[str]:
        return [key for key, column in cls.__columns__.items() if column.primary]

    @classmethod
    async def find(cls, id: Any) -> Entity | None:
        """Find an entity by identity; ``None`` when not found."""
        return await cls.get_mapper().find(id)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def is_fresh(self) -> bool:
        return self._fresh

    def is_destroyed(self) -> bool:
        return self._destroyed

    def is_dirty(self, key: str | None = None) -> bool:
        """Whether any field (or the given field) differs from the last snapshot."""
        if key is None:
            return any(self._is_changed(name) for name in self._values)

        self._column(key)
        return self._is_changed(key)

    def dirty_fields(self) -> list[str]:
        return [key for key in self._values if self._is_changed(key)]

    def _is_changed(self, key: str) -> bool:
        if key not in self._values:
            return False
        if key not in self._staged:
            return True
        return self._values[key] != self._staged[key]

    # ------------------------------------------------------------------
    # Field Access
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any:
        """Return a copy of the current value, or the column default if unset."""
        column = self._column(key)

        if key in self._values:
            return column.clone(self._values[key])

        return column.get_default_value()

    def set(self, key: str, value: Any) -> Entity:
        """Set a single field.

        Raises:
            UndefinedColumnError: If the field is not declared.
            RefuseUpdateError: If the column refuses updates and the entity
                is persisted.
            NotNullableError: If the normalized value is null and the column
                is not nullable.
            PatternMismatchError: If the column pattern rejects the value.
            UnexpectedColumnValueError: If the value cannot be coerced.
        """
        self._ensure_alive()
        column = self._column(key)

        if column.options.refuse_update and not self._fresh:
            raise RefuseUpdateError(f"Column {key!r} refuse update")

        self._change(key, value, column)
        return self

    def merge(self, values: Mapping[str, Any], strict: bool = False) -> Entity:
        """Bulk-assign external input.

        Unknown keys, ``protected`` and ``strict`` columns are skipped, as
        are refuse-update columns of a persisted entity; merge never raises
        for them.  ``strict=True`` treats every column that does not set
        ``strict`` itself as strict, so only columns declared with
        ``strict=False`` are assigned.
        """
        self._ensure_alive()
        columns = self.__columns__
        mapper_strict = strict or self._mapper_strict()

        for key, value in values.items():
            column = columns.get(key)
            if column is None:
                continue

            if column.options.refuse_update and not self._fresh:
                continue

            if column.options.protected or column.is_strict(mapper_strict):
                continue

            self._change(key, value, column)

        return self

    def get_values(self) -> dict[str, Any]:
        """Copies of every assigned value."""
        return {key: self.get(key) for key in self._values}

    def pick(self, *keys: str) -> dict[str, Any]:
        """Assigned values for ``keys``, or for every non-protected column."""
        if not keys:
            keys = tuple(
                key for key, column in self.__columns__.items()
                if not column.options.protected
            )

        return {key: self.get(key) for key in keys if key in self._values}

    def to_json(self) -> dict[str, Any]:
        """JSON-friendly projection that omits protected columns."""
        columns = self.__columns__
        return {key: columns[key].to_json(value) for key, value in self.pick().items()}

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def get_id(self) -> Any:
        """Raw value for a single primary key, an ordered dict for a composite one."""
        values = self.get_id_values()
        if len(values) == 1:
            return next(iter(values.values()))
        return values

    def get_id_values(self) -> dict[str, Any]:
        keys = self.get_primary_keys()
        if not keys:
            raise MapperError(f"{type(self).__name__} declares no primary column")
        return {key: self.get(key) for key in keys}

    def _safe_id(self) -> Any:
        try:
            return self.get_id()
        except MapperError:
            return None

    # ------------------------------------------------------------------
    # Validation / Hydration
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Check nullability and patterns before a write.

        A fresh entity checks every column except auto-generated ones; a
        persisted entity checks only its dirty fields.
        """
        columns = self.__columns__
        keys: Iterable[str] = columns if self._fresh else self.dirty_fields()

        for key in keys:
            column = columns[key]
            if self._fresh and column.options.auto_generate:
                continue

            value = self.get(key)
            if value is None:
                if not column.nullable:
                    raise NotNullableError(f"Column {key!r} not nullable")
                continue

            column.check_pattern(value)
            column.validate(value)

    def retrieve(self, values: Mapping[str, Any], replace: bool = False) -> Entity:
        """Merge trusted backend values, mark persisted and snapshot.

        Bypasses ``set()`` validation.  With ``replace`` the current values
        are discarded first (used when refreshing from the backend).
        """
        columns = self.__columns__

        if replace:
            self._values = {}

        for key, value in values.items():
            column = columns.get(key)
            if column is not None:
                self._values[key] = column.clone(value)

        self._fresh = False
        self._staged = dict(self._values)
        return self

    def _change(self, key: str, value: Any, column: Column) -> None:
        value = column.normalize(value, self)

        if value is None:
            if not column.nullable:
                raise NotNullableError(f"Column {key!r} not nullable")
            if key not in self._values:
                return
        else:
            column.check_pattern(value)

        if key in self._values and self._values[key] == value:
            return

        self._values[key] = column.clone(value)

    def _column(self, key: str) -> Column:
        column = self.__columns__.get(key)
        if column is None:
            raise UndefinedColumnError(f"Undefined column: {key}")
        return column

    def _mapper_strict(self) -> bool:
        mapper = type(self).__mapper__
        return bool(mapper.strict) if mapper is not None else False

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise EntityDestroyedError(f"{type(self).__name__} has been destroyed")

    def _mark_destroyed(self) -> None:
        self._destroyed = True

    # ------------------------------------------------------------------
    # Persistence (delegated to the mapper)
    # ------------------------------------------------------------------

    async def save(self) -> Entity:
        await self.get_mapper().save(self)
        return self

    async def destroy(self) -> bool:
        return await self.get_mapper().destroy(self)

    async def refresh(self) -> Entity:
        """Reload from the backend, discarding unsaved changes."""
        return await self.get_mapper().refresh(self)

    # ------------------------------------------------------------------
    # Lifecycle Hooks
    # ------------------------------------------------------------------

    async def before_save(self) -> None:
        pass

    async def after_save(self) -> None:
        pass

    async def before_insert(self) -> None:
        pass

    async def after_insert(self) -> None:
        pass

    async def before_update(self) -> None:
        pass

    async def after_update(self) -> None:
        pass

    async def before_delete(self) -> None:
        pass

    async def after_delete(self) -> None:
        pass

    async def after_find(self) -> None:
        pass
