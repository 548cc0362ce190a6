"""Column declarations for entity kinds.

A ``Column`` is a descriptor declared as a class attribute of an
``Entity`` subclass.  It pairs a type from the registry with a frozen
``ColumnOptions`` model and routes attribute access to ``Entity.get`` /
``Entity.set``.

Usage:
    from entity_mapper import Column, Entity, PrimaryColumn

    class User(Entity):
        user_id = PrimaryColumn("integer", auto_generate=True)
        email = Column("text", refuse_update=True, pattern=r"@")
        password = ProtectedColumn("text")
        create_time = Column("datetime", refuse_update=True, default="now")
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, ConfigDict, model_validator

from entity_mapper.columns.types import AnyType, get_type
from entity_mapper.errors import PatternMismatchError

if TYPE_CHECKING:
    from entity_mapper.entity import Entity


# ============================================================================
# Options Model
# ============================================================================


class ColumnOptions(BaseModel):
    """Per-field configuration.

    Invariants applied on construction:

    - ``primary`` forces ``refuse_update``, ``protected`` and ``strict`` on
      and ``nullable`` off.
    - ``nullable`` forces ``default`` to ``None``.
    - ``protected`` implies ``strict`` unless strict was given explicitly.

    ``strict=None`` means "inherit the mapper's ``strict`` option".
    Type-specific options (``trim_space``, ``upper_case``, ...) are kept as
    extra fields and read with ``get()``.
    """

    model_config = ConfigDict(extra="allow", frozen=True, arbitrary_types_allowed=True)

    type: str = "any"
    primary: bool = False
    auto_generate: bool = False
    nullable: bool = False
    refuse_update: bool = False
    protected: bool = False
    strict: bool | None = None
    default: Any = None
    pattern: re.Pattern | Callable[[Any], bool] | None = None
    normalizer: Callable[[Any, Any], Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def _apply_invariants(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        data = dict(data)

        if data.get("primary"):
            data["refuse_update"] = True
            data["protected"] = True
            data["strict"] = True
            data["nullable"] = False

        if data.get("nullable"):
            data["default"] = None

        if data.get("protected") and data.get("strict") is None:
            data["strict"] = True

        if isinstance(data.get("pattern"), str):
            data["pattern"] = re.compile(data["pattern"])

        return data

    def get(self, key: str, default: Any = None) -> Any:
        """Read a declared or type-specific option."""
        if key in type(self).model_fields:
            return getattr(self, key)
        return (self.model_extra or {}).get(key, default)


# ============================================================================
# Column Descriptor
# ============================================================================


class Column:
    """Typed field declaration with a coercion pipeline.

    Args:
        type: Type tag from the registry (unknown tags behave as ``any``).
        **options: ``ColumnOptions`` fields plus type-specific options.
    """

    def __init__(self, type: str = "any", /, **options: Any) -> None:
        self.column_type: AnyType = get_type(type)
        self.options = ColumnOptions(**{**self.column_type.defaults, **options, "type": type})
        self.name: str | None = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Entity | None, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return instance.get(self.name)

    def __set__(self, instance: Entity, value: Any) -> None:
        instance.set(self.name, value)

    def __repr__(self) -> str:
        return f"Column({self.options.type!r}, name={self.name!r})"

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    @property
    def primary(self) -> bool:
        return self.options.primary

    @property
    def nullable(self) -> bool:
        return self.options.nullable

    def is_strict(self, mapper_strict: bool = False) -> bool:
        """Effective strictness, falling back to the mapper's option."""
        strict = self.options.strict
        return mapper_strict if strict is None else strict

    # ------------------------------------------------------------------
    # Coercion Pipeline
    # ------------------------------------------------------------------

    def coerce(self, value: Any) -> Any:
        """Type-level normalization only; nulls collapse to ``None``."""
        if self.column_type.is_null(value):
            return None
        return self.column_type.normalize(value, self.options)

    def normalize(self, value: Any, entity: Entity | None = None) -> Any:
        """Run the column normalizer (if any) then the type normalization."""
        if self.column_type.is_null(value):
            return None

        normalizer = self.options.normalizer
        if normalizer is not None:
            value = normalizer(entity, value)

        return self.coerce(value)

    def store(self, value: Any) -> Any:
        if value is None:
            return None
        return self.column_type.store(value, self.options)

    def restore(self, value: Any) -> Any:
        return self.column_type.restore(value, self.options)

    def get_default_value(self) -> Any:
        return self.coerce(self.column_type.get_default_value(self.options))

    def clone(self, value: Any) -> Any:
        return self.column_type.clone(value)

    def to_json(self, value: Any) -> Any:
        if value is None:
            return None
        return self.column_type.to_json(value, self.options)

    def check_pattern(self, value: Any) -> None:
        """Raise ``PatternMismatchError`` if the configured pattern rejects ``value``."""
        pattern = self.options.pattern
        if pattern is None or value is None:
            return

        if isinstance(pattern, re.Pattern):
            matched = pattern.search(str(value)) is not None
        else:
            matched = bool(pattern(value))

        if not matched:
            raise PatternMismatchError(f"Column {self.name!r} mismatch pattern: {value!r}")

    def validate(self, value: Any) -> None:
        self.column_type.validate(value, self.options)


def PrimaryColumn(type: str = "any", /, **options: Any) -> Column:
    """Declare a primary key column."""
    return Column(type, **{**options, "primary": True})


def ProtectedColumn(type: str = "any", /, **options: Any) -> Column:
    """Declare a column hidden from ``to_json()`` and skipped by ``merge()``."""
    return Column(type, **{**options, "protected": True})
