"""Column declarations and the column type registry.

Usage:
    >>> from entity_mapper.columns import Column, PrimaryColumn, get_type, register_type
"""

from entity_mapper.columns.column import Column, ColumnOptions, PrimaryColumn, ProtectedColumn
from entity_mapper.columns.types import (
    AnyType,
    BinaryType,
    DateTimeType,
    DateType,
    IntegerType,
    JSONType,
    NumericType,
    TextType,
    TimeType,
    UUIDType,
    get_type,
    register_type,
    registered_types,
)

__all__ = [
    "Column",
    "ColumnOptions",
    "PrimaryColumn",
    "ProtectedColumn",
    "AnyType",
    "NumericType",
    "IntegerType",
    "TextType",
    "UUIDType",
    "DateType",
    "TimeType",
    "DateTimeType",
    "JSONType",
    "BinaryType",
    "get_type",
    "register_type",
    "registered_types",
]
