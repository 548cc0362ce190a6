"""entity-mapper: async data-mapper layer with an entity state machine.

Entities declare typed columns and track which fields changed since they
were last persisted; mappers move them to and from a backend (SQL via
SQLAlchemy, Redis hashes) and can be wrapped in a read-through cache.

Usage:
    from entity_mapper import Entity, Column, PrimaryColumn, DBMapper
    from entity_mapper import CacheMapper, InMemoryRecordCache, ServiceRegistry
    from entity_mapper import register_type, get_type
"""

__version__ = "0.1.0"

# Adapters
from entity_mapper.adapters.base import DatabaseClient
from entity_mapper.adapters.sql import AsyncSQLAdapter

# Caches
from entity_mapper.cache import InMemoryRecordCache, RecordCache, RedisRecordCache

# Columns
from entity_mapper.columns import (
    AnyType,
    Column,
    ColumnOptions,
    PrimaryColumn,
    ProtectedColumn,
    get_type,
    register_type,
    registered_types,
)

# Config
from entity_mapper.config.loader import load_service_config
from entity_mapper.config.models import ServiceConfig, ServiceProfile

# Entity
from entity_mapper.entity import Entity

# Errors
from entity_mapper.errors import (
    BackendError,
    DuplicateKeyError,
    EntityDestroyedError,
    EntityMapperError,
    EntityNotFoundError,
    MapperError,
    NotNullableError,
    PatternMismatchError,
    ReadonlyMapperError,
    RefuseUpdateError,
    ServiceError,
    ServiceNotFoundError,
    UndefinedColumnError,
    UnexpectedColumnValueError,
)

# Mappers
from entity_mapper.mappers import CacheMapper, DBMapper, Mapper, RedisMapper

# Services
from entity_mapper.services import ServiceRegistry, resolve_url

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncSQLAdapter",
    # Caches
    "RecordCache",
    "InMemoryRecordCache",
    "RedisRecordCache",
    # Columns
    "AnyType",
    "Column",
    "ColumnOptions",
    "PrimaryColumn",
    "ProtectedColumn",
    "get_type",
    "register_type",
    "registered_types",
    # Config
    "load_service_config",
    "ServiceConfig",
    "ServiceProfile",
    # Entity
    "Entity",
    # Errors
    "EntityMapperError",
    "UndefinedColumnError",
    "UnexpectedColumnValueError",
    "NotNullableError",
    "PatternMismatchError",
    "RefuseUpdateError",
    "EntityDestroyedError",
    "MapperError",
    "ReadonlyMapperError",
    "EntityNotFoundError",
    "BackendError",
    "DuplicateKeyError",
    "ServiceError",
    "ServiceNotFoundError",
    # Mappers
    "Mapper",
    "DBMapper",
    "RedisMapper",
    "CacheMapper",
    # Services
    "ServiceRegistry",
    "resolve_url",
]
