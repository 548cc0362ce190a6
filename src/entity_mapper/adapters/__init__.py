"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and ``AsyncSQLAdapter``, its
SQLAlchemy async implementation.

Usage:
    from entity_mapper.adapters import DatabaseClient, AsyncSQLAdapter
"""

from entity_mapper.adapters.base import DatabaseClient
from entity_mapper.adapters.sql import AsyncSQLAdapter, create_async_engine_pooled

__all__ = [
    "DatabaseClient",
    "AsyncSQLAdapter",
    "create_async_engine_pooled",
]
