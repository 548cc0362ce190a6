"""Mappers: the persistence strategies bound to entity kinds.

Usage:
    from entity_mapper.mappers import Mapper, DBMapper, RedisMapper, CacheMapper
"""

from entity_mapper.mappers.base import Mapper, MapperOptions
from entity_mapper.mappers.cache import CacheMapper
from entity_mapper.mappers.database import DBMapper
from entity_mapper.mappers.redis import RedisMapper

__all__ = [
    "Mapper",
    "MapperOptions",
    "DBMapper",
    "RedisMapper",
    "CacheMapper",
]
