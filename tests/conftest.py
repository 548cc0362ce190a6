"""Shared fixtures: in-memory fakes of the backends the mappers talk to."""

from collections.abc import Callable
from typing import Any

import pytest
from redis.exceptions import DataError

from entity_mapper.services import ServiceRegistry


class FakeDatabaseClient:
    """In-memory ``DatabaseClient``.

    Tables are lists of row dicts.  A primary key listed in ``returning``
    but absent from the inserted data is filled from a per-table counter,
    like a serial column.

    ``update_triggers`` maps a table to a callable run on every updated row,
    like a database trigger.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self._serial: dict[str, int] = {}
        self.update_triggers: dict[str, Callable[[dict], None]] = {}

    @staticmethod
    def _match(row: dict, filters: dict[str, Any] | None) -> bool:
        return all(row.get(k) == v for k, v in (filters or {}).items())

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        self.calls.append(("select", table))
        rows = [dict(r) for r in self.tables.get(table, []) if self._match(r, filters)]

        if order_by:
            key, _, direction = order_by.partition(" ")
            rows.sort(key=lambda r: r.get(key), reverse=direction.upper() == "DESC")
        if limit is not None:
            rows = rows[:limit]

        if columns.strip() != "*":
            names = [c.strip() for c in columns.split(",")]
            rows = [{n: r.get(n) for n in names} for r in rows]
        return rows

    async def insert(self, table: str, data: dict, returning: list[str] | None = None) -> dict:
        self.calls.append(("insert", table))
        row = dict(data)

        for key in returning or []:
            if row.get(key) is None:
                self._serial[table] = self._serial.get(table, 0) + 1
                row[key] = self._serial[table]

        self.tables.setdefault(table, []).append(row)
        return {key: row[key] for key in returning or []}

    async def update(
        self,
        table: str,
        data: dict,
        filters: dict[str, Any],
        returning: list[str] | None = None,
    ) -> int | dict:
        self.calls.append(("update", table))
        trigger = self.update_triggers.get(table)
        updated = []
        for row in self.tables.get(table, []):
            if self._match(row, filters):
                row.update(data)
                if trigger is not None:
                    trigger(row)
                updated.append(row)

        if returning is None:
            return len(updated)
        if not updated:
            return {}
        return {key: updated[0].get(key) for key in returning}

    async def delete(self, table: str, filters: dict[str, Any]) -> int:
        self.calls.append(("delete", table))
        rows = self.tables.get(table, [])
        kept = [r for r in rows if not self._match(r, filters)]
        self.tables[table] = kept
        return len(rows) - len(kept)

    async def execute(self, sql: str, params: dict | None = None) -> list[dict] | int:
        raise NotImplementedError

    def quote_identifier(self, name: str) -> str:
        return ".".join(f'"{part}"' for part in name.split("."))

    async def close(self) -> None:
        self.calls.append(("close", ""))


class FakePipeline:
    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis
        self._commands: list[tuple[str, tuple, dict]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    def hset(self, *args: Any, **kwargs: Any) -> "FakePipeline":
        self._commands.append(("hset", args, kwargs))
        return self

    def hdel(self, *args: Any) -> "FakePipeline":
        self._commands.append(("hdel", args, {}))
        return self

    async def execute(self) -> list[Any]:
        self._redis.calls.append(("multi", ""))
        results = []
        for name, args, kwargs in self._commands:
            results.append(await getattr(self._redis, name)(*args, **kwargs))
        self._commands = []
        return results


class FakeRedis:
    """The subset of ``redis.asyncio.Redis`` (decode_responses=True) used here."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = {}
        self.strings: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.calls: list[tuple[str, str]] = []

    async def hgetall(self, key: str) -> dict[str, str]:
        self.calls.append(("hgetall", key))
        return dict(self.hashes.get(key, {}))

    async def hset(self, key: str, mapping: dict[str, Any] | None = None) -> int:
        self.calls.append(("hset", key))
        for value in (mapping or {}).values():
            if isinstance(value, bool) or not isinstance(value, (str, bytes, int, float)):
                raise DataError(f"Invalid input of type: {type(value).__name__!r}")

        target = self.hashes.setdefault(key, {})
        for field, value in (mapping or {}).items():
            target[field] = str(value)
        return len(mapping or {})

    async def hdel(self, key: str, *fields: str) -> int:
        self.calls.append(("hdel", key))
        target = self.hashes.get(key, {})
        removed = sum(1 for f in fields if target.pop(f, None) is not None)
        if key in self.hashes and not target:
            del self.hashes[key]
        return removed

    async def exists(self, key: str) -> int:
        self.calls.append(("exists", key))
        return int(key in self.hashes or key in self.strings)

    async def delete(self, key: str) -> int:
        self.calls.append(("delete", key))
        found = key in self.hashes or key in self.strings
        self.hashes.pop(key, None)
        self.strings.pop(key, None)
        self.ttls.pop(key, None)
        return int(found)

    async def get(self, key: str) -> str | None:
        self.calls.append(("get", key))
        return self.strings.get(key)

    async def set(self, key: str, value: str) -> bool:
        self.calls.append(("set", key))
        self.strings[key] = value
        return True

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self.calls.append(("setex", key))
        self.strings[key] = value
        self.ttls[key] = ttl
        return True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def aclose(self) -> None:
        self.calls.append(("aclose", ""))


@pytest.fixture
def db() -> FakeDatabaseClient:
    return FakeDatabaseClient()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def registry(db: FakeDatabaseClient, fake_redis: FakeRedis) -> ServiceRegistry:
    services = ServiceRegistry()
    services.define_instance("db", db)
    services.define_instance("redis", fake_redis)
    return services
