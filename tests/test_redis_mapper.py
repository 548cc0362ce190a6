"""Tests for RedisMapper against an in-memory Redis fake."""

from decimal import Decimal

import pytest

from entity_mapper import Column, Entity, PrimaryColumn, RedisMapper
from entity_mapper.errors import DuplicateKeyError, MapperError
from entity_mapper.services import ServiceRegistry


class Session(Entity):
    session_id = PrimaryColumn("uuid", auto_generate=True)
    user_id = Column("integer")
    note = Column("text", nullable=True)
    data = Column("json", nullable=True)


class Counter(Entity):
    scope = PrimaryColumn("text")
    day = PrimaryColumn("date")
    hits = Column("integer", default=0)


class Sequence(Entity):
    seq_id = PrimaryColumn("integer", auto_generate=True)
    name = Column("text")


class Wallet(Entity):
    wallet_id = PrimaryColumn("integer")
    balance = Column("numeric")
    limits = Column("json", nullable=True)


@pytest.fixture
def session_mapper(registry: ServiceRegistry) -> RedisMapper:
    return Session.bind_mapper(
        RedisMapper(Session, registry, service="redis", key_prefix="session:")
    )


class TestRedisMapper:
    """Verify hash storage, keys and update pipelines."""

    @pytest.mark.asyncio
    async def test_insert_and_find(self, session_mapper: RedisMapper, fake_redis) -> None:
        session = Session({"user_id": 7, "data": {"cart": [1, 2]}})
        await session.save()

        key = f"session:{session.session_id}"
        assert fake_redis.hashes[key]["user_id"] == "7"
        assert "note" not in fake_redis.hashes[key]

        found = await Session.find(session.session_id)
        assert found.user_id == 7
        assert found.data == {"cart": [1, 2]}
        assert found.note is None
        assert not found.is_dirty()

    @pytest.mark.asyncio
    async def test_find_miss(self, session_mapper: RedisMapper) -> None:
        assert await Session.find("7b0f5d8e-5a38-4d35-9c1e-0a5c2a5e8f11") is None

    @pytest.mark.asyncio
    async def test_duplicate_insert_rejected(self, session_mapper: RedisMapper) -> None:
        first = Session({"user_id": 1})
        await first.save()

        second = Session({"session_id": first.session_id, "user_id": 2})
        with pytest.raises(DuplicateKeyError):
            await second.save()

    @pytest.mark.asyncio
    async def test_update_sets_and_deletes_fields(self, session_mapper: RedisMapper, fake_redis) -> None:
        session = Session({"user_id": 1, "note": "hi"})
        await session.save()
        key = f"session:{session.session_id}"

        session.user_id = 2
        session.note = None
        await session.save()

        assert fake_redis.hashes[key] == {"session_id": session.session_id, "user_id": "2"}
        assert ("multi", "") in fake_redis.calls

    @pytest.mark.asyncio
    async def test_delete(self, session_mapper: RedisMapper, fake_redis) -> None:
        session = Session({"user_id": 1})
        await session.save()

        await session.destroy()

        assert fake_redis.hashes == {}

    @pytest.mark.asyncio
    async def test_composite_key(self, registry: ServiceRegistry, fake_redis) -> None:
        Counter.bind_mapper(RedisMapper(Counter, registry, service="redis", key_prefix="hits:"))

        await Counter({"scope": "home", "day": "2024-05-01", "hits": 3}).save()

        assert "hits:scope:home;day:2024-05-01" in fake_redis.hashes
        counter = await Counter.find({"scope": "home", "day": "2024-05-01"})
        assert counter.hits == 3

    @pytest.mark.asyncio
    async def test_missing_id_rejected(self, registry: ServiceRegistry) -> None:
        Sequence.bind_mapper(RedisMapper(Sequence, registry, service="redis"))
        with pytest.raises(MapperError, match="cannot build key"):
            await Sequence({"name": "x"}).save()


class TestRedisValueEncoding:
    """Verify values HSET cannot take natively are encoded as strings."""

    @pytest.mark.asyncio
    async def test_decimal_saved_and_found(self, registry: ServiceRegistry, fake_redis) -> None:
        Wallet.bind_mapper(RedisMapper(Wallet, registry, service="redis", key_prefix="wallet:"))

        wallet = Wallet({"wallet_id": 1, "balance": Decimal("10.50"), "limits": {"daily": 5}})
        await wallet.save()

        assert fake_redis.hashes["wallet:1"]["balance"] == "10.50"
        assert fake_redis.hashes["wallet:1"]["limits"] == '{"daily": 5}'
        found = await Wallet.find(1)
        assert found.balance == Decimal("10.50")
        assert found.limits == {"daily": 5}

    @pytest.mark.asyncio
    async def test_decimal_update(self, registry: ServiceRegistry, fake_redis) -> None:
        Wallet.bind_mapper(RedisMapper(Wallet, registry, service="redis", key_prefix="wallet:"))
        wallet = Wallet({"wallet_id": 2, "balance": 1})
        await wallet.save()

        wallet.balance = Decimal("2.25")
        await wallet.save()

        assert fake_redis.hashes["wallet:2"]["balance"] == "2.25"
        assert not wallet.is_dirty()


class TestRedisExplicitRouting:
    """Verify the service and collection overrides of the backend operations."""

    @pytest.mark.asyncio
    async def test_collection_replaces_key_prefix(self, session_mapper: RedisMapper, fake_redis) -> None:
        archive = type(fake_redis)()
        session = Session({"user_id": 3})
        record = session_mapper.unpack(session)
        key = f"archive:{session.session_id}"

        await session_mapper.do_insert(session, record, service=archive, collection="archive:")
        assert archive.hashes[key]["user_id"] == "3"

        found = await session_mapper.do_find(session.get_id_values(), service=archive, collection="archive:")
        assert found["user_id"] == "3"

        await session_mapper.do_delete(session, service=archive, collection="archive:")
        assert archive.hashes == {}
        assert fake_redis.calls == []
