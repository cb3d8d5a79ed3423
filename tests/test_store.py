"""키-값 저장소 테스트."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from blogcms.core.exceptions import StoreUnavailableError
from blogcms.store import MemoryStore, create_store, get_store, init_store, reset_store
from blogcms.store.redis_store import RedisStore


class TestMemoryStore:
    """인메모리 저장소 테스트."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, memory_store):
        """값 저장 및 조회."""
        await memory_store.set("k", "v")

        assert await memory_store.get("k") == "v"
        assert await memory_store.exists("k") is True

    @pytest.mark.asyncio
    async def test_missing_key(self, memory_store):
        assert await memory_store.get("missing") is None
        assert await memory_store.exists("missing") is False
        assert await memory_store.delete("missing") == 0

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, memory_store, clock):
        """TTL 경과 후 만료."""
        await memory_store.set("k", "v", ttl=10)
        clock.advance(9)
        assert await memory_store.get("k") == "v"

        clock.advance(1)
        assert await memory_store.get("k") is None

    @pytest.mark.asyncio
    async def test_ttl_values(self, memory_store, clock):
        """TTL 조회 (키 없음 -2, 만료 없음 -1)."""
        await memory_store.set("persistent", "v")
        await memory_store.set("temp", "v", ttl=100)
        clock.advance(40)

        assert await memory_store.ttl("missing") == -2
        assert await memory_store.ttl("persistent") == -1
        assert await memory_store.ttl("temp") == 60

    @pytest.mark.asyncio
    async def test_delete(self, memory_store):
        await memory_store.set("k", "v")

        assert await memory_store.delete("k") == 1
        assert await memory_store.get("k") is None

    @pytest.mark.asyncio
    async def test_expire(self, memory_store, clock):
        """기존 키에 TTL 설정."""
        await memory_store.set("k", "v")

        assert await memory_store.expire("k", 5) is True
        assert await memory_store.expire("missing", 5) is False

        clock.advance(5)
        assert await memory_store.exists("k") is False

    @pytest.mark.asyncio
    async def test_list_push_prepends(self, memory_store):
        """리스트 앞쪽 추가 (최신순)."""
        for value in ["1", "2", "3"]:
            await memory_store.list_push("list", value)

        assert await memory_store.list_range("list", 0, -1) == ["3", "2", "1"]
        assert await memory_store.list_range("list", 0, 1) == ["3", "2"]

    @pytest.mark.asyncio
    async def test_list_trim(self, memory_store):
        for value in ["1", "2", "3", "4"]:
            await memory_store.list_push("list", value)

        await memory_store.list_trim("list", 0, 1)

        assert await memory_store.list_range("list") == ["4", "3"]

    @pytest.mark.asyncio
    async def test_list_keeps_ttl(self, memory_store, clock):
        """추가해도 기존 TTL 유지."""
        await memory_store.list_push("list", "1")
        await memory_store.expire("list", 10)
        await memory_store.list_push("list", "2")
        clock.advance(10)

        assert await memory_store.list_range("list") == []

    @pytest.mark.asyncio
    async def test_get_on_list_returns_none(self, memory_store):
        await memory_store.list_push("list", "1")

        assert await memory_store.get("list") is None

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, clock):
        """정리 주기마다 만료 키 제거."""
        store = MemoryStore(clock=clock, cleanup_interval=60)
        await store.set("old", "v", ttl=10)
        clock.advance(61)
        await store.set("new", "v")

        assert "old" not in store._data
        assert store.count() == 1

    def test_clear(self, memory_store):
        memory_store._data["k"] = ("v", None)
        memory_store.clear()

        assert memory_store.count() == 0


class TestRedisStore:
    """Redis 저장소 테스트 (클라이언트 모킹)."""

    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        client.get = AsyncMock(return_value="v")
        client.set = AsyncMock(return_value=True)
        client.delete = AsyncMock(return_value=1)
        client.exists = AsyncMock(return_value=1)
        client.lpush = AsyncMock(return_value=2)
        client.lrange = AsyncMock(return_value=["2", "1"])
        client.ltrim = AsyncMock(return_value=True)
        client.expire = AsyncMock(return_value=True)
        client.ping = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        return client

    @pytest.fixture
    def store(self, redis_client):
        return RedisStore("redis://localhost:6379/0", client=redis_client)

    @pytest.mark.asyncio
    async def test_set_with_ttl(self, store, redis_client):
        """TTL은 EX 옵션으로 전달."""
        await store.set("k", "v", ttl=30)

        redis_client.set.assert_awaited_once_with("k", "v", ex=30)

    @pytest.mark.asyncio
    async def test_set_without_ttl(self, store, redis_client):
        await store.set("k", "v")

        redis_client.set.assert_awaited_once_with("k", "v", ex=None)

    @pytest.mark.asyncio
    async def test_operations(self, store, redis_client):
        assert await store.get("k") == "v"
        assert await store.exists("k") is True
        assert await store.delete("k") == 1
        assert await store.list_push("list", "2") == 2
        assert await store.list_range("list", 0, -1) == ["2", "1"]
        assert await store.expire("list", 60) is True
        assert await store.ping() is True

        redis_client.lpush.assert_awaited_once_with("list", "2")

    @pytest.mark.asyncio
    async def test_connection_error_wrapped(self, store, redis_client):
        """Redis 오류는 StoreUnavailableError로 변환."""
        redis_client.get = AsyncMock(side_effect=RedisConnectionError("connection refused"))

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.get("refresh_token:user_1")

        assert exc_info.value.operation == "get"
        assert exc_info.value.key == "refresh_token:user_1"

    @pytest.mark.asyncio
    async def test_timeout_wrapped(self, store, redis_client):
        redis_client.lrange = AsyncMock(side_effect=RedisTimeoutError("timeout"))

        with pytest.raises(StoreUnavailableError):
            await store.list_range("rate_limit:login:a@example.com")

    @pytest.mark.asyncio
    async def test_close(self, store, redis_client):
        await store.close()

        redis_client.aclose.assert_awaited_once()


class TestStoreFactory:
    """저장소 팩토리 테스트."""

    def setup_method(self):
        reset_store()

    def teardown_method(self):
        reset_store()

    def test_default_memory_backend(self):
        """기본 백엔드는 인메모리."""
        assert isinstance(create_store(), MemoryStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_store("memcached")

    def test_redis_backend(self):
        """redis 백엔드 선택 (접속은 지연됨)."""
        store = create_store("redis")

        assert isinstance(store, RedisStore)
        assert store.redis_url == "redis://localhost:6379/0"

    def test_singleton(self):
        assert get_store() is get_store()

    def test_init_store(self, memory_store):
        init_store(memory_store)

        assert get_store() is memory_store
