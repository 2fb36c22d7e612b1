"""
Unit tests for RedisHashBucketRepository.

The Redis client is an AsyncMock; these tests check command mapping,
error wrapping and the Lua prefix-delete path.
"""

from unittest.mock import MagicMock

import fakeredis
import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import NoScriptError

from modcache.infrastructure.redis.exceptions import (
    CacheStorageException,
    RedisConnectionException,
)
from modcache.infrastructure.redis.redis_service import RedisService
from modcache.infrastructure.repositories.hash_bucket_repository import (
    DELETE_FIELDS_WITH_PREFIX_SCRIPT,
    RedisHashBucketRepository,
)
from modcache.services.cache.module_cache import ModuleCache

BUCKET = "model.test"


@pytest.mark.redis
class TestRedisHashBucketRepository:
    """Test Redis command mapping."""

    @pytest.fixture
    def repository(self, redis_service):
        return RedisHashBucketRepository(redis_service)

    @pytest.mark.asyncio
    async def test_hash_field_set(self, repository, redis_client):
        redis_client.hset.return_value = 1

        assert await repository.hash_field_set(BUCKET, "getvalues.id:1", "[]") == 1
        redis_client.hset.assert_awaited_once_with(BUCKET, "getvalues.id:1", "[]")

    @pytest.mark.asyncio
    async def test_hash_field_get(self, repository, redis_client):
        redis_client.hget.return_value = '[{"id": 1}]'

        assert await repository.hash_field_get(BUCKET, "f") == '[{"id": 1}]'
        redis_client.hget.assert_awaited_once_with(BUCKET, "f")

    @pytest.mark.asyncio
    async def test_bucket_expire(self, repository, redis_client):
        redis_client.expire.return_value = 1

        assert await repository.bucket_expire(BUCKET, 10) is True
        redis_client.expire.assert_awaited_once_with(BUCKET, 10)

    @pytest.mark.asyncio
    async def test_hash_get_all(self, repository, redis_client):
        redis_client.hgetall.return_value = {"a": "1", "b": "2"}

        assert await repository.hash_get_all(BUCKET) == {"a": "1", "b": "2"}

    @pytest.mark.asyncio
    async def test_hash_field_delete(self, repository, redis_client):
        redis_client.hdel.return_value = 1

        assert await repository.hash_field_delete(BUCKET, "a") == 1
        redis_client.hdel.assert_awaited_once_with(BUCKET, "a")

    @pytest.mark.asyncio
    async def test_bucket_delete(self, repository, redis_client):
        redis_client.delete.return_value = 1

        assert await repository.bucket_delete(BUCKET) == 1
        redis_client.delete.assert_awaited_once_with(BUCKET)

    @pytest.mark.asyncio
    async def test_redis_error_is_wrapped(self, repository, redis_client):
        error = RedisConnectionError("Connection refused")
        redis_client.hget.side_effect = error

        with pytest.raises(CacheStorageException) as exc_info:
            await repository.hash_field_get(BUCKET, "f")

        exc = exc_info.value
        assert exc.__cause__ is error
        assert exc.operation == "hget"
        assert exc.bucket == BUCKET
        assert exc.details["field"] == "f"
        assert exc.details["original_error_type"] == "ConnectionError"
        assert exc.error_code == "CACHE_STORAGE_ERROR"

    @pytest.mark.asyncio
    async def test_os_error_is_wrapped(self, repository, redis_client):
        redis_client.delete.side_effect = OSError("broken pipe")

        with pytest.raises(CacheStorageException):
            await repository.bucket_delete(BUCKET)

    @pytest.mark.asyncio
    async def test_initialize_loads_script(self, repository, redis_client):
        redis_client.script_load.return_value = "sha1"

        await repository.initialize()

        redis_client.script_load.assert_awaited_once_with(
            DELETE_FIELDS_WITH_PREFIX_SCRIPT
        )

    @pytest.mark.asyncio
    async def test_prefix_delete_uses_evalsha(self, repository, redis_client):
        redis_client.script_load.return_value = "sha1"
        redis_client.evalsha.return_value = [1, 1]
        await repository.initialize()

        result = await repository.delete_fields_with_prefix(BUCKET, "getvalues")

        assert result == [1, 1]
        redis_client.evalsha.assert_awaited_once_with("sha1", 1, BUCKET, "getvalues")
        redis_client.eval.assert_not_awaited()
        redis_client.hgetall.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_prefix_delete_falls_back_to_eval_on_noscript(
        self, repository, redis_client
    ):
        redis_client.script_load.return_value = "sha1"
        redis_client.evalsha.side_effect = NoScriptError("NOSCRIPT")
        redis_client.eval.return_value = [1]
        await repository.initialize()

        result = await repository.delete_fields_with_prefix(BUCKET, "getvalues")

        assert result == [1]
        redis_client.eval.assert_awaited_once_with(
            DELETE_FIELDS_WITH_PREFIX_SCRIPT, 1, BUCKET, "getvalues"
        )

    @pytest.mark.asyncio
    async def test_prefix_delete_without_initialize_uses_eval(
        self, repository, redis_client
    ):
        redis_client.eval.return_value = []

        assert await repository.delete_fields_with_prefix(BUCKET, "x") == []
        redis_client.evalsha.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_prefix_delete_error_is_wrapped(self, repository, redis_client):
        redis_client.eval.side_effect = RedisConnectionError("down")

        with pytest.raises(CacheStorageException) as exc_info:
            await repository.delete_fields_with_prefix(BUCKET, "x")

        assert exc_info.value.operation == "delete_fields_with_prefix"

    @pytest.mark.asyncio
    async def test_uninitialized_service_error_propagates(self):
        repository = RedisHashBucketRepository(RedisService())

        with pytest.raises(RedisConnectionException, match="not initialized"):
            await repository.hash_field_get(BUCKET, "f")


class TestScanThenDeleteFallback:
    """The base-class prefix delete used by stores without scripting."""

    @pytest.mark.asyncio
    async def test_deletes_matching_fields(self, memory_repository):
        memory_repository.buckets[BUCKET] = {
            "getvalues.id:1": "1",
            "getvalues.id:2": "2",
            "getvaluesx": "3",
            "getothers.id:1": "4",
            "array:.1": "5",
        }

        result = await memory_repository.delete_fields_with_prefix(BUCKET, "getvalues")

        assert result == [1, 1, 1]
        assert set(memory_repository.buckets[BUCKET]) == {"getothers.id:1", "array:.1"}


@pytest.mark.redis
class TestPrefixDeleteScript:
    """Run the Lua prefix delete on a scripting-capable fake Redis."""

    @pytest_asyncio.fixture
    async def fake_redis(self):
        client = fakeredis.FakeAsyncRedis(
            server=fakeredis.FakeServer(), decode_responses=True
        )
        yield client
        await client.aclose()

    @pytest_asyncio.fixture
    async def repository(self, fake_redis):
        service = MagicMock()
        service.client = fake_redis
        repository = RedisHashBucketRepository(service)
        await repository.initialize()
        return repository

    @pytest.mark.asyncio
    async def test_script_deletes_only_matching_fields(self, repository, fake_redis):
        await fake_redis.hset(
            BUCKET,
            mapping={
                "getvalues.id:1": "1",
                "getvalues.id:2": "2",
                "getothers.id:1": "3",
                "array:.1": "4",
            },
        )

        result = await repository.delete_fields_with_prefix(BUCKET, "getvalues")

        assert result == [1, 1]
        assert sorted(await fake_redis.hkeys(BUCKET)) == ["array:.1", "getothers.id:1"]

    @pytest.mark.asyncio
    async def test_script_without_matches(self, repository, fake_redis):
        await fake_redis.hset(BUCKET, "getothers.id:1", "3")

        assert await repository.delete_fields_with_prefix(BUCKET, "getvalues") == []
        assert await fake_redis.hkeys(BUCKET) == ["getothers.id:1"]

    @pytest.mark.asyncio
    async def test_script_reloads_after_flush(self, repository, fake_redis):
        await fake_redis.hset(BUCKET, mapping={"getvalues.id:1": "1", "other": "2"})
        await fake_redis.script_flush()

        result = await repository.delete_fields_with_prefix(BUCKET, "getvalues")

        assert result == [1]
        assert await fake_redis.hkeys(BUCKET) == ["other"]

    @pytest.mark.asyncio
    async def test_module_cache_clear_prefix(self, repository, fake_redis):
        cache = ModuleCache(BUCKET, 10, repository=repository, disabled=False)
        await cache.set("getvalues", {"id": 1}, [{"id": 1}])
        await cache.set("getvalues", {"id": 2}, [{"id": 2}])
        await cache.set("getothers", {"id": 1}, [{"id": 3}])

        assert await cache.clear("getvalues") == [1, 1]
        await fake_redis.script_flush()
        assert await cache.clear("getothers") == [1]

        assert await cache.get("getvalues", {"id": 1}) is None
        assert await fake_redis.exists(BUCKET) == 0

    @pytest.mark.asyncio
    async def test_module_cache_clear_keeps_list_fields_and_ttl(
        self, repository, fake_redis
    ):
        cache = ModuleCache(BUCKET, 10, repository=repository, disabled=False)
        await cache.set("getvalues", {"id": 1}, [{"id": 1}, {"id": 2}])
        await cache.set("getothers", [1], "x")

        assert await cache.get("getvalues", {"id": 1}) == [{"id": 1}, {"id": 2}]

        assert await cache.clear("getvalues") == [1]
        assert await fake_redis.hkeys(BUCKET) == ["array:.1"]
        assert 0 < await fake_redis.ttl(BUCKET) <= 10
