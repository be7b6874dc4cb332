import fakeredis
import fakeredis.aioredis
import pytest

from tms_middleware.core.cache import CacheService, escape_pattern


@pytest.fixture
async def broken_cache():
    server = fakeredis.FakeServer()
    server.connected = False
    client = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
    yield CacheService(client, default_ttl=60, retry_delay=60)
    await client.aclose()


async def test_set_and_get_json_values(cache):
    await cache.set("users:1", {"id": "1", "roles": ["admin"]})
    assert await cache.get("users:1") == {"id": "1", "roles": ["admin"]}
    assert await cache.get("users:missing") is None


async def test_set_uses_default_and_explicit_ttl(cache, redis_client):
    await cache.set("a", 1)
    await cache.set("b", 1, ttl=10)
    assert 0 < await redis_client.ttl("a") <= 3600
    assert 0 < await redis_client.ttl("b") <= 10


async def test_unparseable_value_is_a_miss(cache, redis_client):
    await redis_client.set("users:bad", "{not json")
    assert await cache.get("users:bad") is None


async def test_delete(cache):
    await cache.set("roles:1", {"id": "1"})
    await cache.delete("roles:1")
    assert await cache.get("roles:1") is None


async def test_delete_by_prefix_only_touches_prefix(cache, redis_client):
    for i in range(5):
        await cache.set(f"users:{i}", i)
    await cache.set("roles:all", [])

    assert await cache.delete_by_prefix("users:") == 5
    assert await redis_client.keys("users:*") == []
    assert await cache.get("roles:all") == []


async def test_delete_by_prefix_deletes_in_batches(redis_client, monkeypatch):
    cache = CacheService(redis_client, batch_size=10)
    for i in range(25):
        await redis_client.set(f"orders:{i}", "1")

    calls = []
    original_delete = redis_client.delete

    async def counting_delete(*keys):
        calls.append(len(keys))
        return await original_delete(*keys)

    monkeypatch.setattr(redis_client, "delete", counting_delete)
    assert await cache.delete_by_prefix("orders:") == 25
    assert calls == [10, 10, 5]


def test_escape_pattern():
    assert escape_pattern("users:") == "users:"
    assert escape_pattern("a*b?[c]") == "a\\*b\\?\\[c\\]"
    assert escape_pattern("back\\slash") == "back\\\\slash"


async def test_delete_by_prefix_treats_glob_chars_literally(cache, redis_client):
    await redis_client.set("roles:permission:a*:x", "1")
    await redis_client.set("roles:permission:ab:x", "1")

    assert await cache.delete_by_prefix("roles:permission:a*") == 1
    assert await redis_client.exists("roles:permission:ab:x") == 1


async def test_operations_fail_soft_when_redis_is_down(broken_cache):
    assert await broken_cache.get("users:1") is None
    # 连接失败后进入冷却期
    assert not broken_cache.available

    await broken_cache.set("users:1", {"id": "1"})
    await broken_cache.delete("users:1")
    assert await broken_cache.delete_by_prefix("users:") == 0


async def test_health_check(cache, broken_cache):
    assert await cache.health_check() is True
    assert await broken_cache.health_check() is False


async def test_health_check_ends_cooldown(redis_client):
    cache = CacheService(redis_client, retry_delay=60)
    cache._down_until = float("inf")
    assert not cache.available
    assert await cache.get("anything") is None

    assert await cache.health_check() is True
    assert cache.available



async def test_flush_all(cache, redis_client):
    await cache.set("users:1", 1)
    await cache.set("orders:1", 1)
    await cache.flush_all()
    assert await redis_client.dbsize() == 0


async def test_stats_reports_error_when_redis_is_down(broken_cache):
    assert "error" in await broken_cache.stats()


async def test_invalidation_is_attempted_during_cooldown(cache, redis_client):
    await cache.set("users:1", {"id": "1"})
    await cache.set("users:2", {"id": "2"})
    await cache.set("roles:1", {"id": "1"})
    cache._down_until = float("inf")

    # 读取和回写在冷却期内跳过
    assert await cache.get("roles:1") is None
    await cache.set("orders:1", {"id": "1"})
    assert await redis_client.exists("orders:1") == 0

    # 失效操作照常执行, 恢复后不会读到旧数据
    await cache.delete("roles:1")
    assert await cache.delete_by_prefix("users:") == 2
    assert await redis_client.dbsize() == 0


async def test_set_if_absent(cache, redis_client):
    assert await cache.set_if_absent("auth:revoked:x", 1, 30) is True
    assert await cache.set_if_absent("auth:revoked:x", 1, 30) is False
    assert 0 < await redis_client.ttl("auth:revoked:x") <= 30

    cache._down_until = float("inf")
    assert await cache.set_if_absent("auth:revoked:y", 1, 30) is True


async def test_set_if_absent_reports_unavailable_cache(broken_cache):
    assert await broken_cache.set_if_absent("auth:revoked:x", 1, 30) is None
