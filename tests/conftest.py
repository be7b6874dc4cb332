"""
测试公共 fixture

- 数据库: SQLite 临时文件(aiosqlite)
- 缓存: fakeredis
- HTTP: httpx ASGITransport, 手动进入应用的 lifespan
"""

from typing import Dict

import fakeredis.aioredis
import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import TimeoutError as RedisTimeoutError

from scripts.init_admin_data import seed_admin_data
from tms_middleware.core.cache import CacheService
from tms_middleware.core.config import Settings
from tms_middleware.core.container import build_services
from tms_middleware.core.db import create_engine, create_session_factory, init_models
from tms_middleware.main import create_app
from tms_middleware.schemas.user import UserCreate

ADMIN_EMAIL = "admin@tms.com"
ADMIN_PASSWORD = "Admin@123"
DEFAULT_PASSWORD = "Passw0rd!"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        DB_AUTO_CREATE=True,
        SECRET_KEY="test-secret-key",
        BCRYPT_ROUNDS=4,
        LOG_DIR=tmp_path / "logs",
        LOG_LEVEL="DEBUG",
        RPC_ENABLED=False,
        TCP_HOST="127.0.0.1",
        TCP_PORT=0,
        REDIS_RETRY_DELAY=0.5,
    )


@pytest.fixture
async def redis_client():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def cache(redis_client) -> CacheService:
    return CacheService(redis_client, default_ttl=3600, retry_delay=0.5)


@pytest.fixture
def cache_blip(cache, redis_client, monkeypatch):
    """让下一次 Redis GET 超时一次, 缓存随之进入冷却期, 返回结束冷却期的函数"""
    original_get = redis_client.get

    async def _timeout_once(*args, **kwargs):
        monkeypatch.setattr(redis_client, "get", original_get)
        raise RedisTimeoutError("Timeout reading from socket")

    async def _blip():
        monkeypatch.setattr(cache, "retry_delay", 60)
        monkeypatch.setattr(redis_client, "get", _timeout_once)
        assert await cache.get("users:blip") is None
        assert not cache.available

        def _recover():
            cache._down_until = 0.0

        return _recover

    return _blip


@pytest.fixture
async def engine(settings):
    engine = create_engine(settings)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def services(db, cache, settings):
    return build_services(db, cache, settings)


@pytest.fixture
async def seeded(session_factory, cache, settings) -> Dict:
    """初始化五个内置角色和一个管理员, 返回 {角色名: 角色ID, "admin_user_id": ...}"""
    summary = await seed_admin_data(
        session_factory, cache, settings, ADMIN_EMAIL, ADMIN_PASSWORD
    )
    async with session_factory() as session:
        roles = await build_services(session, cache, settings).roles.find_all()
    result = {role.name: role.id for role in roles}
    result["admin_user_id"] = summary["admin_user_id"]
    return result


@pytest.fixture
def make_user(services, seeded):
    """按角色名创建用户"""

    async def _make_user(email: str, *role_names: str, password: str = DEFAULT_PASSWORD):
        return await services.users.create(
            UserCreate(
                email=email,
                password=password,
                first_name="Test",
                last_name="User",
                role_ids=[seeded[name] for name in role_names],
            )
        )

    return _make_user


@pytest.fixture
async def app(settings, redis_client, seeded):
    application = create_app(settings, redis_client=redis_client)
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def login(client):
    """登录并返回带 Bearer Token 的请求头"""

    async def _login(email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD) -> Dict:
        response = await client.post(
            "/api/auth/login", json={"email": email, "password": password}
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _login
