import pytest

from tms_middleware.core.constants import CacheKeys
from tms_middleware.core.exceptions import UnauthenticatedError
from tms_middleware.core.security import create_token, hash_token
from tms_middleware.schemas.user import UserUpdate


@pytest.fixture
async def dispatcher(make_user):
    return await make_user("dispatcher@tms.com", "dispatcher")


async def test_issue_and_verify_access_token(services, dispatcher):
    pair = await services.tokens.issue_token_pair(dispatcher)
    assert pair.token_type == "bearer"
    assert pair.expires_in == 86400

    claims = await services.tokens.verify_access(pair.access_token)
    assert claims.sub == dispatcher.id
    assert claims.email == "dispatcher@tms.com"
    assert claims.roles == ["dispatcher"]
    assert claims.permissions == sorted(
        ["order:create", "order:read", "order:update", "order:list"]
    )
    assert claims.type == "access"


async def test_issued_access_token_is_cached(services, dispatcher, redis_client):
    pair = await services.tokens.issue_token_pair(dispatcher)
    key = f"{CacheKeys.AUTH_TOKEN}{hash_token(pair.access_token)}"
    assert await redis_client.exists(key) == 1
    assert 0 < await redis_client.ttl(key) <= 86400


async def test_verify_without_cache_entry_decodes_and_repopulates(
    services, dispatcher, redis_client
):
    pair = await services.tokens.issue_token_pair(dispatcher)
    key = f"{CacheKeys.AUTH_TOKEN}{hash_token(pair.access_token)}"
    await redis_client.delete(key)

    claims = await services.tokens.verify_access(pair.access_token)
    assert claims.sub == dispatcher.id
    assert await redis_client.exists(key) == 1


async def test_revoked_token_is_rejected_even_with_valid_signature(services, dispatcher):
    pair = await services.tokens.issue_token_pair(dispatcher)
    await services.tokens.revoke(pair.access_token, pair.refresh_token)

    with pytest.raises(UnauthenticatedError):
        await services.tokens.verify_access(pair.access_token)
    with pytest.raises(UnauthenticatedError):
        await services.tokens.refresh(pair.refresh_token)


async def test_refresh_token_cannot_be_used_as_access_token(services, dispatcher):
    pair = await services.tokens.issue_token_pair(dispatcher)
    with pytest.raises(UnauthenticatedError):
        await services.tokens.verify_access(pair.refresh_token)


async def test_access_token_cannot_be_used_to_refresh(services, dispatcher):
    pair = await services.tokens.issue_token_pair(dispatcher)
    with pytest.raises(UnauthenticatedError):
        await services.tokens.refresh(pair.access_token)


async def test_expired_and_garbage_tokens_are_rejected(services, settings, dispatcher):
    expired = create_token(
        {"sub": dispatcher.id, "email": dispatcher.email},
        settings.SECRET_KEY,
        settings.ALGORITHM,
        -10,
    )
    for token in (expired, "not-a-jwt", ""):
        with pytest.raises(UnauthenticatedError):
            await services.tokens.verify_access(token)


async def test_refresh_rotates_the_refresh_token(services, dispatcher):
    pair = await services.tokens.issue_token_pair(dispatcher)

    refreshed = await services.tokens.refresh(pair.refresh_token)
    assert refreshed.refresh_token != pair.refresh_token
    assert refreshed.access_token != pair.access_token
    assert refreshed.user.id == dispatcher.id

    # 旧的 Refresh Token 只能使用一次
    with pytest.raises(UnauthenticatedError):
        await services.tokens.refresh(pair.refresh_token)
    await services.tokens.refresh(refreshed.refresh_token)


async def test_refresh_recomputes_roles_and_permissions(services, seeded, dispatcher):
    pair = await services.tokens.issue_token_pair(dispatcher)
    await services.users.update(
        dispatcher.id, UserUpdate(role_ids=[seeded["manager"]])
    )

    refreshed = await services.tokens.refresh(pair.refresh_token)
    claims = await services.tokens.verify_access(refreshed.access_token)
    assert claims.roles == ["manager"]
    assert "user:read" in claims.permissions


async def test_refresh_rejected_for_inactive_user(services, dispatcher):
    pair = await services.tokens.issue_token_pair(dispatcher)
    await services.users.set_active(dispatcher.id, False)

    with pytest.raises(UnauthenticatedError):
        await services.tokens.refresh(pair.refresh_token)


async def test_verification_survives_cache_outage(services, dispatcher):
    pair = await services.tokens.issue_token_pair(dispatcher)
    # 冷却期内所有缓存操作被跳过, 只能依靠验签
    services.tokens.cache._down_until = float("inf")

    claims = await services.tokens.verify_access(pair.access_token)
    assert claims.sub == dispatcher.id


async def test_logout_during_cache_cooldown_still_revokes(services, dispatcher, cache_blip):
    pair = await services.tokens.issue_token_pair(dispatcher)
    recover = await cache_blip()

    await services.tokens.revoke(pair.access_token, pair.refresh_token)
    recover()

    with pytest.raises(UnauthenticatedError):
        await services.tokens.verify_access(pair.access_token)
    with pytest.raises(UnauthenticatedError):
        await services.tokens.refresh(pair.refresh_token)


async def test_concurrent_refresh_succeeds_only_once(services, dispatcher, monkeypatch):
    pair = await services.tokens.issue_token_pair(dispatcher)

    # 两个请求都在对方写入黑名单之前通过了撤销检查
    async def _not_revoked_yet(token):
        return False

    monkeypatch.setattr(services.tokens, "is_revoked", _not_revoked_yet)

    await services.tokens.refresh(pair.refresh_token)
    with pytest.raises(UnauthenticatedError):
        await services.tokens.refresh(pair.refresh_token)
