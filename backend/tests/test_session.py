"""Session resolution: token checks, blacklist and the cache-first identity load."""

from types import SimpleNamespace

import pytest

from conftest import FakeRedis
from storefront.config import settings
from storefront.core.cache import RevocationCache
from storefront.core.errors import UnauthorizedError
from storefront.core.session import SessionResolver
from storefront.core.tokens import TokenService
from storefront.schemas.auth import CurrentUser


class CountingUsers:
    def __init__(self, *users):
        self.users = {u.id: u for u in users}
        self.calls = 0

    async def get_by_id(self, user_id):
        self.calls += 1
        return self.users.get(user_id)


def _user(user_id=1, role="USER"):
    return SimpleNamespace(
        id=user_id,
        username="alice",
        email="alice@test.com",
        second_email=None,
        role=role,
        is_verified=True,
    )


@pytest.fixture
def redis():
    return FakeRedis()


@pytest.fixture
def tokens():
    return TokenService(settings, store=None)


def _resolver(tokens, redis, users):
    return SessionResolver(tokens, RevocationCache(redis, user_ttl_seconds=1800), users)


@pytest.mark.asyncio
async def test_missing_token(tokens, redis):
    with pytest.raises(UnauthorizedError) as exc:
        await _resolver(tokens, redis, CountingUsers()).resolve(None)
    assert exc.value.message == "Authentication token is missing"


@pytest.mark.asyncio
async def test_cache_miss_loads_and_caches(tokens, redis):
    users = CountingUsers(_user())
    identity = await _resolver(tokens, redis, users).resolve(tokens.create_access_token(1))
    assert identity == CurrentUser(
        id=1, username="alice", email="alice@test.com", role="USER", is_verified=True
    )
    assert users.calls == 1
    assert CurrentUser.model_validate_json(redis.data["user:1"]) == identity
    assert redis.ttl("user:1") > 1790


@pytest.mark.asyncio
async def test_cache_hit_skips_store(tokens, redis):
    users = CountingUsers(_user())
    resolver = _resolver(tokens, redis, users)
    await resolver.resolve(tokens.create_access_token(1))
    await resolver.resolve(tokens.create_access_token(1))
    assert users.calls == 1


@pytest.mark.asyncio
async def test_cache_hit_slides_ttl(tokens, redis):
    cached = CurrentUser(id=1, username="alice", email="alice@test.com", role="ADMIN", is_verified=True)
    await redis.set("user:1", cached.model_dump_json(), ex=5)
    identity = await _resolver(tokens, redis, CountingUsers()).resolve(tokens.create_access_token(1))
    assert identity.role == "ADMIN"
    assert redis.ttl("user:1") > 1790


@pytest.mark.asyncio
async def test_malformed_cache_entry_falls_back_to_store(tokens, redis):
    await redis.set("user:1", '{"id": "oops"}', ex=60)
    users = CountingUsers(_user())
    identity = await _resolver(tokens, redis, users).resolve(tokens.create_access_token(1))
    assert identity.id == 1
    assert users.calls == 1


@pytest.mark.asyncio
async def test_unknown_user(tokens, redis):
    with pytest.raises(UnauthorizedError):
        await _resolver(tokens, redis, CountingUsers()).resolve(tokens.create_access_token(99))


@pytest.mark.asyncio
async def test_blacklisted_token(tokens, redis):
    token = tokens.create_access_token(1)
    await RevocationCache(redis).blacklist_token(token, tokens.access_token_ttl)
    with pytest.raises(UnauthorizedError):
        await _resolver(tokens, redis, CountingUsers(_user())).resolve(token)


@pytest.mark.asyncio
async def test_refresh_token_is_not_a_session_token(tokens, redis):
    with pytest.raises(UnauthorizedError):
        await _resolver(tokens, redis, CountingUsers(_user())).resolve(tokens.create_refresh_token(1))
