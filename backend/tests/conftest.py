"""Pytest configuration and shared fixtures for API tests."""

import os
import re
import tempfile
import time

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test DB and secrets before app imports so config/engine use them
_TEST_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR}/test.db")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")
os.environ.setdefault("EMAIL_TOKEN_SECRET", "test-email-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from storefront.api.deps import get_revocation_cache
from storefront.core.cache import RevocationCache
from storefront.core.csrf import CSRF_COOKIE
from storefront.core.security import hash_password
from storefront.db.base import Base
from storefront.db.session import async_session_maker, engine, init_db
from storefront.main import app
from storefront.models.user import Role, User
from storefront.services.email import EmailSender, get_email_sender

PASSWORD = "Passw0rd!"


class FakeRedis:
    """In-memory stand-in for the redis.asyncio calls RevocationCache makes."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.expires_at: dict[str, float] = {}

    def _alive(self, key: str) -> bool:
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return key in self.data

    def ttl(self, key: str) -> float | None:
        if not self._alive(key) or key not in self.expires_at:
            return None
        return self.expires_at[key] - time.monotonic()

    async def get(self, key):
        return self.data[key] if self._alive(key) else None

    async def set(self, key, value, ex=None, px=None):
        self.data[key] = value
        self.expires_at.pop(key, None)
        if ex is not None:
            self.expires_at[key] = time.monotonic() + ex
        elif px is not None:
            self.expires_at[key] = time.monotonic() + px / 1000
        return True

    async def expire(self, key, seconds):
        if not self._alive(key):
            return False
        self.expires_at[key] = time.monotonic() + seconds
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return removed

    async def aclose(self):
        return None


class RecordingMailer(EmailSender):
    """EmailSender that keeps messages in memory instead of delivering them."""

    def __init__(self):
        super().__init__()
        self.outbox: list[tuple[str, str, str]] = []

    async def send(self, to_email: str, subject: str, html_body: str) -> None:
        self.outbox.append((to_email, subject, html_body))

    def last_code(self, to_email: str) -> str:
        """Code from the newest <h3> block sent to this address."""
        for to, _subject, body in reversed(self.outbox):
            if to == to_email:
                match = re.search(r"<h3>([^<]+)</h3>", body)
                if match:
                    return match.group(1)
        raise AssertionError(f"no code mailed to {to_email}")


async def _truncate_all():
    """Delete all rows in reverse dependency order so tests start clean."""
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())


@pytest_asyncio.fixture
async def clean_db():
    """Create tables if needed and empty them so the test has a clean DB."""
    await init_db()
    await _truncate_all()
    yield


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest_asyncio.fixture
async def client(clean_db, fake_redis, mailer):
    """Yield AsyncClient with Redis and SMTP replaced by in-memory fakes."""
    app.dependency_overrides[get_revocation_cache] = lambda: RevocationCache(fake_redis)
    app.dependency_overrides[get_email_sender] = lambda: mailer
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_user(
    email: str,
    *,
    username: str = "tester",
    password: str = PASSWORD,
    role: Role = Role.USER,
    is_verified: bool = True,
    second_email: str | None = None,
) -> User:
    """Insert a user straight into the DB (committed)."""
    async with async_session_maker() as session:
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            role=role.value,
            is_verified=is_verified,
            second_email=second_email,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


@pytest_asyncio.fixture
async def test_user(clean_db):
    """Verified USER account; returns (user_id, email, password)."""
    user = await create_user("test@test.com")
    return user.id, user.email, PASSWORD


@pytest_asyncio.fixture
async def admin_user(clean_db):
    """Verified ADMIN account; returns (user_id, email, password)."""
    user = await create_user("admin@test.com", username="admin", role=Role.ADMIN)
    return user.id, user.email, PASSWORD


async def login(client: AsyncClient, email: str, password: str = PASSWORD) -> dict:
    """Login through the API; session cookies land in the client jar. Returns CSRF headers."""
    resp = await client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"X-CSRF-Token": client.cookies.get(CSRF_COOKIE)}


@pytest_asyncio.fixture
async def user_session(client, test_user):
    """client logged in as test_user; returns CSRF headers for mutating requests."""
    return await login(client, test_user[1])


@pytest_asyncio.fixture
async def admin_session(client, admin_user):
    """client logged in as admin_user; returns CSRF headers for mutating requests."""
    return await login(client, admin_user[1])
