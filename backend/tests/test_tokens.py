"""Unit tests for TokenService: session tokens, email-action tokens, tamper and expiry."""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from storefront.config import Settings, settings
from storefront.core.errors import ConfigurationError, UnauthorizedError
from storefront.core.tokens import TokenService


class MemoryStore:
    """Refresh-token store keeping one row per user, like the SQL upsert."""

    def __init__(self):
        self.rows: dict[int, tuple[str, datetime]] = {}

    async def upsert_refresh_token(self, user_id, token, expires_at):
        self.rows[user_id] = (token, expires_at)

    async def find_refresh_token(self, token):
        return next((uid for uid, (t, _) in self.rows.items() if t == token), None)

    async def delete_refresh_token(self, user_id):
        self.rows.pop(user_id, None)


def _service(**overrides) -> TokenService:
    return TokenService(settings.model_copy(update=overrides), MemoryStore())


def _tamper(token: str) -> str:
    """Change the first signature character (the last one can differ only in padding bits)."""
    header, payload, signature = token.split(".")
    flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
    return f"{header}.{payload}.{flipped}"


def test_access_token_roundtrip():
    svc = _service()
    token = svc.create_access_token(42)
    claims = svc.verify_access_token(token)
    assert claims.user_id == 42
    assert claims.expires_at > datetime.now(timezone.utc)


def test_tokens_are_unique_within_the_same_second():
    svc = _service()
    assert svc.create_access_token(1) != svc.create_access_token(1)


def test_access_and_refresh_secrets_are_not_interchangeable():
    svc = _service()
    with pytest.raises(UnauthorizedError):
        svc.verify_refresh_token(svc.create_access_token(1))
    with pytest.raises(UnauthorizedError):
        svc.verify_access_token(svc.create_refresh_token(1))


def test_tampered_and_expired_tokens_share_one_error():
    svc = _service()
    expired = jwt.encode(
        {"sub": "1", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.access_token_secret,
        algorithm="HS256",
    )
    with pytest.raises(UnauthorizedError) as tampered_err:
        svc.verify_access_token(_tamper(svc.create_access_token(1)))
    with pytest.raises(UnauthorizedError) as expired_err:
        svc.verify_access_token(expired)
    assert tampered_err.value.message == expired_err.value.message == "Invalid or expired token"


def test_token_without_subject_is_rejected():
    svc = _service()
    token = jwt.encode(
        {"exp": datetime.now(timezone.utc) + timedelta(minutes=1)},
        settings.access_token_secret,
        algorithm="HS256",
    )
    with pytest.raises(UnauthorizedError):
        svc.verify_access_token(token)


@pytest.mark.asyncio
async def test_issue_session_tokens_overwrites_stored_refresh_token():
    svc = _service()
    first = await svc.issue_session_tokens(7)
    second = await svc.issue_session_tokens(7)
    assert list(svc.store.rows) == [7]
    assert svc.store.rows[7][0] == second.refresh_token
    assert first.refresh_token != second.refresh_token
    assert len(second.csrf_token) == 64
    assert svc.verify_refresh_token(second.refresh_token).user_id == 7


def test_email_action_token_roundtrip():
    svc = _service()
    token = svc.issue_email_action_token("abc123", "u@example.com")
    claims = svc.verify_email_action_token(token)
    assert claims.code == "abc123"
    assert claims.email == "u@example.com"


def test_email_action_token_tampered_payload():
    svc = _service()
    token = svc.issue_email_action_token("abc123", "u@example.com")
    header, payload, signature = token.split(".")
    forged_payload = jwt.encode(
        {"code": "abc123", "email": "attacker@example.com"}, "other-secret", algorithm="HS256"
    ).split(".")[1]
    with pytest.raises(UnauthorizedError):
        svc.verify_email_action_token(f"{header}.{forged_payload}.{signature}")
    with pytest.raises(UnauthorizedError):
        svc.verify_email_action_token(_tamper(token))


def test_email_action_token_expired():
    svc = _service(email_token_expire_minutes=-1)
    token = svc.issue_email_action_token("abc123", "u@example.com")
    with pytest.raises(UnauthorizedError):
        svc.verify_email_action_token(token)


def test_email_action_token_rejects_session_token():
    svc = _service()
    with pytest.raises(UnauthorizedError):
        svc.verify_email_action_token(svc.create_access_token(1))


def test_missing_session_secrets_fail_construction():
    with pytest.raises(ConfigurationError):
        _service(access_token_secret="")
    with pytest.raises(ConfigurationError):
        _service(refresh_token_secret="")


def test_missing_email_secret_fails_on_use():
    svc = _service(email_token_secret="")
    with pytest.raises(ConfigurationError):
        svc.issue_email_action_token("abc", "u@example.com")


def test_remaining_lifetime():
    svc = _service()
    remaining = svc.remaining_lifetime(svc.create_refresh_token(1))
    assert timedelta(days=6) < remaining <= timedelta(days=7)
    expired = _service(access_token_expire_minutes=-1).create_access_token(1)
    assert svc.remaining_lifetime(expired) is None


def test_validate_jwt_config():
    Settings(
        access_token_secret="a", refresh_token_secret="b", email_token_secret="c"
    ).validate_jwt_config()
    with pytest.raises(ConfigurationError):
        Settings(access_token_secret="a", refresh_token_secret="a", email_token_secret="c").validate_jwt_config()
    with pytest.raises(ConfigurationError):
        Settings(access_token_secret="a", refresh_token_secret="b", email_token_secret="").validate_jwt_config()
