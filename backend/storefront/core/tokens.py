"""JWT minting and verification: session access/refresh tokens and email-action tokens.

Every token kind has its own secret. Verification errors for a token kind are
collapsed into one UnauthorizedError message so callers cannot tell an expired
token from a forged one.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from jose import JWTError, jwt

from storefront.config import Settings
from storefront.core.errors import ConfigurationError, UnauthorizedError
from storefront.core.security import generate_csrf_token
from storefront.models.refresh_token import RefreshToken

logger = logging.getLogger(__name__)


class RefreshTokenStore(Protocol):
    async def upsert_refresh_token(self, user_id: int, token: str, expires_at: datetime) -> None: ...

    async def find_refresh_token(self, token: str) -> RefreshToken | None: ...

    async def delete_refresh_token(self, user_id: int) -> None: ...


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    refresh_token: str
    csrf_token: str


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    expires_at: datetime


@dataclass(frozen=True)
class EmailActionClaims:
    code: str
    email: str


class TokenService:
    def __init__(self, settings: Settings, store: RefreshTokenStore) -> None:
        if not settings.access_token_secret or not settings.refresh_token_secret:
            raise ConfigurationError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be set")
        self.settings = settings
        self.store = store
        self._algorithms = [settings.jwt_algorithm]

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.access_token_expire_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.settings.refresh_token_expire_days)

    @property
    def email_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.email_token_expire_minutes)

    def _encode(self, claims: dict[str, Any], secret: str, ttl: timedelta) -> str:
        now = self._now()
        payload = {**claims, "iat": now, "exp": now + ttl, "jti": uuid.uuid4().hex}
        result = jwt.encode(payload, secret, algorithm=self.settings.jwt_algorithm)
        return result if isinstance(result, str) else result.decode("utf-8")

    def _decode_subject(self, token: str, secret: str) -> TokenClaims:
        try:
            payload = jwt.decode(token, secret, algorithms=self._algorithms)
            user_id = int(payload["sub"])
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (JWTError, KeyError, TypeError, ValueError) as e:
            logger.debug("Token rejected: %s", e)
            raise UnauthorizedError("Invalid or expired token") from e
        return TokenClaims(user_id=user_id, expires_at=expires_at)

    def create_access_token(self, user_id: int) -> str:
        return self._encode({"sub": str(user_id)}, self.settings.access_token_secret, self.access_token_ttl)

    def create_refresh_token(self, user_id: int) -> str:
        return self._encode({"sub": str(user_id)}, self.settings.refresh_token_secret, self.refresh_token_ttl)

    async def issue_session_tokens(self, user_id: int) -> SessionTokens:
        """Mint access, refresh and CSRF tokens and persist the refresh token.

        Any refresh token previously stored for the user is overwritten, so
        exactly one live refresh record exists afterwards.
        """
        access_token = self.create_access_token(user_id)
        refresh_token = self.create_refresh_token(user_id)
        await self.store.upsert_refresh_token(
            user_id, refresh_token, self._now() + self.refresh_token_ttl
        )
        return SessionTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            csrf_token=generate_csrf_token(),
        )

    def verify_access_token(self, token: str) -> TokenClaims:
        return self._decode_subject(token, self.settings.access_token_secret)

    def verify_refresh_token(self, token: str) -> TokenClaims:
        return self._decode_subject(token, self.settings.refresh_token_secret)

    def _email_secret(self) -> str:
        if not self.settings.email_token_secret:
            raise ConfigurationError("EMAIL_TOKEN_SECRET is not configured")
        return self.settings.email_token_secret

    def issue_email_action_token(self, code: str, email: str) -> str:
        """Short-lived token binding a one-time code to an email (verify links, password reset)."""
        return self._encode({"code": code, "email": email}, self._email_secret(), self.email_token_ttl)

    def verify_email_action_token(self, token: str) -> EmailActionClaims:
        secret = self._email_secret()
        try:
            payload = jwt.decode(token, secret, algorithms=self._algorithms)
        except JWTError as e:
            logger.debug("Email action token rejected: %s", e)
            raise UnauthorizedError("Invalid or expired token") from e
        code = payload.get("code")
        email = payload.get("email")
        if not isinstance(code, str) or not code or not isinstance(email, str) or not email:
            raise UnauthorizedError("Invalid or expired token")
        return EmailActionClaims(code=code, email=email)

    def remaining_lifetime(self, token: str) -> timedelta | None:
        """Time until the token's exp claim, read without verifying the signature.

        Returns None when the token is already expired. Raises JWTError or
        ValueError if the token cannot be decoded.
        """
        claims = jwt.get_unverified_claims(token)
        exp = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
        remaining = exp - self._now()
        if remaining <= timedelta(0):
            return None
        return remaining
