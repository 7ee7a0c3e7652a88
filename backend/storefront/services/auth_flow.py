"""Auth flows: register, verify email, login (password and Google), logout,
refresh rotation, password reset and email second factor.

Handlers in storefront.api.auth own the HTTP side (cookies, status codes);
everything here raises AppError subclasses and returns plain results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from jose import JWTError

from storefront.config import Settings
from storefront.core.cache import RevocationCache
from storefront.core.errors import (
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from storefront.core.security import (
    constant_time_equals,
    dummy_password_hash,
    generate_second_factor_code,
    is_strong_password,
    verify_password,
)
from storefront.core.tokens import SessionTokens, TokenService
from storefront.models.user import User
from storefront.schemas.auth import CurrentUser, RegisterBody
from storefront.services.email import EmailSender, redact_email
from storefront.services.google_oauth import GoogleProfile
from storefront.services.refresh_tokens import SqlRefreshTokenStore
from storefront.services.users import UserStore

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_RESET = "Invalid or expired reset code"
WEAK_PASSWORD = (
    "Password must be at least 8 characters and include uppercase, lowercase, number, and special character"
)


@dataclass(frozen=True)
class RegistrationResult:
    user: User
    tokens: SessionTokens
    verify_email_token: str


@dataclass(frozen=True)
class LoginResult:
    user: User
    tokens: SessionTokens
    requires_second_factor: bool = False


class AuthFlow:
    def __init__(
        self,
        *,
        users: UserStore,
        refresh_store: SqlRefreshTokenStore,
        tokens: TokenService,
        cache: RevocationCache,
        mailer: EmailSender,
        settings: Settings,
    ) -> None:
        self.users = users
        self.refresh_store = refresh_store
        self.tokens = tokens
        self.cache = cache
        self.mailer = mailer
        self.settings = settings

    def verification_link(self, action_token: str) -> str:
        return f"{self.settings.public_base_url.rstrip('/')}/auth/verify-email?token={action_token}"

    async def _blacklist_for_remaining_life(self, token: str) -> None:
        remaining = self.tokens.remaining_lifetime(token)
        if remaining is not None:
            await self.cache.blacklist_token(token, remaining)

    async def register(self, body: RegisterBody) -> RegistrationResult:
        user = await self.users.create_user(
            username=body.username,
            email=body.email,
            password=body.password,
            first_name=body.first_name,
            last_name=body.last_name,
        )
        action_token = self.tokens.issue_email_action_token(user.verify_token, user.email)
        session_tokens = await self.tokens.issue_session_tokens(user.id)
        await self.mailer.send_verification(user.email, self.verification_link(action_token))
        logger.info("User %s registered (role=%s)", user.id, user.role)
        return RegistrationResult(user=user, tokens=session_tokens, verify_email_token=action_token)

    async def verify_email(self, token: str | None) -> User:
        """Accept a signed verify link token, or the raw verify code as a fallback."""
        if not token:
            raise ValidationError("No token provided")
        try:
            code = self.tokens.verify_email_action_token(token).code
        except UnauthorizedError:
            code = token
        user = await self.users.verify_email(code)
        logger.info("User %s verified email", user.id)
        return user

    async def login(self, email: str, password: str) -> LoginResult:
        user = await self.users.get_by_email(email)
        if user is None:
            verify_password(password, dummy_password_hash())
            raise UnauthorizedError(INVALID_CREDENTIALS)
        if not user.password_hash:
            if user.google_id:
                raise UnauthorizedError("Please login using Google")
            raise UnauthorizedError(INVALID_CREDENTIALS)
        if not verify_password(password, user.password_hash):
            raise UnauthorizedError(INVALID_CREDENTIALS)
        if not user.is_verified:
            raise UnauthorizedError("Please verify your email before logging in")
        session_tokens = await self.tokens.issue_session_tokens(user.id)
        return LoginResult(user=user, tokens=session_tokens, requires_second_factor=bool(user.second_email))

    async def federated_login(self, profile: GoogleProfile) -> LoginResult:
        """Login (creating the account on first sight) for an identity Google already verified."""
        user = await self.users.get_by_google_id(profile.google_id)
        if user is None:
            user = await self.users.create_user(
                username=profile.display_name[:50],
                email=profile.email,
                first_name=profile.first_name,
                last_name=profile.last_name,
                google_id=profile.google_id,
                is_verified=True,
            )
            logger.info("User %s created from Google login", user.id)
        session_tokens = await self.tokens.issue_session_tokens(user.id)
        return LoginResult(user=user, tokens=session_tokens)

    async def logout(
        self,
        identity: CurrentUser,
        *,
        refresh_token: str | None,
        access_token: str | None,
    ) -> None:
        await self.refresh_store.delete_refresh_token(identity.id)
        for token in (refresh_token, access_token):
            if not token:
                continue
            try:
                await self._blacklist_for_remaining_life(token)
            except (JWTError, KeyError, TypeError, ValueError) as e:
                logger.warning("Failed to decode token on logout for user %s: %s", identity.id, e)
        logger.info("User %s logged out", identity.id)

    async def refresh(self, refresh_token: str | None) -> SessionTokens:
        """Rotate a refresh token: blacklist check, store lookup, verify, then mint."""
        if not refresh_token:
            raise UnauthorizedError("Refresh token required")
        if await self.cache.is_blacklisted(refresh_token):
            raise ForbiddenError("Token is blacklisted")
        stored = await self.refresh_store.find_refresh_token(refresh_token)
        if stored is None:
            raise ForbiddenError("Invalid refresh token")
        try:
            claims = self.tokens.verify_refresh_token(refresh_token)
        except UnauthorizedError as e:
            raise ForbiddenError("Invalid refresh token") from e
        if claims.user_id != stored.user_id:
            raise ForbiddenError("Invalid refresh token")
        user = await self.users.get_by_id(claims.user_id)
        if user is None:
            raise NotFoundError("User not found")

        remaining = claims.expires_at - datetime.now(timezone.utc)
        await self.cache.blacklist_token(refresh_token, remaining)
        return await self.tokens.issue_session_tokens(user.id)

    async def forgot_password(self, email: str) -> str | None:
        """Email a reset code; return the action token binding it, or None for unknown emails."""
        user = await self.users.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email %s", redact_email(email))
            return None
        code = await self.users.issue_verify_token(user)
        action_token = self.tokens.issue_email_action_token(code, user.email)
        await self.mailer.send_password_reset(user.email, code)
        return action_token

    async def reset_password(
        self,
        *,
        reset_code: str | None,
        new_password: str | None,
        email: str | None,
        action_token: str | None,
    ) -> None:
        if not reset_code or not new_password or not email or not action_token:
            raise ValidationError("Missing required fields")
        if not is_strong_password(new_password):
            raise ValidationError(WEAK_PASSWORD)
        email = email.strip().lower()
        try:
            claims = self.tokens.verify_email_action_token(action_token)
        except UnauthorizedError as e:
            raise UnauthorizedError(INVALID_RESET) from e
        if claims.email != email or not constant_time_equals(claims.code, reset_code):
            raise UnauthorizedError(INVALID_RESET)
        user = await self.users.get_by_email(email)
        if user is None or not user.verify_token or not constant_time_equals(user.verify_token, claims.code):
            raise UnauthorizedError(INVALID_RESET)
        await self.users.update_password(user, new_password)
        logger.info("User %s reset password", user.id)

    async def add_second_email(self, identity: CurrentUser, second_email: str) -> None:
        await self.users.add_second_email(identity.id, second_email)

    async def _second_email_for(self, identity: CurrentUser) -> str:
        # Read from the store: the cached identity may predate add_second_email
        user = await self.users.get_by_id(identity.id)
        if user is None:
            raise UnauthorizedError("Authentication required")
        if not user.second_email:
            raise ValidationError("Second email is not set")
        return user.second_email

    async def request_second_factor(self, identity: CurrentUser) -> None:
        second_email = await self._second_email_for(identity)
        code = generate_second_factor_code()
        await self.cache.store_second_factor_code(identity.id, code)
        await self.mailer.send_second_factor_code(second_email, code)

    async def verify_second_factor(self, identity: CurrentUser, code: str) -> None:
        await self._second_email_for(identity)
        stored = await self.cache.get_second_factor_code(identity.id)
        if not stored:
            raise ValidationError("No verification code found or code expired")
        if not constant_time_equals(stored, code):
            raise UnauthorizedError("Invalid or expired 2FA code")
        await self.cache.delete_second_factor_code(identity.id)
