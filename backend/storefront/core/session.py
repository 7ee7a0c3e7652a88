"""Per-request identity resolution from the access-token cookie, cache first."""

from __future__ import annotations

import logging

from pydantic import ValidationError as SchemaError

from storefront.core.cache import RevocationCache
from storefront.core.errors import UnauthorizedError
from storefront.core.tokens import TokenService
from storefront.schemas.auth import CurrentUser
from storefront.services.users import UserStore

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "jwt"


class SessionResolver:
    def __init__(self, tokens: TokenService, cache: RevocationCache, users: UserStore) -> None:
        self.tokens = tokens
        self.cache = cache
        self.users = users

    async def _load_identity(self, user_id: int) -> CurrentUser:
        cached = await self.cache.get_cached_user(user_id)
        if cached:
            try:
                return CurrentUser.model_validate_json(cached)
            except SchemaError:
                logger.warning("Discarding malformed cached identity for user %s", user_id)
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise UnauthorizedError("Authentication required")
        identity = CurrentUser.from_user(user)
        await self.cache.cache_user(user_id, identity.model_dump_json())
        return identity

    async def resolve(self, access_token: str | None) -> CurrentUser:
        if not access_token:
            raise UnauthorizedError("Authentication token is missing")
        claims = self.tokens.verify_access_token(access_token)
        if await self.cache.is_blacklisted(access_token):
            raise UnauthorizedError("Invalid or expired token")
        identity = await self._load_identity(claims.user_id)
        await self.cache.touch_user(identity.id)
        return identity
