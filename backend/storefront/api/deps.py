"""FastAPI dependencies: session identity, CSRF, permissions and service wiring."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import settings
from storefront.core.cache import RevocationCache, get_redis
from storefront.core.csrf import validate_csrf
from storefront.core.permissions import ROLE_PERMISSIONS, Action, PermissionGuard, Resource
from storefront.core.session import ACCESS_COOKIE, SessionResolver
from storefront.core.tokens import TokenService
from storefront.db.session import get_db
from storefront.schemas.auth import CurrentUser
from storefront.services.auth_flow import AuthFlow
from storefront.services.email import EmailSender, get_email_sender
from storefront.services.refresh_tokens import SqlRefreshTokenStore
from storefront.services.users import UserStore

permission_guard = PermissionGuard(ROLE_PERMISSIONS)


def get_revocation_cache() -> RevocationCache:
    return RevocationCache(get_redis())


async def get_token_service(
    session: Annotated[AsyncSession, Depends(get_db)],
) -> TokenService:
    return TokenService(settings, SqlRefreshTokenStore(session))


async def get_auth_flow(
    session: Annotated[AsyncSession, Depends(get_db)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
    cache: Annotated[RevocationCache, Depends(get_revocation_cache)],
    mailer: Annotated[EmailSender, Depends(get_email_sender)],
) -> AuthFlow:
    return AuthFlow(
        users=UserStore(session),
        refresh_store=SqlRefreshTokenStore(session),
        tokens=tokens,
        cache=cache,
        mailer=mailer,
        settings=settings,
    )


async def get_current_user(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
    cache: Annotated[RevocationCache, Depends(get_revocation_cache)],
) -> CurrentUser:
    """Resolve the jwt cookie to an identity. Raises 401 otherwise."""
    resolver = SessionResolver(tokens, cache, UserStore(session))
    return await resolver.resolve(request.cookies.get(ACCESS_COOKIE))


def require_csrf(request: Request) -> None:
    validate_csrf(request)


async def get_protected_user(
    user: Annotated[CurrentUser, Depends(get_current_user)],
    _csrf: Annotated[None, Depends(require_csrf)],
) -> CurrentUser:
    """Session first, then CSRF: the chain every protected mutating route goes through."""
    return user


def require_permission(resource: Resource, action: Action):
    """Dependency factory; resource and action are fixed when the route is declared."""

    async def check_permission(
        user: Annotated[CurrentUser, Depends(get_protected_user)],
    ) -> CurrentUser:
        permission_guard.check(user, resource, action)
        return user

    return check_permission
