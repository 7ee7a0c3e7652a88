"""Cookie names and attributes used by the auth flows."""

from starlette.responses import Response

from storefront.config import settings
from storefront.core.csrf import CSRF_COOKIE
from storefront.core.session import ACCESS_COOKIE
from storefront.core.tokens import SessionTokens

REFRESH_COOKIE = "refreshToken"
VERIFY_EMAIL_COOKIE = "verifyEmail"
PASSWORD_RESET_COOKIE = "passwordReset"
OAUTH_STATE_COOKIE = "oauthState"

EXPIRED_VALUE = "logout"
ACTION_COOKIE_MAX_AGE = 60 * 60
OAUTH_STATE_MAX_AGE = 10 * 60


def _set(response: Response, name: str, value: str, max_age: int, *, httponly: bool = True) -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        httponly=httponly,
        samesite="strict",
        secure=settings.is_production,
    )


def set_session_cookies(response: Response, tokens: SessionTokens) -> None:
    access_max_age = settings.access_token_expire_minutes * 60
    _set(response, ACCESS_COOKIE, tokens.access_token, access_max_age)
    _set(response, REFRESH_COOKIE, tokens.refresh_token, settings.refresh_token_expire_days * 24 * 60 * 60)
    # Readable by client script so it can echo the value in the CSRF header
    _set(response, CSRF_COOKIE, tokens.csrf_token, access_max_age, httponly=False)


def set_action_cookie(response: Response, name: str, token: str) -> None:
    _set(response, name, token, ACTION_COOKIE_MAX_AGE)


def set_oauth_state_cookie(response: Response, state: str) -> None:
    # Lax: the OAuth redirect back from Google is a cross-site top-level navigation
    response.set_cookie(
        OAUTH_STATE_COOKIE,
        state,
        max_age=OAUTH_STATE_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )


def expire_cookie(response: Response, name: str, *, httponly: bool = True) -> None:
    """Overwrite with a sentinel value that the client drops immediately."""
    _set(response, name, EXPIRED_VALUE, 0, httponly=httponly)


def expire_session_cookies(response: Response) -> None:
    expire_cookie(response, ACCESS_COOKIE)
    expire_cookie(response, REFRESH_COOKIE)
    expire_cookie(response, CSRF_COOKIE, httponly=False)
