"""Double-submit cookie CSRF check for state-changing requests."""

from starlette.requests import Request

from storefront.core.errors import ForbiddenError
from storefront.core.security import constant_time_equals

CSRF_COOKIE = "XSRF-TOKEN"
CSRF_HEADERS = ("x-csrf-token", "x-xsrf-token")
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def validate_csrf(request: Request) -> None:
    """Raise ForbiddenError unless the CSRF header matches the XSRF-TOKEN cookie."""
    if request.method in SAFE_METHODS:
        return
    header_token = next((request.headers[h] for h in CSRF_HEADERS if request.headers.get(h)), None)
    cookie_token = request.cookies.get(CSRF_COOKIE)
    if not header_token or not cookie_token:
        raise ForbiddenError("CSRF token validation failed")
    if not constant_time_equals(cookie_token, header_token):
        raise ForbiddenError("CSRF token validation failed")
