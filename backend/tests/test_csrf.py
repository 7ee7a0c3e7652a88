"""Double-submit CSRF check."""

import pytest
from starlette.requests import Request

from storefront.core.csrf import validate_csrf
from storefront.core.errors import ForbiddenError

TOKEN = "a" * 64


def _request(method: str = "POST", *, cookie: str | None = None, headers: dict | None = None) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    if cookie is not None:
        raw.append((b"cookie", f"XSRF-TOKEN={cookie}".encode()))
    return Request({"type": "http", "method": method, "path": "/", "headers": raw, "query_string": b""})


@pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
def test_safe_methods_skip_check(method):
    validate_csrf(_request(method))


@pytest.mark.parametrize("header", ["X-CSRF-Token", "X-XSRF-Token"])
def test_matching_header_and_cookie(header):
    validate_csrf(_request(cookie=TOKEN, headers={header: TOKEN}))


@pytest.mark.parametrize(
    "cookie,headers",
    [
        (None, {"X-CSRF-Token": TOKEN}),
        (TOKEN, {}),
        (TOKEN, {"X-CSRF-Token": "b" * 64}),
        (TOKEN, {"X-CSRF-Token": TOKEN[:-1]}),
    ],
    ids=["missing-cookie", "missing-header", "mismatch", "length-mismatch"],
)
def test_rejected(cookie, headers):
    with pytest.raises(ForbiddenError) as exc:
        validate_csrf(_request(cookie=cookie, headers=headers))
    assert exc.value.message == "CSRF token validation failed"
    assert exc.value.status_code == 403


def test_mutating_methods_are_checked():
    for method in ("POST", "PUT", "PATCH", "DELETE"):
        with pytest.raises(ForbiddenError):
            validate_csrf(_request(method))
