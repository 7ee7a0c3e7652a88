"""Google OAuth 2.0 authorization-code flow: consent URL, code exchange, profile fetch."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from storefront.config import Settings, settings as default_settings
from storefront.core.errors import ConfigurationError, UnauthorizedError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_SCOPE = "openid email profile"

_shared_http: httpx.AsyncClient | None = None


def open_google_http(timeout: float = 15.0) -> httpx.AsyncClient:
    """Open the process-wide client used for Google token and userinfo calls; idempotent."""
    global _shared_http
    if _shared_http is None:
        _shared_http = httpx.AsyncClient(timeout=timeout, headers={"Accept": "application/json"})
    return _shared_http


async def close_google_http() -> None:
    global _shared_http
    if _shared_http is not None:
        await _shared_http.aclose()
        _shared_http = None


@dataclass(frozen=True)
class GoogleProfile:
    google_id: str
    email: str
    display_name: str
    first_name: str | None = None
    last_name: str | None = None


class GoogleOAuthClient:
    def __init__(self, settings: Settings | None = None, http: httpx.AsyncClient | None = None) -> None:
        self.settings = settings or default_settings
        self._http = http

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http or open_google_http()

    def _require_config(self) -> None:
        if not self.settings.google_client_id or not self.settings.google_client_secret:
            raise ConfigurationError("Google OAuth is not configured")

    def authorization_url(self, state: str) -> str:
        self._require_config()
        params = {
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.settings.google_redirect_uri,
            "response_type": "code",
            "scope": GOOGLE_SCOPE,
            "state": state,
            "access_type": "online",
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> GoogleProfile:
        """Exchange the authorization code and load the user's Google profile."""
        self._require_config()
        try:
            token_resp = await self.http.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.settings.google_client_id,
                    "client_secret": self.settings.google_client_secret,
                    "redirect_uri": self.settings.google_redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            token_resp.raise_for_status()
            access_token = token_resp.json().get("access_token")
            if not access_token:
                raise UnauthorizedError("Google authentication failed")
            info_resp = await self.http.get(
                GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )
            info_resp.raise_for_status()
            info = info_resp.json()
        except httpx.HTTPError as e:
            logger.warning("Google OAuth request failed: %s", e)
            raise UnauthorizedError("Google authentication failed") from e

        google_id = info.get("id")
        email = (info.get("email") or "").strip().lower()
        if not google_id or not email or info.get("verified_email") is False:
            raise UnauthorizedError("Google authentication failed")
        return GoogleProfile(
            google_id=str(google_id),
            email=email,
            display_name=info.get("name") or str(google_id),
            first_name=info.get("given_name"),
            last_name=info.get("family_name"),
        )


def get_google_oauth() -> GoogleOAuthClient:
    return GoogleOAuthClient()
