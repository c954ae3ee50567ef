"""
Google OAuth 2.0 client for per-organisation calendar access.

An organisation administrator grants offline access once; the resulting
refresh token is stored on the integration and used by the token lifecycle
manager to mint short-lived access tokens. Only the token endpoint call is
retried, and only for transport failures.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cassius_sync.auth.exceptions import NeedReconsentError, TokenRefreshError
from cassius_sync.config import get_settings

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]

TOKEN_ENDPOINT_TIMEOUT = 15.0


@dataclass
class OAuthTokens:
    """Tokens returned by the Google token endpoint."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: Optional[int]
    token_type: str
    scope: str

    @classmethod
    def from_response(
        cls,
        token_data: dict,
        fallback_refresh_token: Optional[str] = None,
    ) -> "OAuthTokens":
        """Build from a token endpoint JSON body; Google omits unrotated refresh tokens."""
        return cls(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token") or fallback_refresh_token,
            expires_in=token_data.get("expires_in"),
            token_type=token_data.get("token_type", "Bearer"),
            scope=token_data.get("scope", ""),
        )

    @property
    def expiry(self) -> Optional[datetime]:
        """Absolute expiry, or None when no lifetime was returned."""
        if self.expires_in is None:
            return None
        return datetime.now(timezone.utc) + timedelta(seconds=self.expires_in)


@dataclass
class GoogleUserInfo:
    """Account that granted calendar access."""

    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


def _token_error_code(response: httpx.Response) -> Optional[str]:
    try:
        return response.json().get("error")
    except ValueError:
        return None


class GoogleOAuthFlow:
    """
    Authorization code flow against Google's OAuth endpoints.

    ``get_authorization_url`` starts the consent round trip, ``exchange_code``
    finishes it, and ``refresh_token`` is called by the token lifecycle
    manager whenever an access token is close to expiry.
    """

    def __init__(self):
        settings = get_settings()
        self.client_id = settings.google_oauth_client_id
        self.client_secret = settings.google_oauth_client_secret
        self.redirect_uri = settings.google_oauth_redirect_uri

        if not self.client_id or not self.client_secret:
            logger.warning(
                "Google OAuth client credentials are missing; "
                "calendar connection is unavailable"
            )

    def get_authorization_url(self, state: str) -> str:
        """
        Build the consent URL.

        Offline access with a forced consent prompt makes Google return a
        refresh token even when the account granted access before.

        Args:
            state: Signed state binding the callback to an organisation
        """
        query = urlencode({
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(CALENDAR_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": state,
        })
        return f"{GOOGLE_AUTH_URL}?{query}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _post_token_request(self, data: dict) -> httpx.Response:
        """POST to the token endpoint, retrying transport-level failures."""
        async with httpx.AsyncClient(timeout=TOKEN_ENDPOINT_TIMEOUT) as client:
            return await client.post(GOOGLE_TOKEN_URL, data=data)

    async def exchange_code(self, code: str) -> OAuthTokens:
        """
        Trade the callback's authorization code for tokens.

        Raises:
            httpx.HTTPStatusError: The endpoint rejected the code
        """
        response = await self._post_token_request({
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        })
        response.raise_for_status()

        logger.info("Authorization code exchanged")
        return OAuthTokens.from_response(response.json())

    async def refresh_token(self, refresh_token: str) -> OAuthTokens:
        """
        Mint a new access token from a stored refresh token.

        The returned tokens carry the rotated refresh token when Google issued
        one, and the given one otherwise.

        Raises:
            NeedReconsentError: The grant was revoked or expired (invalid_grant)
            TokenRefreshError: The endpoint was unreachable or failed otherwise
        """
        try:
            response = await self._post_token_request({
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            })
        except httpx.TransportError as e:
            raise TokenRefreshError(
                f"Token endpoint unreachable: {type(e).__name__}",
                original_error=e,
            ) from e

        if response.status_code >= 400:
            error_code = _token_error_code(response)
            if error_code == "invalid_grant":
                raise NeedReconsentError("Refresh token was revoked or expired")
            raise TokenRefreshError(
                f"Token refresh failed with status {response.status_code}"
                + (f" ({error_code})" if error_code else "")
            )

        logger.info("Access token refreshed")
        return OAuthTokens.from_response(response.json(), fallback_refresh_token=refresh_token)

    async def get_user_info(self, access_token: str) -> GoogleUserInfo:
        """
        Look up the account behind an access token.

        Raises:
            httpx.HTTPStatusError: The userinfo endpoint rejected the token
        """
        async with httpx.AsyncClient(timeout=TOKEN_ENDPOINT_TIMEOUT) as client:
            response = await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            response.raise_for_status()
            user_data = response.json()

        return GoogleUserInfo(
            email=user_data["email"],
            name=user_data.get("name"),
            picture=user_data.get("picture"),
        )


_flow: Optional[GoogleOAuthFlow] = None


def get_oauth_flow() -> GoogleOAuthFlow:
    """Process-wide flow instance."""
    global _flow
    if _flow is None:
        _flow = GoogleOAuthFlow()
    return _flow
