"""
Access token lifecycle for calendar integrations.

Tokens are refreshed proactively, before they expire, rather than after a
provider call fails. Every provider call in a batch obtains its token through
a CredentialProvider, which persists refreshed tokens immediately.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cassius_sync.auth.exceptions import NeedReconsentError, NoAccessTokenError
from cassius_sync.auth.google_oauth import GoogleOAuthFlow, get_oauth_flow
from cassius_sync.integrations.base import CredentialProvider
from cassius_sync.models.base import as_utc, utc_now
from cassius_sync.models.integrations import DEFAULT_REFRESH_MARGIN, CalendarIntegration

logger = logging.getLogger(__name__)


@dataclass
class RefreshedToken:
    """A token obtained by a refresh, to be persisted by the caller."""

    access_token: str
    expires_at: Optional[datetime]
    refresh_token: Optional[str] = None


@dataclass
class ValidCredential:
    """A usable access token plus the refresh that produced it, if any."""

    access_token: str
    refreshed: Optional[RefreshedToken] = None


class TokenLifecycleManager:
    """
    Decides when a token must be refreshed and performs the refresh.

    Args:
        oauth_flow: Token endpoint client (defaults to the shared flow)
        margin: Refresh tokens expiring within this window
    """

    def __init__(
        self,
        oauth_flow: Optional[GoogleOAuthFlow] = None,
        margin: timedelta = DEFAULT_REFRESH_MARGIN,
    ):
        self._oauth_flow = oauth_flow
        self.margin = margin

    @property
    def oauth_flow(self) -> GoogleOAuthFlow:
        if self._oauth_flow is None:
            self._oauth_flow = get_oauth_flow()
        return self._oauth_flow

    async def get_valid_credential(
        self,
        integration: CalendarIntegration,
        now: Optional[datetime] = None,
    ) -> ValidCredential:
        """
        Return a usable access token, refreshing first if needed.

        Raises:
            NoAccessTokenError: Neither token is stored
            NeedReconsentError: No refresh token, or the grant was revoked
            TokenRefreshError: The token endpoint failed
        """
        if not integration.access_token and not integration.refresh_token:
            raise NoAccessTokenError(
                f"No tokens stored for organisation {integration.organisation_id}"
            )

        now = as_utc(now) or utc_now()
        if not integration.needs_refresh(now=now, margin=self.margin):
            return ValidCredential(access_token=integration.access_token)

        if not integration.refresh_token:
            raise NeedReconsentError(
                f"Access token expiring and no refresh token for organisation "
                f"{integration.organisation_id}"
            )

        tokens = await self.oauth_flow.refresh_token(integration.refresh_token)
        logger.info(f"Refreshed access token for organisation {integration.organisation_id}")

        refreshed = RefreshedToken(
            access_token=tokens.access_token,
            expires_at=tokens.expiry,
            refresh_token=(
                tokens.refresh_token
                if tokens.refresh_token != integration.refresh_token
                else None
            ),
        )
        return ValidCredential(access_token=tokens.access_token, refreshed=refreshed)


class OAuthCredentialProvider(CredentialProvider):
    """
    Per-batch credential accessor backed by a stored integration.

    Refreshed tokens are written to the integration row and committed at
    once, so a crash later in the batch never loses them. The integration
    object is updated in place.
    """

    def __init__(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
        manager: Optional[TokenLifecycleManager] = None,
    ):
        self._session = session
        self.integration = integration
        self._manager = manager or TokenLifecycleManager()
        self._last_persisted: Optional[str] = None
        self.refresh_count = 0

    async def get_credentials(self) -> ValidCredential:
        credential = await self._manager.get_valid_credential(self.integration)
        if credential.refreshed is not None:
            await self.persist_if_changed(credential.refreshed)
        return credential

    async def get_access_token(self) -> str:
        credential = await self.get_credentials()
        return credential.access_token

    async def persist_if_changed(self, refreshed: RefreshedToken) -> bool:
        """
        Persist a refreshed token unless it was already written this batch.

        Returns:
            True if the integration row was updated
        """
        if refreshed.access_token == self._last_persisted:
            return False

        self.integration.access_token = refreshed.access_token
        self.integration.token_expires_at = refreshed.expires_at
        if refreshed.refresh_token:
            self.integration.refresh_token = refreshed.refresh_token
        await self._session.commit()

        self._last_persisted = refreshed.access_token
        self.refresh_count += 1
        logger.debug(
            f"Persisted refreshed token for organisation {self.integration.organisation_id}"
        )
        return True
