"""
Resolution of an organisation's integration into a usable provider repository.

Both sync engines and the integration routes go through here, so
configuration and credential failures are reported identically everywhere
and always before the first provider call.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cassius_sync.auth.exceptions import NeedReconsentError, NoAccessTokenError
from cassius_sync.auth.token_manager import OAuthCredentialProvider, TokenLifecycleManager
from cassius_sync.auth.token_storage import get_integration
from cassius_sync.integrations.base import CalendarRepository, CredentialProvider
from cassius_sync.integrations.google_calendar.repository import create_google_repository
from cassius_sync.models.integrations import CalendarIntegration
from cassius_sync.services.errors import (
    INTEGRATION_DISABLED,
    NO_INTEGRATION,
    SyncConfigurationError,
)

logger = logging.getLogger(__name__)

RepositoryFactory = Callable[[CredentialProvider], CalendarRepository]


async def resolve_integration(
    session: AsyncSession,
    organisation_id: str,
    require_enabled: bool = True,
) -> CalendarIntegration:
    """
    Load an organisation's integration and check its stored credentials.

    Raises:
        SyncConfigurationError: no_integration, or integration_disabled
            when ``require_enabled`` is set
        NoAccessTokenError: Neither token is stored
        NeedReconsentError: No refresh token is stored
    """
    integration = await get_integration(session, organisation_id)
    if integration is None:
        raise SyncConfigurationError(NO_INTEGRATION)
    if require_enabled and not integration.is_enabled:
        raise SyncConfigurationError(INTEGRATION_DISABLED)
    check_stored_credentials(integration)
    return integration


def check_stored_credentials(integration: CalendarIntegration) -> None:
    """Fail fast when the stored tokens can never yield an access token."""
    if not integration.access_token and not integration.refresh_token:
        raise NoAccessTokenError(
            f"No tokens stored for organisation {integration.organisation_id}"
        )
    if not integration.refresh_token:
        raise NeedReconsentError(
            f"No refresh token stored for organisation {integration.organisation_id}"
        )


async def open_repository(
    session: AsyncSession,
    integration: CalendarIntegration,
    token_manager: Optional[TokenLifecycleManager] = None,
    repository_factory: Optional[RepositoryFactory] = None,
) -> tuple[OAuthCredentialProvider, CalendarRepository]:
    """
    Build the per-batch credential provider and repository.

    The credential is obtained once up front, so a refresh that cannot
    succeed aborts the batch before any provider call.
    """
    provider = OAuthCredentialProvider(session, integration, token_manager)
    await provider.get_credentials()
    factory = repository_factory or create_google_repository
    return provider, factory(provider)
