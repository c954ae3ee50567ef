"""
Google Calendar integration routes.

Handles the OAuth 2.0 authorization code flow and integration settings:
1. /connect - Start OAuth flow (redirect to Google with a signed state)
2. /callback - Handle OAuth callback (exchange code for tokens)
3. /status - Connection state and sync counters
4. /calendars - Calendars visible to the connected account
5. /settings - Calendar selection and switches
6. /disconnect - Forget tokens (integration row is kept)
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cassius_sync.api.dependencies import (
    get_app_settings,
    get_google_oauth_flow,
    get_organisation_id,
    get_repository_factory,
    get_state_signer,
    get_token_manager,
)
from cassius_sync.api.models import (
    CalendarListResponse,
    CalendarResponse,
    ConnectResponse,
    DisconnectResponse,
    IntegrationSettingsRequest,
    IntegrationStatusResponse,
)
from cassius_sync.auth.google_oauth import GoogleOAuthFlow
from cassius_sync.auth.state import StateSigner
from cassius_sync.auth.token_manager import TokenLifecycleManager
from cassius_sync.auth.token_storage import (
    disconnect_integration,
    get_integration,
    save_integration_tokens,
)
from cassius_sync.config import Settings
from cassius_sync.database import get_async_session
from cassius_sync.services.errors import NO_INTEGRATION, SyncConfigurationError
from cassius_sync.services.integration_access import (
    RepositoryFactory,
    open_repository,
    resolve_integration,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/integrations/google", tags=["integrations"])

SETTINGS_PAGE = "/settings/integrations/google-calendar"


def _settings_redirect(settings: Settings, **params: str) -> RedirectResponse:
    """Redirect back to the web application's integration settings page."""
    url = f"{settings.app_base_url.rstrip('/')}{SETTINGS_PAGE}?{urlencode(params)}"
    return RedirectResponse(url=url, status_code=302)


@router.get("/connect", response_model=ConnectResponse)
async def connect(
    redirect: bool = Query(True, description="Redirect to Google (false returns the URL as JSON)"),
    organisation_id: str = Depends(get_organisation_id),
    settings: Settings = Depends(get_app_settings),
    signer: StateSigner = Depends(get_state_signer),
    oauth_flow: GoogleOAuthFlow = Depends(get_google_oauth_flow),
):
    """
    Start the Google OAuth flow for an organisation.

    The state parameter is signed and carries the organisation ID, so the
    callback can be attributed without server-side session storage.
    """
    if not settings.uses_google_oauth:
        missing = ", ".join(settings.missing_oauth_variables())
        raise HTTPException(
            status_code=503,
            detail=f"Google OAuth is not configured (missing: {missing})",
        )

    authorization_url = oauth_flow.get_authorization_url(signer.sign(organisation_id))
    logger.info(f"Generated OAuth URL for organisation {organisation_id}")

    if redirect:
        return RedirectResponse(url=authorization_url, status_code=307)
    return ConnectResponse(authorization_url=authorization_url)


@router.get("/callback")
async def callback(
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    state: Optional[str] = Query(None, description="Signed state from /connect"),
    error: Optional[str] = Query(None, description="Error from Google OAuth"),
    session: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_app_settings),
    signer: StateSigner = Depends(get_state_signer),
    oauth_flow: GoogleOAuthFlow = Depends(get_google_oauth_flow),
) -> RedirectResponse:
    """
    Handle the Google OAuth callback.

    Always redirects back to the web application, with ``connected=1`` on
    success or an ``error`` code otherwise.
    """
    if error:
        logger.warning(f"OAuth consent was not granted: {error}")
        return _settings_redirect(settings, error="oauth_denied")

    if not code or not state:
        return _settings_redirect(settings, error="missing_params")

    organisation_id = signer.verify(state)
    if organisation_id is None:
        return _settings_redirect(settings, error="invalid_state")

    try:
        tokens = await oauth_flow.exchange_code(code)
        user_info = await oauth_flow.get_user_info(tokens.access_token)
    except (httpx.HTTPError, KeyError, ValueError) as e:
        logger.error(
            f"OAuth token exchange failed for organisation {organisation_id}: "
            f"{type(e).__name__}"
        )
        return _settings_redirect(settings, error="token_exchange_failed")

    await save_integration_tokens(session, organisation_id, tokens, user_info)
    logger.info(f"Connected Google Calendar for organisation {organisation_id}")

    return _settings_redirect(settings, connected="1")


@router.get("/status", response_model=IntegrationStatusResponse)
async def status(
    organisation_id: str = Depends(get_organisation_id),
    session: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_app_settings),
) -> IntegrationStatusResponse:
    """Report connection state without calling the provider."""
    integration = await get_integration(session, organisation_id)
    configured = settings.uses_google_oauth
    missing = settings.missing_oauth_variables()

    if integration is None:
        return IntegrationStatusResponse(
            configured=configured,
            connected=False,
            missing_configuration=missing,
        )

    return IntegrationStatusResponse(
        configured=configured,
        connected=integration.is_connected,
        enabled=integration.is_enabled,
        provider=integration.provider,
        email=integration.provider_user_email,
        target_calendar_id=integration.target_calendar_id,
        target_calendar_name=integration.target_calendar_name,
        source_calendar_id=integration.source_calendar_id,
        source_calendar_name=integration.source_calendar_name,
        import_enabled=integration.import_enabled,
        last_sync_at=integration.last_sync_at,
        last_import_at=integration.last_import_at,
        sync_error_count=integration.sync_error_count,
        last_sync_error=integration.last_sync_error,
        missing_configuration=missing,
    )


@router.get("/calendars", response_model=CalendarListResponse)
async def calendars(
    organisation_id: str = Depends(get_organisation_id),
    session: AsyncSession = Depends(get_async_session),
    repository_factory: RepositoryFactory = Depends(get_repository_factory),
    token_manager: TokenLifecycleManager = Depends(get_token_manager),
) -> CalendarListResponse:
    """List calendars the connected account can see."""
    integration = await resolve_integration(session, organisation_id, require_enabled=False)
    _, repository = await open_repository(
        session,
        integration,
        token_manager=token_manager,
        repository_factory=repository_factory,
    )
    entries = await repository.list_calendars()

    return CalendarListResponse(calendars=[
        CalendarResponse(
            id=entry.id,
            name=entry.name,
            primary=entry.primary,
            access_role=entry.access_role,
            timezone=entry.timezone,
        )
        for entry in entries
    ])


@router.patch("/settings", response_model=IntegrationStatusResponse)
async def update_settings(
    request: IntegrationSettingsRequest,
    organisation_id: str = Depends(get_organisation_id),
    session: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_app_settings),
) -> IntegrationStatusResponse:
    """Update calendar selection and sync switches."""
    integration = await get_integration(session, organisation_id)
    if integration is None:
        raise SyncConfigurationError(NO_INTEGRATION)

    previous_source = integration.source_calendar_id
    for field_name, value in request.model_dump(exclude_unset=True).items():
        setattr(integration, field_name, value)
    if integration.source_calendar_id != previous_source:
        # Continuation tokens are only valid for the calendar that issued them
        integration.store_sync_token(integration.source_calendar_id, None)
    await session.commit()

    logger.info(f"Updated integration settings for organisation {organisation_id}")
    return await status(organisation_id, session, settings)


@router.delete("/disconnect", response_model=DisconnectResponse)
async def disconnect(
    organisation_id: str = Depends(get_organisation_id),
    session: AsyncSession = Depends(get_async_session),
) -> DisconnectResponse:
    """
    Disconnect the organisation's calendar.

    Tokens are removed; the organisation must re-authorize to sync again.
    """
    disconnected = await disconnect_integration(session, organisation_id)

    if disconnected:
        return DisconnectResponse(
            disconnected=True,
            message="Successfully disconnected Google Calendar",
        )
    return DisconnectResponse(disconnected=False, message="No connected calendar found")
