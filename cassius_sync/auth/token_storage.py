"""
Token storage and retrieval for calendar integrations.

Provides database persistence for per-organisation OAuth tokens.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cassius_sync.auth.google_oauth import GoogleUserInfo, OAuthTokens
from cassius_sync.models.integrations import CalendarIntegration

logger = logging.getLogger(__name__)


async def get_integration(
    session: AsyncSession,
    organisation_id: str,
    provider: str = "google",
) -> Optional[CalendarIntegration]:
    """
    Get an organisation's calendar integration.

    Args:
        session: Database session
        organisation_id: Tenant ID
        provider: Calendar provider (default: google)

    Returns:
        CalendarIntegration if found, None otherwise
    """
    stmt = select(CalendarIntegration).where(
        CalendarIntegration.organisation_id == organisation_id,
        CalendarIntegration.provider == provider,
        CalendarIntegration.deleted_at.is_(None),
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def save_integration_tokens(
    session: AsyncSession,
    organisation_id: str,
    tokens: OAuthTokens,
    user_info: Optional[GoogleUserInfo] = None,
    provider: str = "google",
) -> CalendarIntegration:
    """
    Save or update an organisation's OAuth tokens after authorization.

    A re-authorization that returns no refresh token keeps the stored one.
    The integration is (re-)enabled and defaults to the primary calendar
    when no target calendar was chosen yet.

    Args:
        session: Database session
        organisation_id: Tenant ID
        tokens: OAuth tokens from authorization
        user_info: Account info from the OAuth provider
        provider: Calendar provider (default: google)

    Returns:
        The saved CalendarIntegration
    """
    integration = await get_integration(session, organisation_id, provider)

    if integration is None:
        integration = CalendarIntegration(
            organisation_id=organisation_id,
            provider=provider,
        )
        session.add(integration)
        logger.info(f"Created calendar integration for organisation {organisation_id}")
    else:
        logger.info(f"Updated calendar integration for organisation {organisation_id}")

    integration.access_token = tokens.access_token
    if tokens.refresh_token:
        integration.refresh_token = tokens.refresh_token
    integration.token_expires_at = tokens.expiry
    integration.scope = tokens.scope
    integration.is_enabled = True
    if user_info is not None:
        integration.provider_user_email = user_info.email
    if not integration.target_calendar_id:
        integration.target_calendar_id = "primary"
        integration.target_calendar_name = "Primary"

    await session.commit()
    await session.refresh(integration)
    return integration


async def disconnect_integration(
    session: AsyncSession,
    organisation_id: str,
    provider: str = "google",
) -> bool:
    """
    Disconnect an organisation's calendar.

    Tokens and the continuation token are nulled and sync is disabled; the
    row itself is kept so calendar selection and history survive a reconnect.

    Returns:
        True if an integration was disconnected, False if none exists
    """
    integration = await get_integration(session, organisation_id, provider)
    if integration is None:
        return False

    integration.clear_credentials()
    await session.commit()

    logger.info(f"Disconnected calendar integration for organisation {organisation_id}")
    return True
