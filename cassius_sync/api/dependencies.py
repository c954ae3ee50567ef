"""
FastAPI dependency injection providers.

Provides tenant context, OAuth helpers and the sync engines.
"""

import logging
from datetime import timedelta

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from cassius_sync.auth.google_oauth import GoogleOAuthFlow, get_oauth_flow
from cassius_sync.auth.state import StateSigner
from cassius_sync.auth.token_manager import TokenLifecycleManager
from cassius_sync.config import Settings, get_settings
from cassius_sync.database import get_async_session
from cassius_sync.integrations.google_calendar.repository import create_google_repository
from cassius_sync.services.conflicts import ConflictRegister
from cassius_sync.services.inbound_import import InboundImportEngine
from cassius_sync.services.integration_access import RepositoryFactory
from cassius_sync.services.outbound_sync import OutboundSyncEngine

logger = logging.getLogger(__name__)


def get_organisation_id(
    x_organisation_id: str = Header(..., description="Organisation (tenant) ID"),
) -> str:
    """
    Extract the tenant from the X-Organisation-ID header.

    Raises:
        HTTPException: If the header is blank
    """
    organisation_id = x_organisation_id.strip()
    if not organisation_id:
        raise HTTPException(status_code=400, detail="X-Organisation-ID header is empty")
    return organisation_id


def get_app_settings() -> Settings:
    return get_settings()


def get_state_signer(settings: Settings = Depends(get_app_settings)) -> StateSigner:
    return StateSigner(settings.oauth_state_secret, settings.oauth_state_max_age_seconds)


def get_google_oauth_flow() -> GoogleOAuthFlow:
    return get_oauth_flow()


def get_token_manager(
    settings: Settings = Depends(get_app_settings),
    oauth_flow: GoogleOAuthFlow = Depends(get_google_oauth_flow),
) -> TokenLifecycleManager:
    return TokenLifecycleManager(
        oauth_flow=oauth_flow,
        margin=timedelta(seconds=settings.token_refresh_margin_seconds),
    )


def get_repository_factory() -> RepositoryFactory:
    """Provider repository factory (overridden in tests with an in-memory fake)."""
    return create_google_repository


def get_outbound_engine(
    session: AsyncSession = Depends(get_async_session),
    repository_factory: RepositoryFactory = Depends(get_repository_factory),
    token_manager: TokenLifecycleManager = Depends(get_token_manager),
    settings: Settings = Depends(get_app_settings),
) -> OutboundSyncEngine:
    return OutboundSyncEngine(
        session,
        repository_factory=repository_factory,
        token_manager=token_manager,
        settings=settings,
    )


def get_import_engine(
    session: AsyncSession = Depends(get_async_session),
    repository_factory: RepositoryFactory = Depends(get_repository_factory),
    token_manager: TokenLifecycleManager = Depends(get_token_manager),
    settings: Settings = Depends(get_app_settings),
) -> InboundImportEngine:
    return InboundImportEngine(
        session,
        repository_factory=repository_factory,
        token_manager=token_manager,
        settings=settings,
    )


def get_conflict_register(
    session: AsyncSession = Depends(get_async_session),
) -> ConflictRegister:
    return ConflictRegister(session)
