"""
Authentication module for Cassius Calendar Sync.

Provides OAuth 2.0 authorization for Google Calendar access, signed OAuth
state values and the access token lifecycle.
"""

from cassius_sync.auth.exceptions import (
    CredentialError,
    NeedReconsentError,
    NoAccessTokenError,
    TokenRefreshError,
)
from cassius_sync.auth.google_oauth import (
    GoogleOAuthFlow,
    OAuthTokens,
    GoogleUserInfo,
    get_oauth_flow,
)
from cassius_sync.auth.state import StateSigner
from cassius_sync.auth.token_manager import (
    OAuthCredentialProvider,
    RefreshedToken,
    TokenLifecycleManager,
    ValidCredential,
)
from cassius_sync.auth.token_storage import (
    get_integration,
    save_integration_tokens,
    disconnect_integration,
)

__all__ = [
    # Errors
    "CredentialError",
    "NeedReconsentError",
    "NoAccessTokenError",
    "TokenRefreshError",
    # OAuth flow
    "GoogleOAuthFlow",
    "OAuthTokens",
    "GoogleUserInfo",
    "get_oauth_flow",
    # State
    "StateSigner",
    # Token lifecycle
    "OAuthCredentialProvider",
    "RefreshedToken",
    "TokenLifecycleManager",
    "ValidCredential",
    # Token storage
    "get_integration",
    "save_integration_tokens",
    "disconnect_integration",
]
