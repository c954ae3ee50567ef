"""
Credential errors raised while obtaining provider access.

All are fatal for the current batch and require distinct remediation:
re-consent by the organisation, or a later retry of the token endpoint.
"""

from typing import Optional


class CredentialError(Exception):
    """Base class for credential failures."""

    reason: str = "credential_error"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class NoAccessTokenError(CredentialError):
    """The integration holds neither an access token nor a refresh token."""

    reason = "no_access_token"


class NeedReconsentError(CredentialError):
    """
    The refresh token is missing or was rejected (invalid_grant).

    Terminal: never retried, the organisation must authorize again.
    """

    reason = "need_reconsent"


class TokenRefreshError(CredentialError):
    """The token endpoint failed for a reason other than a revoked grant."""

    reason = "token_refresh_failed"
