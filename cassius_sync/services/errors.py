"""
Sync configuration errors.

Raised before any provider call when an organisation's integration cannot
be used; each reason maps to a different operator remediation.
"""

from typing import Optional

NO_INTEGRATION = "no_integration"
INTEGRATION_DISABLED = "integration_disabled"
NO_TARGET_CALENDAR = "no_target_calendar"

_MESSAGES = {
    NO_INTEGRATION: "No calendar integration configured for this organisation",
    INTEGRATION_DISABLED: "Calendar sync is disabled for this organisation",
    NO_TARGET_CALENDAR: "No target calendar selected",
}


class SyncConfigurationError(Exception):
    """The integration is missing or not usable for the requested operation."""

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        self.message = message or _MESSAGES.get(reason, reason)
        super().__init__(self.message)
