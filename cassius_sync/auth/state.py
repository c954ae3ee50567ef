"""
Signed OAuth state values.

The state parameter round-trips through Google's consent screen and binds
the callback to the organisation that started the flow. Format:

    base64url(JSON {"payload": <json>, "signature": <hex hmac-sha256>})

where the payload is JSON {"organisationId", "nonce", "ts"} and ts is the
signing time in epoch milliseconds.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_SECONDS = 15 * 60

# Tolerated clock skew for timestamps in the future
CLOCK_SKEW_SECONDS = 60


class StateSigner:
    """
    Issues and verifies tenant-bound, time-boxed OAuth state values.

    Verification never raises: any tampering, malformed input or expiry
    yields None.
    """

    def __init__(self, secret: str, max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS):
        if not secret:
            raise ValueError("State signing secret must not be empty")
        self._secret = secret.encode("utf-8")
        self.max_age_seconds = max_age_seconds

    def _signature(self, payload: str) -> str:
        return hmac.new(self._secret, payload.encode("utf-8"), hashlib.sha256).hexdigest()

    def sign(self, organisation_id: str, now: Optional[float] = None) -> str:
        """
        Create a signed state for an organisation.

        Args:
            organisation_id: Tenant starting the OAuth flow
            now: Signing time in epoch seconds (defaults to current time)

        Returns:
            URL-safe state string
        """
        issued_at = time.time() if now is None else now
        payload = json.dumps({
            "organisationId": organisation_id,
            "nonce": secrets.token_hex(16),
            "ts": int(issued_at * 1000),
        })
        envelope = json.dumps({"payload": payload, "signature": self._signature(payload)})
        return base64.urlsafe_b64encode(envelope.encode("utf-8")).decode("ascii").rstrip("=")

    def verify(self, state: str, now: Optional[float] = None) -> Optional[str]:
        """
        Verify a state and return the organisation it was issued for.

        Args:
            state: Value received on the OAuth callback
            now: Verification time in epoch seconds (defaults to current time)

        Returns:
            Organisation ID, or None if the state is invalid or expired
        """
        try:
            padded = state + "=" * (-len(state) % 4)
            envelope = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
            payload = envelope["payload"]
            signature = envelope["signature"]
            if not isinstance(payload, str) or not isinstance(signature, str):
                raise ValueError("malformed envelope")
        except (ValueError, TypeError, KeyError, UnicodeError) as e:
            logger.warning(f"Rejected OAuth state: malformed ({type(e).__name__})")
            return None

        if not hmac.compare_digest(signature, self._signature(payload)):
            logger.warning("Rejected OAuth state: signature mismatch")
            return None

        try:
            data = json.loads(payload)
            organisation_id = data["organisationId"]
            issued_ms = int(data["ts"])
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Rejected OAuth state: malformed payload ({type(e).__name__})")
            return None

        if not isinstance(organisation_id, str) or not organisation_id:
            logger.warning("Rejected OAuth state: missing organisation")
            return None

        current = time.time() if now is None else now
        age = current - issued_ms / 1000
        if age > self.max_age_seconds:
            logger.warning(f"Rejected OAuth state: expired ({int(age)}s old)")
            return None
        if age < -CLOCK_SKEW_SECONDS:
            logger.warning("Rejected OAuth state: issued in the future")
            return None

        return organisation_id
