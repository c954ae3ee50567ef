"""Tests for signed OAuth state values."""

import base64
import json

import pytest

from cassius_sync.auth.state import StateSigner

ISSUED_AT = 1_790_000_000.0


@pytest.fixture
def signer():
    return StateSigner("test-secret")


def decode(state: str) -> dict:
    padded = state + "=" * (-len(state) % 4)
    return json.loads(base64.urlsafe_b64decode(padded))


def encode(envelope: dict) -> str:
    raw = json.dumps(envelope).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


class TestRoundTrip:

    def test_verify_returns_organisation(self, signer):
        state = signer.sign("org-42", now=ISSUED_AT)

        assert signer.verify(state, now=ISSUED_AT + 60) == "org-42"

    def test_state_is_url_safe(self, signer):
        state = signer.sign("org-42", now=ISSUED_AT)

        assert "=" not in state
        assert "+" not in state
        assert "/" not in state

    def test_payload_contents(self, signer):
        envelope = decode(signer.sign("org-42", now=ISSUED_AT))
        payload = json.loads(envelope["payload"])

        assert payload["organisationId"] == "org-42"
        assert payload["ts"] == int(ISSUED_AT * 1000)
        assert len(payload["nonce"]) == 32

    def test_each_state_is_unique(self, signer):
        assert signer.sign("org-42", now=ISSUED_AT) != signer.sign("org-42", now=ISSUED_AT)


class TestRejection:

    def test_expired_after_fifteen_minutes(self, signer):
        state = signer.sign("org-42", now=ISSUED_AT)

        assert signer.verify(state, now=ISSUED_AT + 14 * 60) == "org-42"
        assert signer.verify(state, now=ISSUED_AT + 16 * 60) is None

    def test_issued_in_the_future(self, signer):
        state = signer.sign("org-42", now=ISSUED_AT + 3600)

        assert signer.verify(state, now=ISSUED_AT) is None

    def test_tampered_organisation(self, signer):
        envelope = decode(signer.sign("org-42", now=ISSUED_AT))
        payload = json.loads(envelope["payload"])
        payload["organisationId"] = "org-evil"
        envelope["payload"] = json.dumps(payload)

        assert signer.verify(encode(envelope), now=ISSUED_AT) is None

    def test_other_secret(self, signer):
        state = StateSigner("another-secret").sign("org-42", now=ISSUED_AT)

        assert signer.verify(state, now=ISSUED_AT) is None

    @pytest.mark.parametrize("state", [
        "",
        "not-base64!!",
        encode({"payload": "x"}),
        encode({"payload": 1, "signature": "abc"}),
        base64.urlsafe_b64encode(b"not json").decode("ascii"),
    ])
    def test_malformed(self, signer, state):
        assert signer.verify(state, now=ISSUED_AT) is None

    def test_empty_secret_is_refused(self):
        with pytest.raises(ValueError):
            StateSigner("")
