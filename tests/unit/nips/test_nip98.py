"""
Unit tests for nips.nip98 module.

Tests:
- build_auth_draft tags and payload hash
- Authorization header encoding and decoding
- validate_auth_event checks
"""

import base64
import dataclasses
import hashlib

import pytest

from relaysite.models import EventKind
from relaysite.nips.nip98 import (
    build_auth_draft,
    decode_auth_header,
    encode_auth_header,
    validate_auth_event,
)
from tests.conftest import make_event, sign_draft


URL = "https://relay.example.com/api/scheduler/list"


def auth_event(url: str = URL, method: str = "GET", created_at: int = 1000):
    return sign_draft(build_auth_draft(url, method, created_at=created_at))


class TestBuildAuthDraft:
    """Tests for build_auth_draft."""

    def test_tags(self) -> None:
        draft = build_auth_draft(URL, "get", created_at=5)
        assert draft.kind == EventKind.HTTP_AUTH
        assert draft.content == ""
        assert draft.created_at == 5
        assert draft.tags == (("u", URL), ("method", "GET"))

    def test_payload_hash(self) -> None:
        body = b'{"relays":[]}'
        draft = build_auth_draft(URL, "POST", body=body, created_at=5)
        assert draft.tags[-1] == ("payload", hashlib.sha256(body).hexdigest())

    def test_defaults_created_at_to_now(self) -> None:
        assert build_auth_draft(URL, "GET").created_at is not None


class TestAuthHeader:
    """Tests for header encoding and decoding."""

    def test_scheme_and_base64(self) -> None:
        event = auth_event()
        header = encode_auth_header(event)
        scheme, token = header.split(" ", 1)
        assert scheme == "Nostr"
        assert base64.b64decode(token).decode() == event.to_json()

    def test_decode_restores_event(self) -> None:
        event = auth_event()
        assert decode_auth_header(encode_auth_header(event)) == event

    def test_decode_rejects_other_scheme(self) -> None:
        with pytest.raises(ValueError, match="Nostr scheme"):
            decode_auth_header("Bearer abc")

    def test_decode_rejects_garbage_token(self) -> None:
        with pytest.raises(ValueError, match="malformed"):
            decode_auth_header("Nostr !!!")

    def test_decode_rejects_non_event_json(self) -> None:
        token = base64.b64encode(b'{"hello":1}').decode()
        with pytest.raises(ValueError, match="malformed"):
            decode_auth_header(f"Nostr {token}")


class TestValidateAuthEvent:
    """Tests for validate_auth_event."""

    def test_valid(self) -> None:
        validate_auth_event(auth_event(), URL, "get", now=1010)

    def test_replaced_signature_rejected(self) -> None:
        forged = dataclasses.replace(auth_event(), sig="0" * 128)
        assert forged.verify_id()
        with pytest.raises(ValueError, match="signature"):
            validate_auth_event(forged, URL, "GET", now=1000)

    def test_unsigned_event_rejected(self) -> None:
        draft = build_auth_draft(URL, "GET", created_at=1000)
        event = make_event(kind=draft.kind, tags=draft.tags, created_at=1000)
        with pytest.raises(ValueError, match="signature"):
            validate_auth_event(event, URL, "GET", now=1000)

    def test_wrong_url(self) -> None:
        with pytest.raises(ValueError, match="u tag"):
            validate_auth_event(auth_event(), URL + "?x=1", "GET", now=1000)

    def test_wrong_method(self) -> None:
        with pytest.raises(ValueError, match="method"):
            validate_auth_event(auth_event(), URL, "DELETE", now=1000)

    def test_stale(self) -> None:
        with pytest.raises(ValueError, match="older"):
            validate_auth_event(auth_event(created_at=1000), URL, "GET", now=1061)

    def test_future(self) -> None:
        with pytest.raises(ValueError, match="future"):
            validate_auth_event(auth_event(created_at=2000), URL, "GET", now=1000)

    def test_wrong_kind(self) -> None:
        with pytest.raises(ValueError, match="27235"):
            validate_auth_event(make_event(kind=1), URL, "GET", now=0)
