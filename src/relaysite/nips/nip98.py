"""NIP-98 HTTP authorization (kind 27235).

A request is authorized by a freshly signed, never-published event whose
``u`` tag is the absolute request URL and whose ``method`` tag is the HTTP
method. The event travels base64-encoded in the ``Authorization`` header:

```text
Authorization: Nostr eyJpZCI6Ij...
```

Tokens are single-use by construction: the
[SignerGateway][relaysite.services.signer.SignerGateway] signs a new draft
for every request instead of caching.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import time

from relaysite.models import EventDraft, EventKind, SignedEvent


AUTH_SCHEME = "Nostr"
DEFAULT_MAX_AGE = 60


def build_auth_draft(
    url: str,
    method: str,
    *,
    body: bytes | None = None,
    created_at: int | None = None,
) -> EventDraft:
    """Build the unsigned kind 27235 event for one request.

    Args:
        url: Absolute request URL, including the query string.
        method: HTTP method; upper-cased.
        body: Request body. When given, its SHA-256 is added as a
            ``payload`` tag.
        created_at: Explicit timestamp (defaults to now).
    """
    tags: list[tuple[str, ...]] = [("u", url), ("method", method.upper())]
    if body is not None:
        tags.append(("payload", hashlib.sha256(body).hexdigest()))
    return EventDraft(
        kind=EventKind.HTTP_AUTH,
        content="",
        tags=tuple(tags),
        created_at=int(time.time()) if created_at is None else created_at,
    )


def encode_auth_header(event: SignedEvent) -> str:
    """Return the ``Authorization`` header value for a signed auth event."""
    token = base64.b64encode(event.to_json().encode("utf-8")).decode("ascii")
    return f"{AUTH_SCHEME} {token}"


def decode_auth_header(header: str) -> SignedEvent:
    """Parse an ``Authorization`` header back into the signed event.

    Raises:
        ValueError: If the scheme is not ``Nostr`` or the token is not a
            base64-encoded event.
    """
    scheme, _, token = header.strip().partition(" ")
    if scheme != AUTH_SCHEME or not token:
        raise ValueError("authorization header must use the Nostr scheme")
    try:
        data = json.loads(base64.b64decode(token.strip(), validate=True))
        return SignedEvent.from_dict(data)
    except (binascii.Error, KeyError, TypeError, ValueError) as e:
        raise ValueError(f"malformed authorization token: {e}") from e


def validate_auth_event(
    event: SignedEvent,
    url: str,
    method: str,
    *,
    now: int | None = None,
    max_age: int = DEFAULT_MAX_AGE,
) -> None:
    """Check an auth event against the request it is meant to authorize.

    Checks the kind, the id digest and the signature, then the ``u`` and
    ``method`` tags against the request and finally freshness.

    Raises:
        ValueError: Describing the first failed check.
    """
    if event.kind != EventKind.HTTP_AUTH:
        raise ValueError(f"expected kind {EventKind.HTTP_AUTH}, got {event.kind}")
    if not event.verify_id():
        raise ValueError("event id does not match its content")
    if not event.verify_signature():
        raise ValueError("invalid signature")
    if event.tag_value("u") != url:
        raise ValueError(f"u tag {event.tag_value('u')!r} does not match {url!r}")
    if (event.tag_value("method") or "").upper() != method.upper():
        raise ValueError(f"method tag does not match {method.upper()}")
    current = int(time.time()) if now is None else now
    if abs(current - event.created_at) > max_age:
        raise ValueError(f"auth event is older than {max_age}s or from the future")
