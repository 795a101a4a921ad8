"""
Signing gateway for the current identity.

Every signed artifact relaysite produces goes through
[SignerGateway][relaysite.services.signer.SignerGateway]: relay events
(via the publisher) and NIP-98 HTTP authorization tokens (via the scheduler
client). The gateway holds at most one
[Identity][relaysite.services.signer.Identity]; without one every signing
call raises
[NotAuthenticatedError][relaysite.core.exceptions.NotAuthenticatedError],
which is the only failure that reaches a publish caller.

Signing itself is delegated to a [Signer][relaysite.services.signer.Signer]:
[KeysSigner][relaysite.services.signer.KeysSigner] for a local private key,
or any object implementing the protocol (remote signers, hardware keys).
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Protocol, runtime_checkable

from nostr_sdk import EventBuilder, Keys, Kind, Tag, Timestamp

from relaysite.core.exceptions import NotAuthenticatedError
from relaysite.core.logger import Logger
from relaysite.models import EventDraft, SignedEvent
from relaysite.nips.nip98 import build_auth_draft, encode_auth_header


# ---------------------------------------------------------------------------
# Signers
# ---------------------------------------------------------------------------


@runtime_checkable
class Signer(Protocol):
    """Anything able to sign drafts for one public key."""

    async def get_public_key(self) -> str: ...

    async def sign_event(self, draft: EventDraft) -> SignedEvent: ...


class KeysSigner:
    """[Signer][relaysite.services.signer.Signer] backed by ``nostr_sdk.Keys``."""

    def __init__(self, keys: Keys) -> None:
        self._keys = keys

    async def get_public_key(self) -> str:
        return self._keys.public_key().to_hex()

    async def sign_event(self, draft: EventDraft) -> SignedEvent:
        builder = EventBuilder(Kind(draft.kind), draft.content).tags(
            [Tag.parse(list(tag)) for tag in draft.tags]
        )
        if draft.created_at is not None:
            builder = builder.custom_created_at(Timestamp.from_secs(draft.created_at))
        return SignedEvent.from_nostr(builder.sign_with_keys(self._keys))


@dataclass(frozen=True, slots=True)
class Identity:
    """The current user: a hex public key and the signer holding its secret."""

    pubkey: str
    signer: Signer

    @classmethod
    async def from_signer(cls, signer: Signer) -> Identity:
        return cls(pubkey=await signer.get_public_key(), signer=signer)

    @classmethod
    def from_keys(cls, keys: Keys) -> Identity:
        return cls(pubkey=keys.public_key().to_hex(), signer=KeysSigner(keys))


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class SignerGateway:
    """Signs drafts and mints single-use HTTP authorization tokens.

    Args:
        identity: Initial identity, or ``None`` for an anonymous session.
        clock: Returns the current Unix time; stamps drafts without
            ``created_at``.
        logger: Structured logger (defaults to ``Logger("signer")``).
    """

    def __init__(
        self,
        identity: Identity | None = None,
        *,
        clock: Callable[[], int] | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._identity = identity
        self._clock = clock or (lambda: int(time.time()))
        self._logger = logger or Logger("signer")

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def pubkey(self) -> str | None:
        return self._identity.pubkey if self._identity else None

    def set_identity(self, identity: Identity | None) -> None:
        """Switch the current identity (``None`` logs out)."""
        self._identity = identity
        self._logger.info("identity_changed", pubkey=identity.pubkey if identity else None)

    def _require_identity(self) -> Identity:
        if self._identity is None:
            raise NotAuthenticatedError("no identity available to sign with")
        return self._identity

    async def sign(self, draft: EventDraft) -> SignedEvent:
        """Sign *draft* as the current identity.

        Drafts without ``created_at`` are stamped with the current time.

        Raises:
            NotAuthenticatedError: If there is no current identity.
        """
        identity = self._require_identity()
        if draft.created_at is None:
            draft = replace(draft, created_at=self._clock())
        event = await identity.signer.sign_event(draft)
        self._logger.debug("event_signed", id=event.id, kind=event.kind)
        return event

    async def mint_auth_token(
        self, url: str, method: str, *, body: bytes | None = None
    ) -> SignedEvent:
        """Sign a fresh NIP-98 event for one request. Never cached.

        Raises:
            NotAuthenticatedError: If there is no current identity.
        """
        draft = build_auth_draft(url, method, body=body, created_at=self._clock())
        return await self.sign(draft)

    async def authorization_header(
        self, url: str, method: str, *, body: bytes | None = None
    ) -> str:
        """Return a ready ``Authorization`` header value for one request."""
        return encode_auth_header(await self.mint_auth_token(url, method, body=body))
