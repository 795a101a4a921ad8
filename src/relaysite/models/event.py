"""
Immutable signed Nostr events and unsigned drafts.

[SignedEvent][relaysite.models.event.SignedEvent] is the unit exchanged with
relays: it is content-addressed (its ``id`` is the NIP-01 digest of the other
fields) and that ``id`` is the deduplication key used by the
[MultiRelayAggregator][relaysite.services.aggregator.MultiRelayAggregator].
[EventDraft][relaysite.models.event.EventDraft] is what collaborators hand to
the [SignerGateway][relaysite.services.signer.SignerGateway].

The module also owns the single last-writer-wins comparator
([is_newer()][relaysite.models.event.is_newer] and
[newest_event()][relaysite.models.event.newest_event]) used by every merge
decision in the reconciler.

See Also:
    [relaysite.models.filters][]: Filters evaluated against these events.
    [relaysite.utils.relay][]: Converts between this model and
        ``nostr_sdk.Event`` at the relay boundary.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from nostr_sdk import Event as NostrEvent

from ._validation import freeze_tags, validate_hex, validate_tags, validate_timestamp
from .constants import EVENT_KIND_MAX, is_addressable, is_replaceable


Tags = tuple[tuple[str, ...], ...]


def compute_event_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Iterable[Sequence[str]],
    content: str,
) -> str:
    """Compute the NIP-01 event id.

    The id is the SHA-256 of the compact JSON array
    ``[0, pubkey, created_at, kind, tags, content]``.

    Returns:
        64 lowercase hex characters.
    """
    payload = json.dumps(
        [0, pubkey, created_at, kind, [list(tag) for tag in tags], content],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class EventDraft:
    """Unsigned event body submitted for signing.

    Attributes:
        kind: Event kind.
        content: Event content (empty string by default).
        tags: Tag arrays.
        created_at: Explicit timestamp, or ``None`` to stamp at signing time.
    """

    kind: int
    content: str = ""
    tags: Tags = ()
    created_at: int | None = None

    def __post_init__(self) -> None:
        validate_timestamp(self.kind, "kind")
        if self.kind > EVENT_KIND_MAX:
            raise ValueError(f"kind must be <= {EVENT_KIND_MAX}")
        object.__setattr__(self, "kind", int(self.kind))
        if not isinstance(self.content, str):
            raise TypeError(f"content must be a str, got {type(self.content).__name__}")
        validate_tags(self.tags, "tags")
        object.__setattr__(self, "tags", freeze_tags(self.tags))
        if self.created_at is not None:
            validate_timestamp(self.created_at, "created_at")

    def has_tag(self, name: str) -> bool:
        """Return True if any tag has *name* as its first element."""
        return any(tag[0] == name for tag in self.tags)

    def with_tag(self, *values: str) -> EventDraft:
        """Return a copy with one extra tag appended."""
        return EventDraft(
            kind=self.kind,
            content=self.content,
            tags=(*self.tags, tuple(values)),
            created_at=self.created_at,
        )


@dataclass(frozen=True, slots=True)
class SignedEvent:
    """Immutable, signed and content-addressed Nostr event.

    Validation is performed eagerly at construction time: hex field lengths,
    non-negative timestamp, kind range and tag shape. The ``id`` is **not**
    recomputed here (relays may hand out events we only relay); call
    [verify_id()][relaysite.models.event.SignedEvent.verify_id] when the
    digest must be checked.

    Attributes:
        id: 32-byte event id as hex.
        pubkey: 32-byte author public key as hex.
        created_at: Unix timestamp of creation.
        kind: Event kind.
        tags: Tag arrays (frozen to tuples).
        content: Event content.
        sig: 64-byte Schnorr signature as hex.

    Examples:
        ```python
        event = SignedEvent.from_dict(json.loads(raw))
        event.tag_value("d")      # 'nostr-meetup-site-config'
        event.verify_id()         # True
        ```
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: Tags
    content: str
    sig: str = field(repr=False)

    def __post_init__(self) -> None:
        validate_hex(self.id, "id", 64)
        validate_hex(self.pubkey, "pubkey", 64)
        validate_hex(self.sig, "sig", 128)
        validate_timestamp(self.created_at, "created_at")
        validate_timestamp(self.kind, "kind")
        if self.kind > EVENT_KIND_MAX:
            raise ValueError(f"kind must be <= {EVENT_KIND_MAX}")
        if not isinstance(self.content, str):
            raise TypeError(f"content must be a str, got {type(self.content).__name__}")
        validate_tags(self.tags, "tags")
        object.__setattr__(self, "tags", freeze_tags(self.tags))

    # -- Tag access ---------------------------------------------------------

    def tag_value(self, name: str) -> str | None:
        """Return the second element of the first tag called *name*."""
        for tag in self.tags:
            if tag[0] == name and len(tag) > 1:
                return tag[1]
        return None

    def tag_values(self, name: str) -> list[str]:
        """Return the second element of every tag called *name*."""
        return [tag[1] for tag in self.tags if tag[0] == name and len(tag) > 1]

    @property
    def identifier(self) -> str:
        """The ``d`` tag value (empty string when absent)."""
        return self.tag_value("d") or ""

    @property
    def address(self) -> str | None:
        """``kind:pubkey:d`` coordinate for addressable events, else ``None``."""
        if not is_addressable(self.kind):
            return None
        return f"{self.kind}:{self.pubkey}:{self.identifier}"

    @property
    def replacement_key(self) -> tuple[str, int, str] | None:
        """Key under which only the newest event is meaningful, if any."""
        if is_addressable(self.kind):
            return (self.pubkey, self.kind, self.identifier)
        if is_replaceable(self.kind):
            return (self.pubkey, self.kind, "")
        return None

    def verify_id(self) -> bool:
        """Check that ``id`` is the NIP-01 digest of the other fields."""
        return self.id == compute_event_id(
            self.pubkey, self.created_at, self.kind, self.tags, self.content
        )

    def verify_signature(self) -> bool:
        """Check the Schnorr signature over ``id`` with ``nostr_sdk``.

        Malformed keys or signatures count as invalid.
        """
        try:
            return bool(self.to_nostr().verify())
        except Exception:  # Intentionally broad: nostr_sdk parse errors mean "not valid"
            return False

    # -- Conversions --------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON object for this event."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        """Serialize to compact NIP-01 JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignedEvent:
        """Build from a NIP-01 JSON object.

        Raises:
            KeyError: If a required field is missing.
            TypeError, ValueError: If a field fails validation.
        """
        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=data["created_at"],
            kind=data["kind"],
            tags=data.get("tags", []),
            content=data.get("content", ""),
            sig=data["sig"],
        )

    @classmethod
    def from_nostr(cls, event: NostrEvent) -> SignedEvent:
        """Convert a ``nostr_sdk.Event`` into a [SignedEvent][relaysite.models.event.SignedEvent]."""
        return cls(
            id=event.id().to_hex(),
            pubkey=event.author().to_hex(),
            created_at=event.created_at().as_secs(),
            kind=event.kind().as_u16(),
            tags=[list(tag.as_vec()) for tag in event.tags().to_vec()],
            content=event.content(),
            sig=event.signature(),
        )

    def to_nostr(self) -> NostrEvent:
        """Convert back into a ``nostr_sdk.Event`` for sending."""
        return NostrEvent.from_json(self.to_json())


# ---------------------------------------------------------------------------
# Last-writer-wins
# ---------------------------------------------------------------------------


def _version(event: SignedEvent) -> tuple[int, str]:
    return (event.created_at, event.id)


def is_newer(candidate: int, current: int | None) -> bool:
    """Return True if *candidate* strictly supersedes *current*.

    This is the single comparator behind every last-writer-wins decision:
    equal timestamps never replace local state, and a missing local
    timestamp is always superseded.
    """
    return current is None or candidate > current


def newest_event(events: Iterable[SignedEvent]) -> SignedEvent | None:
    """Select the newest event by ``created_at``, ties broken by ``id`` descending.

    Returns:
        The winning event, or ``None`` when *events* is empty.
    """
    return max(events, key=_version, default=None)
