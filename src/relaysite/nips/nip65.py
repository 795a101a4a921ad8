"""NIP-65 relay list metadata (kind 10002).

Each ``["r", url, marker?]`` tag names one relay. An omitted marker means
the relay is used for both reading and writing; ``read`` or ``write``
restricts it to that direction.

See Also:
    [ConfigReconciler.sync_relay_list()][relaysite.services.reconciler.ConfigReconciler.sync_relay_list]:
        Applies the parsed list to the local snapshot.
"""

from __future__ import annotations

import logging

from relaysite.models import (
    EventDraft,
    EventKind,
    RelayEntry,
    RelayMarker,
    RelayMetadata,
    SignedEvent,
)


logger = logging.getLogger(__name__)


def parse_relay_list(event: SignedEvent) -> RelayMetadata:
    """Convert a kind 10002 event into [RelayMetadata][relaysite.models.config.RelayMetadata].

    Malformed ``r`` tags (missing or non-websocket URL, unknown marker) are
    skipped. Duplicate URLs keep their first occurrence.

    Raises:
        ValueError: If *event* is not a relay list event.
    """
    if event.kind != EventKind.RELAY_LIST:
        raise ValueError(f"expected kind {EventKind.RELAY_LIST}, got {event.kind}")

    relays: list[RelayEntry] = []
    seen: set[str] = set()
    for tag in event.tags:
        if tag[0] != "r" or len(tag) < 2:
            continue
        url = tag[1].strip()
        marker = tag[2] if len(tag) > 2 else None
        if marker is not None and marker not in {m.value for m in RelayMarker}:
            logger.debug("relay_list_marker_skipped url=%s marker=%s", url, marker)
            continue
        if not url.startswith(("ws://", "wss://")) or url in seen:
            continue
        seen.add(url)
        relays.append(
            RelayEntry(
                url=url,
                read=marker in (None, RelayMarker.READ),
                write=marker in (None, RelayMarker.WRITE),
            )
        )

    return RelayMetadata(relays=relays, updated_at=event.created_at)


def build_relay_list(metadata: RelayMetadata, created_at: int | None = None) -> EventDraft:
    """Build the kind 10002 draft publishing *metadata*.

    Entries that are neither readable nor writable are omitted.
    """
    tags: list[tuple[str, ...]] = []
    for relay in metadata.relays:
        if relay.read and relay.write:
            tags.append(("r", relay.url))
        elif relay.read:
            tags.append(("r", relay.url, RelayMarker.READ.value))
        elif relay.write:
            tags.append(("r", relay.url, RelayMarker.WRITE.value))
    return EventDraft(kind=EventKind.RELAY_LIST, tags=tuple(tags), created_at=created_at)
