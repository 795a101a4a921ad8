"""Pure data models with no I/O.

The bottom of the diamond DAG: every other layer imports from here and
nothing here imports from another relaysite layer.

Attributes:
    SignedEvent: Immutable content-addressed Nostr event.
        See [SignedEvent][relaysite.models.event.SignedEvent].
    EventDraft: Unsigned event body submitted for signing.
    EventFilter: Client-independent NIP-01 filter.
    ConfigSnapshot: Partial or resolved application configuration.
    EventKind: Well-known event kinds.
"""

from .config import (
    EMPTY_SNAPSHOT,
    AdminRole,
    ConfigSnapshot,
    NavigationItem,
    NavigationNode,
    RelayEntry,
    RelayMetadata,
    SiteConfig,
    Theme,
    navigation_tree,
)
from .constants import (
    DEFAULT_FALLBACK_RELAYS,
    SITE_CONFIG_IDENTIFIER,
    STORAGE_KEY,
    STORAGE_VERSION,
    EventKind,
    RelayMarker,
    is_addressable,
    is_ephemeral,
    is_replaceable,
)
from .event import EventDraft, SignedEvent, compute_event_id, is_newer, newest_event
from .filters import EventFilter, matches_any


__all__ = [
    "DEFAULT_FALLBACK_RELAYS",
    "EMPTY_SNAPSHOT",
    "SITE_CONFIG_IDENTIFIER",
    "STORAGE_KEY",
    "STORAGE_VERSION",
    "AdminRole",
    "ConfigSnapshot",
    "EventDraft",
    "EventFilter",
    "EventKind",
    "NavigationItem",
    "NavigationNode",
    "RelayEntry",
    "RelayMarker",
    "RelayMetadata",
    "SignedEvent",
    "SiteConfig",
    "Theme",
    "compute_event_id",
    "is_addressable",
    "is_ephemeral",
    "is_newer",
    "is_replaceable",
    "matches_any",
    "navigation_tree",
    "newest_event",
]
