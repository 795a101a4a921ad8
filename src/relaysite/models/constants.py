"""Shared constants for the models layer.

Defines the event kinds, tag markers and fixed identifiers used across the
models, nips and services layers. Placing them here avoids circular
dependencies between the layers.

See Also:
    [relaysite.models.event][]: Uses the kind ranges to classify replaceable
        and addressable events.
    [relaysite.nips.nip78][]: Encodes and decodes the controller's
        configuration event addressed by
        [SITE_CONFIG_IDENTIFIER][relaysite.models.constants.SITE_CONFIG_IDENTIFIER].
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class EventKind(IntEnum):
    """Well-known Nostr event kinds handled by relaysite.

    Attributes:
        RELAY_LIST: Kind 10002 -- NIP-65 relay list metadata of the current
            user (replaceable).
        HTTP_AUTH: Kind 27235 -- NIP-98 HTTP authorization event
            (ephemeral, never published to relays).
        APP_DATA: Kind 30078 -- NIP-78 application data; carries the
            controller's site configuration (addressable).
        FORM: Kind 30168 -- form definition (addressable).
        FORM_RESPONSE: Kind 30169 -- response to a form, referencing the
            form by ``a`` address and/or ``e`` id.
    """

    RELAY_LIST = 10_002
    HTTP_AUTH = 27_235
    APP_DATA = 30_078
    FORM = 30_168
    FORM_RESPONSE = 30_169


class RelayMarker(StrEnum):
    """Optional third element of a NIP-65 ``r`` tag.

    An omitted marker means the relay is used for both reading and writing.
    """

    READ = "read"
    WRITE = "write"


SITE_CONFIG_IDENTIFIER = "nostr-meetup-site-config"
"""The ``d`` tag addressing the controller's configuration event."""

STORAGE_KEY = "nostr:app-config"
"""Default key of the locally persisted configuration blob."""

STORAGE_VERSION = 1
"""Current version of the persisted configuration blob envelope."""

DEFAULT_FALLBACK_RELAYS: tuple[str, ...] = (
    "wss://relay.damus.io",
    "wss://relay.primal.net",
    "wss://nos.lol",
)

EVENT_KIND_MAX = 65_535


def is_replaceable(kind: int) -> bool:
    """Return True for kinds where only the newest event per author matters."""
    return kind in (0, 3) or 10_000 <= kind < 20_000


def is_ephemeral(kind: int) -> bool:
    """Return True for kinds that relays are not expected to store."""
    return 20_000 <= kind < 30_000


def is_addressable(kind: int) -> bool:
    """Return True for kinds replaceable per ``(pubkey, kind, d-tag)``."""
    return 30_000 <= kind < 40_000
