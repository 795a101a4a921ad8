"""Nostr Implementation Possibilities -- event codecs used by relaysite.

The NIPs layer sits in the middle of the diamond DAG and depends only on
[relaysite.models][relaysite.models]. Codecs here are pure: they turn
[SignedEvent][relaysite.models.event.SignedEvent] instances into
configuration values and configuration values into
[EventDraft][relaysite.models.event.EventDraft] instances, without I/O.

Attributes:
    nip65: Relay list metadata (kind 10002).
    nip78: Controller site configuration (kind 30078).
    nip98: HTTP authorization tokens (kind 27235).
"""

from .nip65 import build_relay_list, parse_relay_list
from .nip78 import DecodeFailure, SiteConfigUpdate, decode_site_config, encode_site_config
from .nip98 import (
    build_auth_draft,
    decode_auth_header,
    encode_auth_header,
    validate_auth_event,
)


__all__ = [
    "DecodeFailure",
    "SiteConfigUpdate",
    "build_auth_draft",
    "build_relay_list",
    "decode_auth_header",
    "decode_site_config",
    "encode_auth_header",
    "encode_site_config",
    "parse_relay_list",
    "validate_auth_event",
]
