"""Key loading, relay endpoints, URL helpers and bounded HTTP reads.

The utils layer sits in the middle of the diamond DAG, depending only on
[relaysite.models][relaysite.models].

Attributes:
    keys: Signing keys from ``PRIVATE_KEY`` (nsec1 or hex).
    relay: [RelayEndpoint][relaysite.utils.relay.RelayEndpoint] and
        [RelayPool][relaysite.utils.relay.RelayPool] protocols with the
        nostr-sdk backed implementation.
    urls: Relay URL normalization and first-wins deduplication.
    http: Size-bounded aiohttp response reading.

Note:
    The utils layer has **zero** imports from ``relaysite.core`` or
    ``relaysite.services``.
"""

from .http import read_bounded, read_bounded_json
from .keys import ENV_PRIVATE_KEY, load_keys_from_env, load_optional_keys
from .relay import ClientRelayEndpoint, ClientRelayPool, RelayEndpoint, RelayPool
from .urls import dedupe_urls, normalize_relay_url, relay_to_http_base


__all__ = [
    "ENV_PRIVATE_KEY",
    "ClientRelayEndpoint",
    "ClientRelayPool",
    "RelayEndpoint",
    "RelayPool",
    "dedupe_urls",
    "load_keys_from_env",
    "load_optional_keys",
    "normalize_relay_url",
    "read_bounded",
    "read_bounded_json",
    "relay_to_http_base",
]
