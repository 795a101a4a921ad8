"""Relay URL helpers.

Relay lists arrive from several sources (settings, the controller's
``publish_relays``, the user's NIP-65 list) and are concatenated before a
fan-out. [dedupe_urls()][relaysite.utils.urls.dedupe_urls] collapses them
into a first-wins ordered list so each relay is contacted once.
"""

from __future__ import annotations

from collections.abc import Iterable

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator


_DEFAULT_PORTS = {"ws": 80, "wss": 443}


def normalize_relay_url(url: str) -> str:
    """Canonical form used for comparison.

    The URL is RFC 3986 normalized (lowercase scheme and host), the default
    port for the scheme is dropped, duplicate slashes in the path are
    collapsed and the trailing slash is stripped, so
    ``wss://Relay.example.com:443/inbox/`` and ``wss://relay.example.com/inbox``
    compare equal.

    Raises:
        ValueError: If *url* is not a ``ws://`` or ``wss://`` URL with a host,
            or carries a query string or fragment.
    """
    uri = uri_reference(url.strip()).normalize()

    validator = (
        Validator()
        .require_presence_of("scheme", "host")
        .allow_schemes("ws", "wss")
        .check_validity_of("scheme", "host", "port", "path")
    )

    try:
        validator.validate(uri)
    except UnpermittedComponentError:
        raise ValueError(f"Invalid scheme: must be ws or wss: {url!r}") from None
    except ValidationError as e:
        raise ValueError(f"Invalid relay URL {url!r}: {e}") from None

    if not uri.host:
        raise ValueError(f"Invalid relay URL {url!r}: missing host")

    if uri.query:
        raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
    if uri.fragment:
        raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

    scheme = uri.scheme
    port = int(uri.port) if uri.port else None
    host = uri.host.strip("[]")
    formatted_host = f"[{host}]" if ":" in host else host

    path = uri.path or ""
    while "//" in path:
        path = path.replace("//", "/")
    path = path.rstrip("/")

    if port and port != _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{formatted_host}:{port}{path}"
    return f"{scheme}://{formatted_host}{path}"


def dedupe_urls(*groups: Iterable[str | None]) -> list[str]:
    """Concatenate URL groups, dropping empties and duplicates (first wins).

    URLs that fail [normalize_relay_url()][relaysite.utils.urls.normalize_relay_url]
    are dropped as well.

    Examples:
        ```python
        dedupe_urls(["wss://a", "wss://b"], ["wss://b/", "", "wss://c"])
        # ['wss://a', 'wss://b', 'wss://c']
        ```
    """
    result: list[str] = []
    seen: set[str] = set()
    for group in groups:
        for url in group:
            if not url:
                continue
            try:
                key = normalize_relay_url(url)
            except ValueError:
                continue
            if key not in seen:
                seen.add(key)
                result.append(key)
    return result


def relay_to_http_base(url: str) -> str:
    """Map a relay URL to its HTTP(S) API base (``wss://x`` -> ``https://x/api``)."""
    stripped = url.strip().rstrip("/")
    if stripped.startswith("wss://"):
        stripped = "https://" + stripped[len("wss://") :]
    elif stripped.startswith("ws://"):
        stripped = "http://" + stripped[len("ws://") :]
    return f"{stripped}/api"
