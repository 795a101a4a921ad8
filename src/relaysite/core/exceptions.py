"""relaysite exception hierarchy.

Typed exceptions for every error category so callers can tell failures that
are absorbed at a fan-out join from failures that must reach the caller,
while ``CancelledError`` always propagates untouched.

Exception hierarchy:

```text
RelaySiteError (base -- never raised directly)
├── ConfigurationError         -- settings validation, bad YAML
│   ├── ConfigCorruptError     -- local cache unreadable (fallback: empty)
│   └── ConfigDecodeError      -- remote tag value unparseable (field skipped)
├── NotAuthenticatedError      -- signing without an identity (propagates)
├── ConnectivityError          -- per-endpoint relay failures
│   ├── RelayTimeoutError      -- query or publish exceeded its timeout
│   └── RelayQueryError        -- relay refused, closed or errored
├── PublishingError            -- publish could not be attempted at all
└── SchedulerApiError          -- scheduler HTTP API returned an error status
```

Propagation policy:
    Anything raised inside a per-endpoint operation of a fan-out or
    aggregate join is converted into "no contribution from this endpoint"
    at the join boundary. Only failures affecting every target equally
    (e.g. [NotAuthenticatedError][relaysite.core.exceptions.NotAuthenticatedError])
    reach the caller.
"""

from __future__ import annotations


class RelaySiteError(Exception):
    """Base exception for all relaysite errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(RelaySiteError):
    """Invalid or missing configuration (YAML, env vars, CLI flags)."""


class ConfigCorruptError(ConfigurationError):
    """The locally persisted configuration blob cannot be read.

    Raised by [ConfigStore.load()][relaysite.services.store.ConfigStore.load].
    Callers recover by falling back to the empty snapshot; it is never fatal.
    """


class ConfigDecodeError(ConfigurationError):
    """A remote configuration tag value failed to parse.

    Only the offending field is skipped; the remaining fields still merge.

    Attributes:
        field: Name of the tag that failed to decode.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class NotAuthenticatedError(RelaySiteError):
    """Signing was attempted without a current identity or signer.

    Surfaced to the caller and never retried.
    """


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(RelaySiteError):
    """Base for per-endpoint relay failures.

    Attributes:
        url: The relay the failure belongs to.
    """

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url


class RelayTimeoutError(ConnectivityError):
    """A query or publish to one relay exceeded its timeout."""


class RelayQueryError(ConnectivityError):
    """A relay refused, closed or failed a query or publish."""


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


class PublishingError(RelaySiteError):
    """A publish could not be attempted (e.g. no target relays resolved)."""


class SchedulerApiError(RelaySiteError):
    """The scheduled-publishing API answered with an error status.

    Attributes:
        status: HTTP status code.
    """

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"API Error: {status} {message}".rstrip())
        self.status = status
