"""
Relay query filters.

[EventFilter][relaysite.models.filters.EventFilter] describes one NIP-01
subscription filter independently of the relay client. It converts to a
``nostr_sdk.Filter`` at the relay boundary and can be evaluated in memory
against a [SignedEvent][relaysite.models.event.SignedEvent], which keeps
aggregation logic testable without a live relay.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from nostr_sdk import Filter

from .event import SignedEvent


@dataclass(frozen=True, slots=True)
class EventFilter:
    """Immutable NIP-01 filter.

    Attributes:
        ids: Event ids to match.
        kinds: Event kinds to match.
        authors: Author public keys (hex) to match.
        identifiers: ``d`` tag values to match (shorthand for ``tags["d"]``).
        tags: Single-letter tag filters, e.g. ``{"e": ("abc...",)}``.
        since: Lower bound on ``created_at`` (inclusive).
        until: Upper bound on ``created_at`` (inclusive).
        limit: Maximum number of events a relay should return.

    Examples:
        ```python
        EventFilter(
            kinds=(EventKind.APP_DATA,),
            authors=(controller,),
            identifiers=(SITE_CONFIG_IDENTIFIER,),
            limit=1,
        )
        ```
    """

    ids: tuple[str, ...] = ()
    kinds: tuple[int, ...] = ()
    authors: tuple[str, ...] = ()
    identifiers: tuple[str, ...] = ()
    tags: Mapping[str, tuple[str, ...]] = field(default_factory=dict, hash=False)
    since: int | None = None
    until: int | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        for letter in self.tags:
            if len(letter) != 1 or not letter.isalpha():
                raise ValueError(f"tag filter keys must be single letters, got {letter!r}")
        object.__setattr__(self, "ids", tuple(self.ids))
        object.__setattr__(self, "kinds", tuple(int(k) for k in self.kinds))
        object.__setattr__(self, "authors", tuple(self.authors))
        object.__setattr__(self, "identifiers", tuple(self.identifiers))
        object.__setattr__(
            self, "tags", MappingProxyType({k: tuple(v) for k, v in self.tags.items()})
        )

    def _tag_filters(self) -> dict[str, tuple[str, ...]]:
        merged = dict(self.tags)
        if self.identifiers:
            merged["d"] = (*merged.get("d", ()), *self.identifiers)
        return merged

    def matches(self, event: SignedEvent) -> bool:
        """Evaluate this filter against *event* (``limit`` is ignored)."""
        if self.ids and event.id not in self.ids:
            return False
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.authors and event.pubkey not in self.authors:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for letter, values in self._tag_filters().items():
            if not set(event.tag_values(letter)) & set(values):
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the NIP-01 wire form (``{"kinds": [...], "#e": [...]}``)."""
        data: dict[str, Any] = {}
        if self.ids:
            data["ids"] = list(self.ids)
        if self.kinds:
            data["kinds"] = list(self.kinds)
        if self.authors:
            data["authors"] = list(self.authors)
        for letter, values in self._tag_filters().items():
            data[f"#{letter}"] = list(values)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data

    def to_nostr(self) -> Filter:
        """Build the equivalent ``nostr_sdk.Filter``."""
        return Filter.from_json(json.dumps(self.to_dict()))


def matches_any(filters: tuple[EventFilter, ...] | list[EventFilter], event: SignedEvent) -> bool:
    """Return True if *event* matches at least one filter (NIP-01 OR semantics)."""
    return any(f.matches(event) for f in filters)
