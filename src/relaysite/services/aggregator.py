"""
Multi-relay query aggregation.

[MultiRelayAggregator][relaysite.services.aggregator.MultiRelayAggregator]
runs one set of filters against many relays concurrently and returns the
union of the results, deduplicated by event id. Every endpoint query is
launched before any is awaited and joined with
``asyncio.gather(..., return_exceptions=True)``, so a slow or broken relay
costs at most its own timeout and contributes nothing rather than failing
the whole query.

Form response collection and counting (kind 30169 responses referencing a
kind 30168 form by ``a`` address or ``e`` id) are built on the same core.

Note:
    Deduplication keeps the first copy seen, in endpoint order and then in
    each relay's result order. All copies of one id are byte-identical by
    construction, so which copy wins is unobservable.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Sequence

from relaysite.core.exceptions import ConnectivityError, RelayQueryError, RelayTimeoutError
from relaysite.core.logger import Logger
from relaysite.core.metrics import record_relay_operation
from relaysite.models import EventFilter, EventKind, SignedEvent
from relaysite.utils.relay import RelayEndpoint, RelayPool
from relaysite.utils.urls import dedupe_urls


def dedupe_events(batches: Iterable[Iterable[SignedEvent]]) -> list[SignedEvent]:
    """Union *batches* by event id, preserving order of first appearance."""
    seen: dict[str, SignedEvent] = {}
    for batch in batches:
        for event in batch:
            seen.setdefault(event.id, event)
    return list(seen.values())


class MultiRelayAggregator:
    """Concurrent, failure-tolerant multi-relay queries.

    Args:
        pool: Resolves relay URLs into endpoints.
        timeout: Default per-endpoint timeout in seconds.
        logger: Structured logger (defaults to ``Logger("aggregator")``).

    Examples:
        ```python
        aggregator = MultiRelayAggregator(pool, timeout=10.0)
        events = await aggregator.query(
            [EventFilter(kinds=(1,), limit=20)],
            ["wss://relay.damus.io", "wss://nos.lol"],
        )
        ```
    """

    def __init__(
        self,
        pool: RelayPool,
        *,
        timeout: float = 10.0,  # noqa: ASYNC109
        logger: Logger | None = None,
    ) -> None:
        self._pool = pool
        self._timeout = timeout
        self._logger = logger or Logger("aggregator")

    def _resolve(self, endpoints: Iterable[RelayEndpoint | str]) -> list[RelayEndpoint]:
        resolved: list[RelayEndpoint] = []
        seen: set[str] = set()
        for endpoint in endpoints:
            if isinstance(endpoint, str):
                urls = dedupe_urls([endpoint])
                if not urls:
                    self._logger.warning("invalid_relay_url", url=endpoint)
                    continue
                endpoint = self._pool.endpoint(urls[0])
            if endpoint.url not in seen:
                seen.add(endpoint.url)
                resolved.append(endpoint)
        return resolved

    async def _query_one(
        self,
        endpoint: RelayEndpoint,
        filters: Sequence[EventFilter],
        timeout: float,  # noqa: ASYNC109
    ) -> list[SignedEvent]:
        start = time.monotonic()
        try:
            async with asyncio.timeout(timeout):
                events = await endpoint.query(filters, timeout)
        except TimeoutError as e:
            record_relay_operation("query", "timeout", time.monotonic() - start)
            raise RelayTimeoutError(endpoint.url, f"query timed out after {timeout}s") from e
        except Exception as e:  # Intentionally broad: any relay failure is one missing source
            record_relay_operation("query", "failure", time.monotonic() - start)
            raise RelayQueryError(endpoint.url, str(e) or type(e).__name__) from e
        record_relay_operation("query", "success", time.monotonic() - start)
        return events

    async def query(
        self,
        filters: Sequence[EventFilter],
        endpoints: Iterable[RelayEndpoint | str],
        *,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> list[SignedEvent]:
        """Query every endpoint concurrently and union the results.

        Args:
            filters: NIP-01 filters (OR semantics).
            endpoints: Endpoints or relay URLs; duplicates are queried once.
            timeout: Per-endpoint timeout overriding the default.

        Returns:
            Events deduplicated by id, in order of first appearance.
            Endpoints that time out or fail contribute nothing.
        """
        targets = self._resolve(endpoints)
        if not targets or not filters:
            return []
        per_endpoint = self._timeout if timeout is None else timeout

        results = await asyncio.gather(
            *(self._query_one(endpoint, filters, per_endpoint) for endpoint in targets),
            return_exceptions=True,
        )

        # Re-raise CancelledError: gather(return_exceptions=True) captures it as a result
        for r in results:
            if isinstance(r, asyncio.CancelledError):
                raise r

        batches: list[list[SignedEvent]] = []
        for endpoint, result in zip(targets, results, strict=True):
            if isinstance(result, ConnectivityError):
                self._logger.warning("relay_query_failed", url=endpoint.url, error=str(result))
            elif isinstance(result, BaseException):
                raise result
            else:
                batches.append(result)

        events = dedupe_events(batches)
        self._logger.debug(
            "query_aggregated",
            endpoints=len(targets),
            responded=len(batches),
            events=len(events),
        )
        return events

    async def count_authors(
        self,
        filters: Sequence[EventFilter],
        endpoints: Iterable[RelayEndpoint | str],
    ) -> int:
        """Number of distinct authors among the aggregated events."""
        events = await self.query(filters, endpoints)
        return len({event.pubkey for event in events})

    # -- Form responses -----------------------------------------------------

    async def collect_responses(
        self,
        form: SignedEvent,
        relays: Iterable[str] = (),
        *,
        default_relay: str | None = None,
    ) -> list[SignedEvent]:
        """Collect every response to *form* from its relays and the default relay.

        The form's ``relay`` tags name the relays its responses are sent to;
        *relays* are queried in addition.

        Responses are matched by the form's ``a`` address or by an ``e``
        tag referencing the form's event id or identifier.

        Returns:
            Responses deduplicated by id, newest first.
        """
        if form.address is None:
            raise ValueError(f"form must be an addressable event, got kind {form.kind}")
        filters = [
            EventFilter(kinds=(EventKind.FORM_RESPONSE,), tags={"e": (form.id, form.identifier)}),
            EventFilter(kinds=(EventKind.FORM_RESPONSE,), tags={"a": (form.address,)}),
        ]
        targets = dedupe_urls(form.tag_values("relay"), [default_relay], relays)
        events = await self.query(filters, targets)
        return sorted(events, key=lambda e: (e.created_at, e.id), reverse=True)

    async def count_responses(
        self,
        forms: Sequence[SignedEvent],
        relays: Iterable[str] = (),
        *,
        default_relay: str | None = None,
    ) -> dict[str, int]:
        """Count responses per form address.

        Queries the union of every form's ``relay`` tags, the default relay
        and *relays*.

        A response is attributed by its ``a`` tag; responses without one
        fall back to their ``e`` tag, matched against each form's event id
        or identifier.

        Returns:
            ``{form_address: count}`` for every form in *forms* (zero
            included).
        """
        by_address = {form.address: form for form in forms if form.address is not None}
        if not by_address:
            return {}
        by_reference: dict[str, str] = {}
        for address, form in by_address.items():
            by_reference.setdefault(form.id, address)
            by_reference.setdefault(form.identifier, address)

        filters = [
            EventFilter(kinds=(EventKind.FORM_RESPONSE,), tags={"a": tuple(by_address)}),
            EventFilter(
                kinds=(EventKind.FORM_RESPONSE,),
                tags={"e": tuple(form.id for form in by_address.values())},
            ),
        ]
        targets = dedupe_urls(
            *(form.tag_values("relay") for form in by_address.values()),
            [default_relay],
            relays,
        )
        events = await self.query(filters, targets)

        counts = dict.fromkeys(by_address, 0)
        for event in events:
            address = event.tag_value("a")
            if address is None:
                reference = event.tag_value("e")
                address = by_reference.get(reference) if reference else None
            if address in counts:
                counts[address] += 1
        return counts
