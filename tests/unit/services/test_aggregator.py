"""
Unit tests for services.aggregator module.

Tests:
- dedupe_events first-seen union
- MultiRelayAggregator.query concurrency, failure and timeout isolation
- Endpoint resolution from URLs and duplicate suppression
- count_authors
- collect_responses / count_responses for forms
"""

import asyncio
import logging
import time

import pytest

from relaysite.models import EventFilter, EventKind
from relaysite.services.aggregator import MultiRelayAggregator, dedupe_events
from tests.conftest import CONTROLLER, OTHER, USER, FakeEndpoint, FakePool, make_event


A = make_event(content="a")
B = make_event(content="b")
C = make_event(content="c")

NOTES = [EventFilter(kinds=(1,))]


@pytest.fixture
def aggregator(pool: FakePool) -> MultiRelayAggregator:
    return MultiRelayAggregator(pool, timeout=0.5)


# ============================================================================
# dedupe_events
# ============================================================================


class TestDedupeEvents:
    """Tests for dedupe_events."""

    def test_union_by_id(self) -> None:
        assert dedupe_events([[A, B], [B, C], [B]]) == [A, B, C]

    def test_empty(self) -> None:
        assert dedupe_events([]) == []


# ============================================================================
# query
# ============================================================================


class TestQuery:
    """Tests for MultiRelayAggregator.query."""

    async def test_union_across_relays(self, aggregator: MultiRelayAggregator) -> None:
        endpoints = [
            FakeEndpoint("wss://one", [A, B]),
            FakeEndpoint("wss://two", [B, C]),
            FakeEndpoint("wss://three", [B]),
        ]
        events = await aggregator.query(NOTES, endpoints)
        assert {e.id for e in events} == {A.id, B.id, C.id}
        assert len(events) == 3

    async def test_failing_endpoint_contributes_nothing(
        self, aggregator: MultiRelayAggregator, caplog: pytest.LogCaptureFixture
    ) -> None:
        endpoints = [
            FakeEndpoint("wss://ok", [A]),
            FakeEndpoint("wss://broken", [B], fail=ConnectionError("refused")),
        ]
        with caplog.at_level(logging.WARNING):
            events = await aggregator.query(NOTES, endpoints)
        assert events == [A]
        assert "relay_query_failed" in caplog.text
        assert "wss://broken" in caplog.text

    async def test_slow_endpoint_bounded_by_timeout(self, pool: FakePool) -> None:
        aggregator = MultiRelayAggregator(pool, timeout=0.05)
        endpoints = [
            FakeEndpoint("wss://fast", [A]),
            FakeEndpoint("wss://slow", [B], delay=5.0),
        ]
        start = time.monotonic()
        events = await aggregator.query(NOTES, endpoints)
        assert events == [A]
        assert time.monotonic() - start < 2.0

    async def test_timeout_override(self, aggregator: MultiRelayAggregator) -> None:
        endpoints = [FakeEndpoint("wss://slow", [A], delay=0.2)]
        assert await aggregator.query(NOTES, endpoints, timeout=0.01) == []

    async def test_all_fail_is_empty(self, aggregator: MultiRelayAggregator) -> None:
        endpoints = [
            FakeEndpoint("wss://x", fail=RuntimeError()),
            FakeEndpoint("wss://y", fail=OSError()),
        ]
        assert await aggregator.query(NOTES, endpoints) == []

    async def test_queries_run_concurrently(self, aggregator: MultiRelayAggregator) -> None:
        endpoints = [FakeEndpoint(f"wss://r{i}", [A], delay=0.1) for i in range(5)]
        start = time.monotonic()
        await aggregator.query(NOTES, endpoints)
        assert time.monotonic() - start < 0.4

    async def test_no_endpoints(self, aggregator: MultiRelayAggregator) -> None:
        assert await aggregator.query(NOTES, []) == []

    async def test_no_filters(self, aggregator: MultiRelayAggregator) -> None:
        endpoint = FakeEndpoint("wss://one", [A])
        assert await aggregator.query([], [endpoint]) == []
        assert endpoint.queries == []

    async def test_filters_applied(self, aggregator: MultiRelayAggregator) -> None:
        mine = make_event(pubkey=CONTROLLER, content="mine")
        endpoint = FakeEndpoint("wss://one", [A, mine])
        events = await aggregator.query([EventFilter(authors=(CONTROLLER,))], [endpoint])
        assert events == [mine]

    async def test_cancellation_propagates(self, aggregator: MultiRelayAggregator) -> None:
        endpoints = [
            FakeEndpoint("wss://ok", [A]),
            FakeEndpoint("wss://cancelled", fail=asyncio.CancelledError()),
        ]
        with pytest.raises(asyncio.CancelledError):
            await aggregator.query(NOTES, endpoints)


class TestResolve:
    """Tests for endpoint resolution inside query."""

    async def test_urls_resolved_through_pool(
        self, pool: FakePool, aggregator: MultiRelayAggregator
    ) -> None:
        pool.add(FakeEndpoint("wss://relay.example.com", [A]))
        events = await aggregator.query(NOTES, ["wss://Relay.Example.com/"])
        assert events == [A]

    async def test_duplicates_queried_once(
        self, pool: FakePool, aggregator: MultiRelayAggregator
    ) -> None:
        endpoint = pool.add(FakeEndpoint("wss://relay.example.com", [A]))
        urls = ["wss://relay.example.com", "wss://relay.example.com/"]
        await aggregator.query(NOTES, [endpoint, *urls])
        assert len(endpoint.queries) == 1

    async def test_invalid_url_skipped(
        self, aggregator: MultiRelayAggregator, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING):
            events = await aggregator.query(
                NOTES, ["https://not-a-relay", FakeEndpoint("wss://ok", [A])]
            )
        assert events == [A]
        assert "invalid_relay_url" in caplog.text


class TestCountAuthors:
    """Tests for MultiRelayAggregator.count_authors."""

    async def test_distinct_authors(self, aggregator: MultiRelayAggregator) -> None:
        endpoints = [
            FakeEndpoint(
                "wss://one", [make_event(pubkey=USER, content="1"), make_event(pubkey=OTHER)]
            ),
            FakeEndpoint("wss://two", [make_event(pubkey=USER, content="2")]),
        ]
        assert await aggregator.count_authors(NOTES, endpoints) == 2


# ============================================================================
# Form responses
# ============================================================================


FORM = make_event(
    kind=int(EventKind.FORM),
    pubkey=CONTROLLER,
    tags=[["d", "rsvp"]],
    content="RSVP",
)
OTHER_FORM = make_event(
    kind=int(EventKind.FORM),
    pubkey=CONTROLLER,
    tags=[["d", "feedback"]],
    content="Feedback",
)


def response(*tags: list[str], created_at: int = 1_700_000_100, pubkey: str = USER):
    return make_event(
        kind=int(EventKind.FORM_RESPONSE),
        pubkey=pubkey,
        created_at=created_at,
        tags=list(tags),
    )


class TestCollectResponses:
    """Tests for MultiRelayAggregator.collect_responses."""

    async def test_by_address_and_id(
        self, pool: FakePool, aggregator: MultiRelayAggregator
    ) -> None:
        by_address = response(["a", FORM.address], created_at=1_700_000_100)
        by_id = response(["e", FORM.id], created_at=1_700_000_200)
        by_identifier = response(["e", "rsvp"], created_at=1_700_000_300, pubkey=OTHER)
        unrelated = response(["a", OTHER_FORM.address])
        pool.add(FakeEndpoint("wss://form.example.com", [by_address, unrelated]))
        pool.add(FakeEndpoint("wss://default.example.com", [by_id, by_identifier, by_address]))

        events = await aggregator.collect_responses(
            FORM, ["wss://form.example.com"], default_relay="wss://default.example.com"
        )
        assert events == [by_identifier, by_id, by_address]

    async def test_queries_relays_declared_by_form(
        self, pool: FakePool, aggregator: MultiRelayAggregator
    ) -> None:
        form = make_event(
            kind=int(EventKind.FORM),
            pubkey=CONTROLLER,
            tags=[["d", "rsvp"], ["relay", "wss://inbox.example.com"]],
        )
        only_on_inbox = response(["a", form.address])
        inbox = pool.add(FakeEndpoint("wss://inbox.example.com", [only_on_inbox]))
        default = pool.add(FakeEndpoint("wss://default.example.com"))

        events = await aggregator.collect_responses(
            form, default_relay="wss://default.example.com"
        )
        assert events == [only_on_inbox]
        assert inbox.queries
        assert default.queries

    async def test_requires_addressable_form(self, aggregator: MultiRelayAggregator) -> None:
        with pytest.raises(ValueError, match="addressable"):
            await aggregator.collect_responses(make_event(kind=1), ["wss://one"])


class TestCountResponses:
    """Tests for MultiRelayAggregator.count_responses."""

    async def test_counts_per_form(self, pool: FakePool, aggregator: MultiRelayAggregator) -> None:
        pool.add(
            FakeEndpoint(
                "wss://one",
                [
                    response(["a", FORM.address], pubkey=USER),
                    response(["a", FORM.address], pubkey=OTHER),
                    response(["e", FORM.id], created_at=1_700_000_500),
                ],
            )
        )
        counts = await aggregator.count_responses([FORM, OTHER_FORM], ["wss://one"])
        assert counts == {FORM.address: 3, OTHER_FORM.address: 0}

    async def test_duplicates_across_relays_counted_once(
        self, pool: FakePool, aggregator: MultiRelayAggregator
    ) -> None:
        shared = response(["a", FORM.address])
        pool.add(FakeEndpoint("wss://one", [shared]))
        pool.add(FakeEndpoint("wss://two", [shared]))
        counts = await aggregator.count_responses([FORM], ["wss://one", "wss://two"])
        assert counts == {FORM.address: 1}

    async def test_union_of_declared_relays(
        self, pool: FakePool, aggregator: MultiRelayAggregator
    ) -> None:
        first = make_event(
            kind=int(EventKind.FORM),
            pubkey=CONTROLLER,
            tags=[["d", "rsvp"], ["relay", "wss://a.example.com"]],
        )
        second = make_event(
            kind=int(EventKind.FORM),
            pubkey=CONTROLLER,
            tags=[["d", "feedback"], ["relay", "wss://b.example.com"]],
        )
        pool.add(FakeEndpoint("wss://a.example.com", [response(["a", first.address])]))
        pool.add(FakeEndpoint("wss://b.example.com", [response(["a", second.address])]))

        counts = await aggregator.count_responses([first, second])
        assert counts == {first.address: 1, second.address: 1}

    async def test_no_addressable_forms(self, aggregator: MultiRelayAggregator) -> None:
        assert await aggregator.count_responses([make_event(kind=1)], ["wss://one"]) == {}
