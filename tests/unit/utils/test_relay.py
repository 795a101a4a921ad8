"""
Unit tests for utils.relay module.

Tests:
- ClientRelayEndpoint lazy connection, query conversion and verification
- ClientRelayEndpoint publish acknowledgement handling
- ClientRelayPool endpoint caching and shutdown
- Protocol conformance of the in-memory test doubles
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from nostr_sdk import Keys

from relaysite.models import EventFilter
from relaysite.utils.relay import ClientRelayEndpoint, ClientRelayPool, RelayEndpoint
from tests.conftest import FakeEndpoint, make_event


def _nostr_event(valid: bool = True) -> MagicMock:
    event = make_event(content="hello")
    nostr = MagicMock()
    nostr.verify.return_value = valid
    nostr.id.return_value.to_hex.return_value = event.id
    nostr.author.return_value.to_hex.return_value = event.pubkey
    nostr.created_at.return_value.as_secs.return_value = event.created_at
    nostr.kind.return_value.as_u16.return_value = event.kind
    nostr.tags.return_value.to_vec.return_value = []
    nostr.content.return_value = event.content
    nostr.signature.return_value = event.sig
    return nostr


def _mock_client(events: list[MagicMock] | None = None) -> MagicMock:
    client = MagicMock()
    client.add_relay = AsyncMock()
    client.connect = AsyncMock()
    client.shutdown = AsyncMock()
    fetched = MagicMock()
    fetched.to_vec.return_value = events or []
    client.fetch_events = AsyncMock(return_value=fetched)
    output = MagicMock()
    output.success = {"wss://relay.example.com"}
    output.failed = {}
    client.send_event = AsyncMock(return_value=output)
    return client


@pytest.fixture
def client() -> MagicMock:
    return _mock_client()


@pytest.fixture
def builder(client: MagicMock):
    with patch("relaysite.utils.relay.ClientBuilder") as builder_cls:
        builder_cls.return_value.build.return_value = client
        yield builder_cls


# ============================================================================
# ClientRelayEndpoint
# ============================================================================


class TestClientRelayEndpointQuery:
    """Tests for ClientRelayEndpoint.query."""

    async def test_connects_once(self, builder: MagicMock, client: MagicMock) -> None:
        endpoint = ClientRelayEndpoint("wss://relay.example.com")
        await endpoint.query([EventFilter(kinds=(1,))], 1.0)
        await endpoint.query([EventFilter(kinds=(1,))], 1.0)
        builder.return_value.build.assert_called_once()
        client.connect.assert_awaited_once()

    async def test_converts_verified_events(self, builder: MagicMock, client: MagicMock) -> None:
        client.fetch_events.return_value.to_vec.return_value = [
            _nostr_event(valid=True),
            _nostr_event(valid=False),
        ]
        endpoint = ClientRelayEndpoint("wss://relay.example.com")
        events = await endpoint.query([EventFilter(kinds=(1,))], 1.0)
        assert len(events) == 1
        assert events[0].content == "hello"

    async def test_one_fetch_per_filter(self, builder: MagicMock, client: MagicMock) -> None:
        endpoint = ClientRelayEndpoint("wss://relay.example.com")
        await endpoint.query([EventFilter(kinds=(1,)), EventFilter(kinds=(2,))], 1.0)
        assert client.fetch_events.await_count == 2

    async def test_timeout(self, builder: MagicMock, client: MagicMock) -> None:
        async def hang(*_args: object) -> None:
            await asyncio.sleep(10)

        client.fetch_events.side_effect = hang
        endpoint = ClientRelayEndpoint("wss://relay.example.com")
        with pytest.raises(TimeoutError):
            await endpoint.query([EventFilter(kinds=(1,))], 0.01)


class TestClientRelayEndpointPublish:
    """Tests for ClientRelayEndpoint.publish."""

    @pytest.fixture
    def signed(self):
        return make_event(content="publish me")

    async def test_acknowledged(self, builder: MagicMock, client: MagicMock, signed) -> None:
        endpoint = ClientRelayEndpoint("wss://relay.example.com")
        with patch.object(type(signed), "to_nostr", return_value=MagicMock()):
            await endpoint.publish(signed, 1.0)
        client.send_event.assert_awaited_once()

    async def test_rejected(self, builder: MagicMock, client: MagicMock, signed) -> None:
        client.send_event.return_value.success = set()
        client.send_event.return_value.failed = {"wss://relay.example.com": "blocked: spam"}
        endpoint = ClientRelayEndpoint("wss://relay.example.com")
        with (
            patch.object(type(signed), "to_nostr", return_value=MagicMock()),
            pytest.raises(ConnectionError, match="blocked: spam"),
        ):
            await endpoint.publish(signed, 1.0)

    async def test_close_shuts_down(self, builder: MagicMock, client: MagicMock) -> None:
        endpoint = ClientRelayEndpoint("wss://relay.example.com")
        await endpoint.query([EventFilter(kinds=(1,))], 1.0)
        await endpoint.close()
        await endpoint.close()
        client.shutdown.assert_awaited_once()


# ============================================================================
# ClientRelayPool
# ============================================================================


class TestClientRelayPool:
    """Tests for ClientRelayPool."""

    def test_caches_by_normalized_url(self) -> None:
        pool = ClientRelayPool()
        a = pool.endpoint("wss://Relay.Example.com/")
        b = pool.endpoint("wss://relay.example.com")
        assert a is b
        assert a.url == "wss://relay.example.com"

    def test_rejects_invalid_url(self) -> None:
        with pytest.raises(ValueError):
            ClientRelayPool().endpoint("https://relay.example.com")

    async def test_context_manager_closes_endpoints(self) -> None:
        async with ClientRelayPool() as pool:
            endpoint = pool.endpoint("wss://relay.example.com")
            endpoint.close = AsyncMock()
        endpoint.close.assert_awaited_once()


class TestProtocols:
    """Tests for RelayEndpoint structural typing."""

    def test_fake_endpoint_conforms(self) -> None:
        assert isinstance(FakeEndpoint("wss://a"), RelayEndpoint)

    def test_client_endpoint_conforms(self) -> None:
        assert isinstance(ClientRelayEndpoint("wss://a"), RelayEndpoint)

    def test_keys_is_not_an_endpoint(self) -> None:
        assert not isinstance(Keys.generate(), RelayEndpoint)
