"""Relay endpoint abstraction backed by nostr-sdk.

Services never talk to ``nostr_sdk.Client`` directly. They depend on the
two small protocols below so that fan-out and aggregation logic can be
exercised against in-memory fakes:

- [RelayEndpoint][relaysite.utils.relay.RelayEndpoint]: one relay that can
  answer a query and accept a publish, each bounded by a timeout.
- [RelayPool][relaysite.utils.relay.RelayPool]: hands out endpoint handles
  by URL. Handles are borrowed; callers never close them.

[ClientRelayPool][relaysite.utils.relay.ClientRelayPool] is the production
implementation: one lazily connected client per relay URL, shut down
together by [close()][relaysite.utils.relay.ClientRelayPool.close].

Note:
    Endpoints raise builtin exceptions only (``TimeoutError`` when the
    timeout elapses, ``ConnectionError`` when the relay rejects or fails).
    Mapping them onto the relaysite error hierarchy happens at the service
    join boundary.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Sequence
from datetime import timedelta
from typing import TYPE_CHECKING, Protocol, Self, runtime_checkable

from nostr_sdk import Client, ClientBuilder, RelayUrl

from relaysite.models import EventFilter, SignedEvent

from .urls import normalize_relay_url


if TYPE_CHECKING:
    from types import TracebackType


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class RelayEndpoint(Protocol):
    """A single relay able to answer queries and accept events."""

    @property
    def url(self) -> str: ...

    async def query(
        self,
        filters: Sequence[EventFilter],
        timeout: float,  # noqa: ASYNC109
    ) -> list[SignedEvent]: ...

    async def publish(self, event: SignedEvent, timeout: float) -> None: ...  # noqa: ASYNC109


class RelayPool(Protocol):
    """Source of borrowed [RelayEndpoint][relaysite.utils.relay.RelayEndpoint] handles."""

    def endpoint(self, url: str) -> RelayEndpoint: ...


# ---------------------------------------------------------------------------
# nostr-sdk implementation
# ---------------------------------------------------------------------------


class ClientRelayEndpoint:
    """[RelayEndpoint][relaysite.utils.relay.RelayEndpoint] over a dedicated ``nostr_sdk.Client``.

    The client is created and connected on first use. Events returned by
    the relay are signature-verified before conversion; invalid ones are
    dropped.
    """

    def __init__(self, url: str) -> None:
        self._url = url
        self._client: Client | None = None
        self._lock = asyncio.Lock()

    @property
    def url(self) -> str:
        return self._url

    async def _connected(self) -> Client:
        async with self._lock:
            if self._client is None:
                client = ClientBuilder().build()
                await client.add_relay(RelayUrl.parse(self._url))
                await client.connect()
                self._client = client
            return self._client

    async def query(
        self,
        filters: Sequence[EventFilter],
        timeout: float,  # noqa: ASYNC109
    ) -> list[SignedEvent]:
        """Fetch events matching any of *filters*.

        Raises:
            TimeoutError: If the whole query exceeds *timeout*.
        """
        results: list[SignedEvent] = []
        async with asyncio.timeout(timeout):
            client = await self._connected()
            for event_filter in filters:
                events = await client.fetch_events(
                    event_filter.to_nostr(), timedelta(seconds=timeout)
                )
                for evt in events.to_vec():
                    try:
                        if evt.verify():
                            results.append(SignedEvent.from_nostr(evt))
                    except (ValueError, TypeError) as e:
                        logger.debug("invalid_event_dropped relay=%s error=%s", self._url, e)
        return results

    async def publish(self, event: SignedEvent, timeout: float) -> None:  # noqa: ASYNC109
        """Send *event* and wait for the relay's acknowledgement.

        Raises:
            TimeoutError: If no acknowledgement arrives within *timeout*.
            ConnectionError: If the relay rejects the event.
        """
        async with asyncio.timeout(timeout):
            client = await self._connected()
            output = await client.send_event(event.to_nostr())
        if not output.success:
            reasons = "; ".join(str(reason) for reason in output.failed.values())
            raise ConnectionError(reasons or "relay did not accept the event")

    async def close(self) -> None:
        async with self._lock:
            if self._client is not None:
                with contextlib.suppress(Exception):
                    await self._client.shutdown()
                self._client = None


class ClientRelayPool:
    """Caches one [ClientRelayEndpoint][relaysite.utils.relay.ClientRelayEndpoint] per URL.

    Examples:
        ```python
        async with ClientRelayPool() as pool:
            events = await pool.endpoint("wss://relay.damus.io").query([f], 5.0)
        ```
    """

    def __init__(self) -> None:
        self._endpoints: dict[str, ClientRelayEndpoint] = {}

    def endpoint(self, url: str) -> ClientRelayEndpoint:
        key = normalize_relay_url(url)
        if key not in self._endpoints:
            self._endpoints[key] = ClientRelayEndpoint(key)
        return self._endpoints[key]

    async def close(self) -> None:
        """Shut down every client opened through this pool."""
        endpoints, self._endpoints = list(self._endpoints.values()), {}
        await asyncio.gather(*(endpoint.close() for endpoint in endpoints))

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
