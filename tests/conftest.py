"""
Pytest configuration and shared fixtures for relaysite tests.

Provides:
- Event builders producing content-addressed SignedEvents with a fake signature,
  and sign_draft for events carrying a real signature
- In-memory relay endpoints and pool (no network)
- Settings and store fixtures
- Environment isolation for the env-var fallbacks
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import pytest
from nostr_sdk import EventBuilder, Keys, Kind, Tag, Timestamp

from relaysite.core.settings import SiteSettings
from relaysite.models import EventDraft, EventFilter, SignedEvent, compute_event_id
from relaysite.services.store import ConfigStore, MemoryStorage


CONTROLLER = "a" * 64
USER = "b" * 64
OTHER = "c" * 64
FAKE_SIG = "f" * 128

VALID_HEX_KEY = "67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa"


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment variables out of settings resolution."""
    for name in ("MASTER_PUBKEY", "DEFAULT_RELAY", "PRIVATE_KEY"):
        monkeypatch.delenv(name, raising=False)


# ============================================================================
# Event Builders
# ============================================================================


def make_event(
    *,
    kind: int = 1,
    pubkey: str = USER,
    created_at: int = 1_700_000_000,
    tags: Sequence[Sequence[str]] = (),
    content: str = "",
) -> SignedEvent:
    """Build a SignedEvent whose id is the real NIP-01 digest."""
    tag_list = [list(tag) for tag in tags]
    return SignedEvent(
        id=compute_event_id(pubkey, created_at, kind, tag_list, content),
        pubkey=pubkey,
        created_at=created_at,
        kind=kind,
        tags=tag_list,
        content=content,
        sig=FAKE_SIG,
    )


def sign_draft(draft: EventDraft, secret: str = VALID_HEX_KEY) -> SignedEvent:
    """Sign *draft* with a real key, for tests that verify signatures."""
    builder = EventBuilder(Kind(draft.kind), draft.content).tags(
        [Tag.parse(list(tag)) for tag in draft.tags]
    )
    if draft.created_at is not None:
        builder = builder.custom_created_at(Timestamp.from_secs(draft.created_at))
    return SignedEvent.from_nostr(builder.sign_with_keys(Keys.parse(secret)))


# ============================================================================
# Fake Relays
# ============================================================================


class FakeEndpoint:
    """In-memory relay endpoint.

    Serves the stored events matching any filter; ``fail`` raises on every
    call, ``delay`` sleeps before answering (use it to force timeouts).
    """

    def __init__(
        self,
        url: str,
        events: Sequence[SignedEvent] = (),
        *,
        fail: BaseException | None = None,
        delay: float = 0.0,
    ) -> None:
        self._url = url
        self.events = list(events)
        self.fail = fail
        self.delay = delay
        self.published: list[SignedEvent] = []
        self.queries: list[list[EventFilter]] = []

    @property
    def url(self) -> str:
        return self._url

    async def _behave(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail

    async def query(  # noqa: ASYNC109
        self, filters: Sequence[EventFilter], timeout: float
    ) -> list[SignedEvent]:
        self.queries.append(list(filters))
        await self._behave()
        return [e for e in self.events if any(f.matches(e) for f in filters)]

    async def publish(self, event: SignedEvent, timeout: float) -> None:  # noqa: ASYNC109
        await self._behave()
        self.published.append(event)
        self.events.append(event)


class FakePool:
    """RelayPool handing out FakeEndpoints; unknown URLs get an empty endpoint."""

    def __init__(self, *endpoints: FakeEndpoint) -> None:
        self.endpoints: dict[str, FakeEndpoint] = {e.url: e for e in endpoints}
        self.closed = False

    def endpoint(self, url: str) -> FakeEndpoint:
        if url not in self.endpoints:
            self.endpoints[url] = FakeEndpoint(url)
        return self.endpoints[url]

    def add(self, endpoint: FakeEndpoint) -> FakeEndpoint:
        self.endpoints[endpoint.url] = endpoint
        return endpoint

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings_dict() -> dict[str, Any]:
    return {
        "controller_pubkey": CONTROLLER,
        "site_url": "https://meetup.example.com",
        "relays": {
            "fallback": ["wss://fallback.example.com"],
            "query_timeout": 0.5,
            "publish_timeout": 0.5,
            "aggregate_timeout": 0.5,
        },
    }


@pytest.fixture
def settings(settings_dict: dict[str, Any]) -> SiteSettings:
    return SiteSettings.from_dict(settings_dict)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage: MemoryStorage) -> ConfigStore:
    return ConfigStore(storage)


@pytest.fixture
def pool() -> FakePool:
    return FakePool()


class Clock:
    """Manually advanced Unix clock."""

    def __init__(self, now: int = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock() -> Clock:
    return Clock()


class FakeSigner:
    """Signer that produces content-addressed events with a fake signature."""

    def __init__(self, pubkey: str = USER) -> None:
        self.pubkey = pubkey
        self.signed: list[SignedEvent] = []

    async def get_public_key(self) -> str:
        return self.pubkey

    async def sign_event(self, draft: EventDraft) -> SignedEvent:
        event = make_event(
            kind=draft.kind,
            pubkey=self.pubkey,
            created_at=draft.created_at if draft.created_at is not None else 0,
            tags=draft.tags,
            content=draft.content,
        )
        self.signed.append(event)
        return event
