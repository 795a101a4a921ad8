"""
Site facade wiring every relaysite component together.

[Site][relaysite.services.site.Site] is what a page, a CLI command or a
long-running watcher talks to. It owns the relay pool and the persisted
store, and exposes the collaborator API:

- [get_config()][relaysite.services.site.Site.get_config] /
  [update_config()][relaysite.services.site.Site.update_config]
- [publish()][relaysite.services.site.Site.publish] /
  [dispatch()][relaysite.services.site.Site.dispatch]
- [query_aggregate()][relaysite.services.site.Site.query_aggregate]
- [sync()][relaysite.services.site.Site.sync]
- [save_site_config()][relaysite.services.site.Site.save_site_config]

Examples:
    ```python
    settings = SiteSettings.from_yaml("config/site.yaml")
    async with Site.from_settings(settings, keys=load_optional_keys()) as site:
        await site.sync()
        print(site.get_config().site_config.title)
    ```
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any, Self

from relaysite.core.logger import Logger
from relaysite.core.settings import SiteSettings
from relaysite.models import (
    ConfigSnapshot,
    EventDraft,
    EventFilter,
    NavigationItem,
    SignedEvent,
    SiteConfig,
)
from relaysite.nips.nip78 import encode_site_config
from relaysite.utils.relay import ClientRelayPool, RelayEndpoint, RelayPool

from .aggregator import MultiRelayAggregator
from .publisher import PublishJob, RelayPublisher
from .reconciler import ConfigReconciler, SyncOutcome
from .scheduler import SchedulerClient
from .signer import Identity, SignerGateway
from .store import ConfigStore, JsonFileStorage, StorageBackend


if TYPE_CHECKING:
    from types import TracebackType

    from nostr_sdk import Keys


class Site:
    """All components of one site, sharing one pool, store and identity.

    Args:
        settings: Operator settings.
        store: Persisted snapshot (not yet opened).
        pool: Relay endpoint factory shared by queries and publishes.
        gateway: Signing gateway holding the current identity.
        clock: Returns the current Unix time.
        logger: Structured logger (defaults to ``Logger("site")``).
    """

    def __init__(
        self,
        settings: SiteSettings,
        store: ConfigStore,
        pool: RelayPool,
        gateway: SignerGateway,
        *,
        clock: Callable[[], int] | None = None,
        logger: Logger | None = None,
    ) -> None:
        clock = clock or (lambda: int(time.time()))
        self.settings = settings
        self.store = store
        self.pool = pool
        self.gateway = gateway
        self.aggregator = MultiRelayAggregator(pool, timeout=settings.relays.aggregate_timeout)
        self.reconciler = ConfigReconciler(store, self.aggregator, settings, clock=clock)
        self.publisher = RelayPublisher(gateway, pool, self.reconciler, settings)
        self.scheduler = SchedulerClient(settings, gateway)
        self._logger = logger or Logger("site")

    @classmethod
    def from_settings(
        cls,
        settings: SiteSettings,
        *,
        keys: Keys | None = None,
        backend: StorageBackend | None = None,
        pool: RelayPool | None = None,
    ) -> Self:
        """Build a site with the nostr-sdk relay pool and file-backed storage."""
        identity = Identity.from_keys(keys) if keys is not None else None
        store = ConfigStore(backend or JsonFileStorage(settings.storage.path), settings.storage.key)
        return cls(settings, store, pool or ClientRelayPool(), SignerGateway(identity))

    # -- Lifecycle ----------------------------------------------------------

    async def open(self) -> ConfigSnapshot:
        """Load the persisted snapshot (a corrupt one is discarded)."""
        snapshot = await self.store.open()
        self._logger.info("site_opened", key=self.store.key, pubkey=self.gateway.pubkey)
        return snapshot

    async def close(self) -> None:
        close = getattr(self.pool, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    def set_identity(self, identity: Identity | None) -> None:
        """Switch the user and re-arm the per-session sync guards."""
        self.gateway.set_identity(identity)
        self.reconciler.reset_session()

    # -- Configuration ------------------------------------------------------

    def get_config(self) -> ConfigSnapshot:
        """The effective configuration (defaults merged with the snapshot)."""
        return self.reconciler.resolve()

    async def update_config(
        self, updater: Callable[[ConfigSnapshot], ConfigSnapshot]
    ) -> ConfigSnapshot:
        """Apply *updater* to the persisted snapshot and return the effective config."""
        await self.store.update(updater)
        return self.get_config()

    async def sync(self) -> dict[str, SyncOutcome]:
        return await self.reconciler.sync(self.gateway.pubkey)

    async def save_site_config(
        self,
        site: SiteConfig | dict[str, Any],
        navigation: list[NavigationItem] | None = None,
    ) -> PublishJob:
        """Publish a new controller site configuration and apply it locally.

        The event carries the whole effective site configuration with the
        edit merged in, stamped with the current time, and goes to the
        default publish relays. The local snapshot is updated once every
        target settled, whatever the individual outcomes.

        Raises:
            NotAuthenticatedError: If there is no identity to sign with.
        """
        effective = self.get_config()
        merged = (effective.site_config or SiteConfig()).merged_with(site)
        nav = navigation if navigation is not None else (effective.navigation or [])
        stamp = self.reconciler.now()

        job = await self.publisher.dispatch(encode_site_config(merged, nav, updated_at=stamp))
        await self.reconciler.apply_local_edit(site, navigation, updated_at=stamp)
        self._logger.info(
            "site_config_saved",
            id=job.event.id,
            succeeded=job.report.success_count if job.report else 0,
        )
        return job

    # -- Relays -------------------------------------------------------------

    async def publish(
        self, draft: EventDraft, relays: Iterable[str] | None = None
    ) -> SignedEvent:
        return await self.publisher.publish(draft, relays)

    async def dispatch(
        self, draft: EventDraft, relays: Iterable[str] | None = None
    ) -> PublishJob:
        return await self.publisher.dispatch(draft, relays)

    async def query_aggregate(
        self,
        filters: Sequence[EventFilter],
        endpoints: Iterable[RelayEndpoint | str] | None = None,
    ) -> list[SignedEvent]:
        """Query *endpoints* (default: the read relays) and union the results."""
        targets = endpoints if endpoints is not None else self.reconciler.read_relays()
        return await self.aggregator.query(filters, targets)
