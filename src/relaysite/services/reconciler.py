"""
Configuration reconciliation.

[ConfigReconciler][relaysite.services.reconciler.ConfigReconciler] keeps the
locally persisted snapshot converging on the distributed sources of truth:

- the **current user's** relay list (kind 10002) drives ``relay_metadata``;
- the **controller's** site configuration (kind 30078,
  ``d = nostr-meetup-site-config``) drives ``site_config`` and ``navigation``.

Each remote value is applied only when its logical timestamp is strictly
newer than the cached one, so relay lag or a slow response never rolls the
site back. Site configuration fields merge key by key: a remote event that
sets ``title`` leaves a cached ``hero_subtitle`` alone.

Precedence of the effective configuration, lowest first:

```text
built-in defaults  <  settings.defaults  <  persisted snapshot
                   <  controller pubkey as primary admin
                   <  operator preferred relay (default_relay)
```

Every failure of a remote source (timeout, unreachable relays, a tag that
does not decode) is absorbed and logged as a warning; callers only ever see
a [SyncOutcome][relaysite.services.reconciler.SyncOutcome].
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any

from relaysite.core.exceptions import ConfigDecodeError
from relaysite.core.logger import Logger
from relaysite.core.metrics import record_sync
from relaysite.core.settings import SiteSettings
from relaysite.models import (
    SITE_CONFIG_IDENTIFIER,
    ConfigSnapshot,
    EventFilter,
    EventKind,
    NavigationItem,
    SignedEvent,
    SiteConfig,
    is_newer,
    newest_event,
)
from relaysite.nips.nip65 import parse_relay_list
from relaysite.nips.nip78 import SiteConfigUpdate, decode_site_config
from relaysite.utils.urls import dedupe_urls

from .aggregator import MultiRelayAggregator
from .store import ConfigStore


class SyncOutcome(StrEnum):
    """Result of one reconciliation attempt for one source."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


class ConfigReconciler:
    """Merges remote configuration into the [ConfigStore][relaysite.services.store.ConfigStore].

    Args:
        store: The persisted snapshot; all writes go through its ``update``.
        aggregator: Runs the remote queries across relays.
        settings: Controller pubkey, preferred relay, timeouts and defaults.
        clock: Returns the current Unix time, used to stamp local writes.
        logger: Structured logger (defaults to ``Logger("reconciler")``).
    """

    def __init__(
        self,
        store: ConfigStore,
        aggregator: MultiRelayAggregator,
        settings: SiteSettings,
        *,
        clock: Callable[[], int] | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._settings = settings
        self._clock = clock or (lambda: int(time.time()))
        self._logger = logger or Logger("reconciler")
        self._site_config_synced = False
        self._relay_list_key: tuple[str, int | None] | None = None

    # -------------------------------------------------------------------------
    # Effective configuration
    # -------------------------------------------------------------------------

    def resolve(self) -> ConfigSnapshot:
        """Merge defaults and the persisted snapshot into the effective configuration.

        ``theme``, ``relay_metadata`` and ``navigation`` are taken whole
        from the highest layer that sets them; ``site_config`` is merged
        field by field.
        """
        defaults = self._settings.default_snapshot()
        cached = self._store.get()

        site = defaults.site_config or SiteConfig()
        if cached.site_config is not None:
            site = site.merged_with(cached.site_config)

        admin_roles = dict(site.admin_roles or {})
        if self._settings.controller_pubkey:
            admin_roles[self._settings.controller_pubkey] = "primary"
        overrides: dict[str, Any] = {"admin_roles": admin_roles}
        if self._settings.preferred_relay:
            overrides["default_relay"] = self._settings.preferred_relay
        site = site.merged_with(overrides)

        return ConfigSnapshot(
            theme=cached.theme or defaults.theme,
            relay_metadata=cached.relay_metadata or defaults.relay_metadata,
            site_config=site,
            navigation=cached.navigation if cached.navigation is not None else defaults.navigation,
        )

    def now(self) -> int:
        return self._clock()

    def read_relays(self) -> list[str]:
        """The default relay followed by the effective read relays."""
        resolved = self.resolve()
        read = resolved.relay_metadata.read_urls if resolved.relay_metadata else []
        return dedupe_urls([self._settings.default_relay_url], read)

    def _config_relays(self) -> list[str]:
        resolved = self.resolve()
        site = resolved.site_config or SiteConfig()
        read = resolved.relay_metadata.read_urls if resolved.relay_metadata else []
        return dedupe_urls([site.default_relay], site.publish_relays or [], read)

    # -------------------------------------------------------------------------
    # Relay list
    # -------------------------------------------------------------------------

    async def sync_relay_list(self, user_pubkey: str) -> SyncOutcome:
        """Apply the current user's newest relay list if strictly newer.

        Re-runs only when the user or the cached ``updated_at`` changed since
        the last completed run. An event without any ``r`` tag never
        replaces a cached list.
        """
        cached = self._store.get().relay_metadata
        key = (user_pubkey, cached.updated_at if cached else None)
        if key == self._relay_list_key:
            return SyncOutcome.SKIPPED

        try:
            events = await self._aggregator.query(
                [EventFilter(kinds=(EventKind.RELAY_LIST,), authors=(user_pubkey,), limit=1)],
                self.read_relays(),
                timeout=self._settings.relays.query_timeout,
            )
            newest = newest_event(e for e in events if e.pubkey == user_pubkey)
            outcome = SyncOutcome.SKIPPED
            if newest is not None:
                outcome = await self._apply_relay_list(newest)
        except Exception as e:  # Intentionally broad: a failed source means "no update"
            self._logger.warning("relay_list_sync_failed", pubkey=user_pubkey, error=str(e))
            record_sync("relay_list", "failed")
            return SyncOutcome.FAILED

        cached = self._store.get().relay_metadata
        self._relay_list_key = (user_pubkey, cached.updated_at if cached else None)
        record_sync("relay_list", outcome.value)
        return outcome

    async def _apply_relay_list(self, event: SignedEvent) -> SyncOutcome:
        metadata = parse_relay_list(event)
        if not metadata.relays:
            self._logger.info("relay_list_empty", pubkey=event.pubkey)
            return SyncOutcome.SKIPPED

        applied = False

        def merge(current: ConfigSnapshot) -> ConfigSnapshot:
            nonlocal applied
            local = current.relay_metadata.updated_at if current.relay_metadata else None
            if not is_newer(metadata.updated_at, local):
                applied = False
                return current
            applied = True
            return current.replace(relay_metadata=metadata)

        await self._store.update(merge)
        if applied:
            self._logger.info(
                "relay_list_applied", relays=len(metadata.relays), updated_at=metadata.updated_at
            )
            return SyncOutcome.APPLIED
        return SyncOutcome.SKIPPED

    # -------------------------------------------------------------------------
    # Site configuration
    # -------------------------------------------------------------------------

    async def sync_site_config(self) -> SyncOutcome:
        """Apply the controller's newest site configuration if strictly newer.

        Succeeds at most once per session (see
        [reset_session()][relaysite.services.reconciler.ConfigReconciler.reset_session]).
        When the operator's preferred relay differs from the cached
        ``default_relay``, the override is written with a fresh ``updated_at``
        and the remote comparison is skipped for this call.
        """
        if self._site_config_synced:
            return SyncOutcome.SKIPPED
        controller = self._settings.controller_pubkey
        if not controller:
            self._logger.debug("site_config_sync_disabled", reason="no controller pubkey")
            return SyncOutcome.SKIPPED

        if await self._apply_preferred_relay():
            record_sync("site_config", "applied")
            return SyncOutcome.APPLIED

        try:
            events = await self._aggregator.query(
                [
                    EventFilter(
                        kinds=(EventKind.APP_DATA,),
                        authors=(controller,),
                        identifiers=(SITE_CONFIG_IDENTIFIER,),
                        limit=1,
                    )
                ],
                self._config_relays(),
                timeout=self._settings.relays.query_timeout,
            )
            newest = newest_event(
                e
                for e in events
                if e.pubkey == controller and e.identifier == SITE_CONFIG_IDENTIFIER
            )
            if newest is None:
                self._logger.info("site_config_not_found", controller=controller)
                record_sync("site_config", "skipped")
                return SyncOutcome.SKIPPED
            outcome = await self._apply_site_config(self._decode(newest))
        except Exception as e:  # Intentionally broad: a failed source means "no update"
            self._logger.warning("site_config_sync_failed", controller=controller, error=str(e))
            record_sync("site_config", "failed")
            return SyncOutcome.FAILED

        self._site_config_synced = True
        record_sync("site_config", outcome.value)
        return outcome

    def _decode(self, event: SignedEvent) -> SiteConfigUpdate:
        try:
            update = decode_site_config(event)
        except ValueError as e:
            raise ConfigDecodeError("event", str(e)) from e
        for failure in update.errors:
            error = ConfigDecodeError(failure.field, failure.reason)
            self._logger.warning("site_config_field_skipped", field=error.field, error=str(error))
        return update

    async def _apply_preferred_relay(self) -> bool:
        preferred = self._settings.preferred_relay
        if not preferred:
            return False
        cached = self._store.get().site_config
        if cached is not None and cached.default_relay == preferred:
            return False

        stamp = self._clock()

        def override(current: ConfigSnapshot) -> ConfigSnapshot:
            site = current.site_config or SiteConfig()
            return current.replace(
                site_config=site.merged_with({"default_relay": preferred, "updated_at": stamp})
            )

        await self._store.update(override)
        self._logger.info("preferred_relay_applied", relay=preferred, updated_at=stamp)
        return True

    async def _apply_site_config(self, update: SiteConfigUpdate) -> SyncOutcome:
        fields = dict(update.fields)
        if self._settings.preferred_relay:
            fields["default_relay"] = self._settings.preferred_relay
        fields["updated_at"] = update.updated_at
        applied = False

        def merge(current: ConfigSnapshot) -> ConfigSnapshot:
            nonlocal applied
            site = current.site_config or SiteConfig()
            if not is_newer(update.updated_at, site.updated_at):
                applied = False
                return current
            applied = True
            changes: dict[str, Any] = {"site_config": site.merged_with(fields)}
            if update.navigation is not None:
                changes["navigation"] = update.navigation
            return current.replace(**changes)

        await self._store.update(merge)
        if applied:
            self._logger.info(
                "site_config_applied",
                updated_at=update.updated_at,
                fields=len(update.fields),
                navigation=update.navigation is not None,
            )
            return SyncOutcome.APPLIED
        self._logger.info("site_config_not_newer", updated_at=update.updated_at)
        return SyncOutcome.SKIPPED

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def sync(self, user_pubkey: str | None = None) -> dict[str, SyncOutcome]:
        """Run every applicable source once.

        Returns:
            ``{"site_config": ..., "relay_list": ...}``; ``relay_list`` is
            only present when a user pubkey is given.
        """
        outcomes = {"site_config": await self.sync_site_config()}
        if user_pubkey:
            outcomes["relay_list"] = await self.sync_relay_list(user_pubkey)
        return outcomes

    def reset_session(self) -> None:
        """Forget the per-session guards (e.g. on login/logout)."""
        self._site_config_synced = False
        self._relay_list_key = None

    async def apply_local_edit(
        self,
        site_fields: SiteConfig | Mapping[str, Any] | None = None,
        navigation: list[NavigationItem] | None = None,
        *,
        updated_at: int | None = None,
    ) -> ConfigSnapshot:
        """Merge a local edit, stamping ``site_config.updated_at`` with now
        (or *updated_at*).

        The fresh stamp makes the edit win over any remote event published
        before it.
        """
        if isinstance(site_fields, SiteConfig):
            fields = site_fields.fields()
        else:
            fields = dict(site_fields or {})
        fields["updated_at"] = updated_at if updated_at is not None else self._clock()

        def edit(current: ConfigSnapshot) -> ConfigSnapshot:
            site = (current.site_config or SiteConfig()).merged_with(fields)
            changes: dict[str, Any] = {"site_config": site}
            if navigation is not None:
                changes["navigation"] = navigation
            return current.replace(**changes)

        snapshot = await self._store.update(edit)
        self._logger.info("local_edit_applied", updated_at=fields["updated_at"])
        return snapshot
