"""
Relay fan-out publishing.

[RelayPublisher][relaysite.services.publisher.RelayPublisher] signs a draft
once and sends the resulting event to every target relay concurrently. The
join waits for every target to acknowledge, fail or time out; individual
failures are recorded per target and never reject the publish. Only a
failure that affects every target equally (no identity to sign with)
propagates.

A [PublishJob][relaysite.services.publisher.PublishJob] moves through

```text
created -> dispatched -> settled
```

and always settles fully: there is no partial terminal state, and the
[SettlementReport][relaysite.services.publisher.SettlementReport] lists
every target exactly once.

Default targets, in priority order with duplicates dropped (first wins):

1. the effective ``default_relay``,
2. the configured fallback relays,
3. the current user's write relays.

Targets are resolved before signing, so a call naming no usable relay is
rejected without producing a signature.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from relaysite.core.exceptions import PublishingError, RelayQueryError, RelayTimeoutError
from relaysite.core.logger import Logger
from relaysite.core.metrics import record_relay_operation
from relaysite.core.settings import SiteSettings
from relaysite.models import EventDraft, SignedEvent
from relaysite.utils.relay import RelayEndpoint, RelayPool
from relaysite.utils.urls import dedupe_urls

from .reconciler import ConfigReconciler
from .signer import SignerGateway


class JobState(StrEnum):
    CREATED = "created"
    DISPATCHED = "dispatched"
    SETTLED = "settled"


@dataclass(frozen=True, slots=True)
class TargetOutcome:
    """How one target relay answered.

    Attributes:
        url: The target relay.
        success: True if the relay acknowledged the event.
        error: Failure description, ``None`` on success.
        elapsed: Seconds from dispatch to settlement for this target.
    """

    url: str
    success: bool
    error: str | None = None
    elapsed: float = 0.0


@dataclass(frozen=True, slots=True)
class SettlementReport:
    """Per-target outcomes of a settled job, in target order."""

    outcomes: tuple[TargetOutcome, ...]

    @property
    def succeeded(self) -> list[str]:
        return [o.url for o in self.outcomes if o.success]

    @property
    def failed(self) -> list[str]:
        return [o.url for o in self.outcomes if not o.success]

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


@dataclass(slots=True)
class PublishJob:
    """One signed event and the relays it is being sent to."""

    event: SignedEvent
    targets: tuple[str, ...]
    state: JobState = JobState.CREATED
    report: SettlementReport | None = field(default=None)


class RelayPublisher:
    """Signs drafts and fans them out to many relays at once.

    Args:
        gateway: Signs drafts as the current identity.
        pool: Resolves relay URLs into endpoints.
        reconciler: Source of the effective configuration for default targets.
        settings: Fallback relays, publish timeout and secure-context origin.
        logger: Structured logger (defaults to ``Logger("publisher")``).
    """

    def __init__(
        self,
        gateway: SignerGateway,
        pool: RelayPool,
        reconciler: ConfigReconciler,
        settings: SiteSettings,
        *,
        logger: Logger | None = None,
    ) -> None:
        self._gateway = gateway
        self._pool = pool
        self._reconciler = reconciler
        self._settings = settings
        self._logger = logger or Logger("publisher")

    def publish_relays(self) -> list[str]:
        """Default publish targets (see module docstring for the order)."""
        config = self._reconciler.resolve()
        site = config.site_config
        default_relay = site.default_relay if site else None
        write_relays = config.relay_metadata.write_urls if config.relay_metadata else []
        return dedupe_urls(
            [default_relay or self._settings.default_relay_url],
            self._settings.relays.fallback,
            write_relays,
        )

    def _prepare(self, draft: EventDraft) -> EventDraft:
        host = self._settings.site_host
        if self._settings.is_secure_context and host and not draft.has_tag("client"):
            return draft.with_tag("client", host)
        return draft

    async def _send_one(self, endpoint: RelayEndpoint, event: SignedEvent) -> TargetOutcome:
        timeout = self._settings.relays.publish_timeout
        start = time.monotonic()
        try:
            async with asyncio.timeout(timeout):
                await endpoint.publish(event, timeout)
        except TimeoutError:
            elapsed = time.monotonic() - start
            record_relay_operation("publish", "timeout", elapsed)
            error = RelayTimeoutError(endpoint.url, f"no acknowledgement after {timeout}s")
            return TargetOutcome(endpoint.url, False, str(error), elapsed)
        except Exception as e:  # Intentionally broad: one relay failing is one failed target
            elapsed = time.monotonic() - start
            record_relay_operation("publish", "failure", elapsed)
            error = RelayQueryError(endpoint.url, str(e) or type(e).__name__)
            return TargetOutcome(endpoint.url, False, str(error), elapsed)
        elapsed = time.monotonic() - start
        record_relay_operation("publish", "success", elapsed)
        return TargetOutcome(endpoint.url, True, None, elapsed)

    async def send(self, event: SignedEvent, relays: Iterable[str]) -> PublishJob:
        """Fan an already signed event out to *relays* and wait for settlement.

        Raises:
            PublishingError: If *relays* contains no usable relay URL.
        """
        targets = dedupe_urls(relays)
        if not targets:
            raise PublishingError("no target relays to publish to")
        job = PublishJob(event=event, targets=tuple(targets))

        endpoints = [self._pool.endpoint(url) for url in targets]
        job.state = JobState.DISPATCHED
        results = await asyncio.gather(
            *(self._send_one(endpoint, event) for endpoint in endpoints),
            return_exceptions=True,
        )

        # Re-raise CancelledError: gather(return_exceptions=True) captures it as a result
        for r in results:
            if isinstance(r, asyncio.CancelledError):
                raise r

        outcomes = tuple(
            r if isinstance(r, TargetOutcome) else TargetOutcome(url, False, str(r))
            for url, r in zip(targets, results, strict=True)
        )
        job.report = SettlementReport(outcomes)
        job.state = JobState.SETTLED

        for outcome in outcomes:
            if not outcome.success:
                self._logger.warning("relay_publish_failed", url=outcome.url, error=outcome.error)
        self._logger.info(
            "publish_settled",
            id=event.id,
            kind=event.kind,
            succeeded=job.report.success_count,
            failed=job.report.failure_count,
        )
        return job

    async def dispatch(self, draft: EventDraft, relays: Iterable[str] | None = None) -> PublishJob:
        """Sign *draft* and fan it out, returning the settled job.

        Args:
            draft: Unsigned event. A ``client`` tag is appended in a secure
                context unless one is already present.
            relays: Explicit targets; defaults to
                [publish_relays()][relaysite.services.publisher.RelayPublisher.publish_relays].

        Raises:
            NotAuthenticatedError: If there is no identity to sign with.
            PublishingError: If no target relay could be resolved.
        """
        targets = dedupe_urls(relays) if relays else self.publish_relays()
        if not targets:
            raise PublishingError("no target relays to publish to")
        event = await self._gateway.sign(self._prepare(draft))
        return await self.send(event, targets)

    async def publish(self, draft: EventDraft, relays: Iterable[str] | None = None) -> SignedEvent:
        """Sign, fan out and return the signed event once every target settled.

        Never fails because of individual relays; inspect
        [dispatch()][relaysite.services.publisher.RelayPublisher.dispatch]
        for per-target outcomes.
        """
        job = await self.dispatch(draft, relays)
        return job.event
