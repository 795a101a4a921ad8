"""Configuration reconciliation, fan-out publishing, aggregation and signing.

Services are the top layer of the diamond DAG, depending on
[relaysite.core][relaysite.core], [relaysite.nips][relaysite.nips],
[relaysite.utils][relaysite.utils], and [relaysite.models][relaysite.models].

```text
           Site
   /    /    |     \       \
store  reconciler  publisher  scheduler
          |          |    \      /
      aggregator     |    signer
          \          |
           relay pool
```

Attributes:
    ConfigStore: Persisted partial snapshot with serialized updates.
    ConfigReconciler: Converges the snapshot on the user's relay list and
        the controller's site configuration (last writer wins).
    RelayPublisher: Signs once, sends to every target relay concurrently,
        waits for all of them to settle.
    MultiRelayAggregator: Concurrent queries, union deduplicated by id.
    SignerGateway: Signs drafts and mints per-request NIP-98 tokens.
    SchedulerClient: Authenticated client for the scheduled-publishing API.
    Site: Facade wiring all of the above.

Examples:
    ```python
    from relaysite.core import SiteSettings
    from relaysite.services import Site

    async with Site.from_settings(SiteSettings.from_yaml("config/site.yaml")) as site:
        outcomes = await site.sync()
    ```
"""

from .aggregator import MultiRelayAggregator, dedupe_events
from .publisher import JobState, PublishJob, RelayPublisher, SettlementReport, TargetOutcome
from .reconciler import ConfigReconciler, SyncOutcome
from .scheduler import (
    ScheduledPost,
    SchedulerClient,
    SchedulerStats,
    TimeRemaining,
    time_remaining,
)
from .signer import Identity, KeysSigner, Signer, SignerGateway
from .site import Site
from .store import (
    ConfigStore,
    JsonFileStorage,
    MemoryStorage,
    StorageBackend,
    decode_blob,
    encode_blob,
)


__all__ = [
    "ConfigReconciler",
    "ConfigStore",
    "Identity",
    "JobState",
    "JsonFileStorage",
    "KeysSigner",
    "MemoryStorage",
    "MultiRelayAggregator",
    "PublishJob",
    "RelayPublisher",
    "ScheduledPost",
    "SchedulerClient",
    "SchedulerStats",
    "SettlementReport",
    "Signer",
    "SignerGateway",
    "Site",
    "StorageBackend",
    "SyncOutcome",
    "TargetOutcome",
    "TimeRemaining",
    "decode_blob",
    "dedupe_events",
    "encode_blob",
    "time_remaining",
]
