r"""relaysite -- Nostr-backed site configuration, publishing and aggregation.

A site's configuration lives on Nostr relays: the controller publishes it
as a kind 30078 event, every user carries a kind 10002 relay list.
relaysite keeps a local snapshot converging on those sources, fans signed
events out to many relays at once, and merges query results from many
relays into one deduplicated view.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
              services         Reconciler, publisher, aggregator, signer
             /   |   \
          core  nips  utils    Settings/logging, NIP codecs, relay I/O
             \   |   /
              models           Pure data models (zero I/O)
```

Note:
    Top-level imports (``from relaysite import Site``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("relaysite")

__all__ = [
    "ConfigReconciler",
    "ConfigSnapshot",
    "ConfigStore",
    "EventDraft",
    "EventFilter",
    "Logger",
    "MultiRelayAggregator",
    "RelayPublisher",
    "SchedulerClient",
    "SignedEvent",
    "SignerGateway",
    "Site",
    "SiteConfig",
    "SiteSettings",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Logger": ("relaysite.core", "Logger"),
    "SiteSettings": ("relaysite.core", "SiteSettings"),
    "ConfigSnapshot": ("relaysite.models", "ConfigSnapshot"),
    "EventDraft": ("relaysite.models", "EventDraft"),
    "EventFilter": ("relaysite.models", "EventFilter"),
    "SignedEvent": ("relaysite.models", "SignedEvent"),
    "SiteConfig": ("relaysite.models", "SiteConfig"),
    "ConfigReconciler": ("relaysite.services", "ConfigReconciler"),
    "ConfigStore": ("relaysite.services", "ConfigStore"),
    "MultiRelayAggregator": ("relaysite.services", "MultiRelayAggregator"),
    "RelayPublisher": ("relaysite.services", "RelayPublisher"),
    "SchedulerClient": ("relaysite.services", "SchedulerClient"),
    "SignerGateway": ("relaysite.services", "SignerGateway"),
    "Site": ("relaysite.services", "Site"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'relaysite' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
