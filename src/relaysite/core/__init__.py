"""Core layer: exceptions, logging, metrics, YAML and settings.

Sits in the middle of the diamond DAG -- depends only on
``relaysite.models`` and is depended upon by ``relaysite.services``.

Attributes:
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][relaysite.core.logger.Logger].
    SiteSettings: Operator settings loaded from YAML and the environment.
        See [SiteSettings][relaysite.core.settings.SiteSettings].
    RelaySiteError: Root of the exception hierarchy.
        See [relaysite.core.exceptions][relaysite.core.exceptions].
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.
        See [MetricsServer][relaysite.core.metrics.MetricsServer].
"""

from .exceptions import (
    ConfigCorruptError,
    ConfigDecodeError,
    ConfigurationError,
    ConnectivityError,
    NotAuthenticatedError,
    PublishingError,
    RelayQueryError,
    RelaySiteError,
    RelayTimeoutError,
    SchedulerApiError,
)
from .logger import (
    JsonFormatter,
    Logger,
    StructuredFormatter,
    configure_logging,
    format_kv_pairs,
)
from .metrics import (
    CONFIG_SYNC_TOTAL,
    RELAY_OPERATION_SECONDS,
    RELAY_OPERATIONS_TOTAL,
    MetricsConfig,
    MetricsServer,
    record_relay_operation,
    record_sync,
)
from .settings import (
    RelaysConfig,
    SchedulerConfig,
    SiteSettings,
    StorageConfig,
)
from .yaml import load_yaml


__all__ = [
    "CONFIG_SYNC_TOTAL",
    "RELAY_OPERATIONS_TOTAL",
    "RELAY_OPERATION_SECONDS",
    "ConfigCorruptError",
    "ConfigDecodeError",
    "ConfigurationError",
    "ConnectivityError",
    "JsonFormatter",
    "Logger",
    "MetricsConfig",
    "MetricsServer",
    "NotAuthenticatedError",
    "PublishingError",
    "RelayQueryError",
    "RelaySiteError",
    "RelayTimeoutError",
    "RelaysConfig",
    "SchedulerApiError",
    "SchedulerConfig",
    "SiteSettings",
    "StorageConfig",
    "StructuredFormatter",
    "configure_logging",
    "format_kv_pairs",
    "load_yaml",
    "record_relay_operation",
    "record_sync",
]
