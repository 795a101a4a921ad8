"""
Prometheus metrics collection and HTTP exposition.

Module-level metric objects (singletons, thread-safe) shared by every
component. Recording a metric never affects control flow: the helpers below
only increment or observe.

The ``MetricsServer`` exposes an aiohttp ``/metrics`` endpoint for scraping
while ``relaysite watch`` keeps reconciling in the background.

Architecture:
    RELAY_OPERATIONS_TOTAL:     Per-relay publish/query outcomes.
    RELAY_OPERATION_SECONDS:    Per-relay latency histogram.
    CONFIG_SYNC_TOTAL:          Reconciliation outcomes per remote source.
"""

from __future__ import annotations

from typing import Literal

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from pydantic import BaseModel, Field


Operation = Literal["publish", "query"]
Outcome = Literal["success", "failure", "timeout"]
SyncSource = Literal["relay_list", "site_config"]
SyncResult = Literal["applied", "skipped", "failed"]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint."""

    enabled: bool = Field(default=False, description="Expose metrics over HTTP")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

RELAY_OPERATIONS_TOTAL = Counter(
    "relay_operations_total",
    "Per-relay operations by kind and outcome",
    ["operation", "outcome"],
)

RELAY_OPERATION_SECONDS = Histogram(
    "relay_operation_seconds",
    "Duration of a single per-relay operation in seconds",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30),
)

CONFIG_SYNC_TOTAL = Counter(
    "config_sync_total",
    "Configuration reconciliation attempts by source and result",
    ["source", "result"],
)


def record_relay_operation(operation: Operation, outcome: Outcome, elapsed: float) -> None:
    """Count one per-relay operation and observe its latency."""
    RELAY_OPERATIONS_TOTAL.labels(operation=operation, outcome=outcome).inc()
    RELAY_OPERATION_SECONDS.labels(operation=operation).observe(elapsed)


def record_sync(source: SyncSource, result: SyncResult) -> None:
    """Count one reconciliation attempt."""
    CONFIG_SYNC_TOTAL.labels(source=source, result=result).inc()


# ---------------------------------------------------------------------------
# HTTP Server
# ---------------------------------------------------------------------------


class MetricsServer:
    """Async HTTP server exposing a Prometheus-compatible endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        # ... reconcile ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Bind the endpoint; no-op when metrics are disabled.

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        await web.TCPSite(self._runner, self._config.host, self._config.port).start()

    async def stop(self) -> None:
        """Release the bound port. Idempotent."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})
