"""
Prometheus metrics collection and HTTP exposition.

Module-level metric objects are shared process-wide. The aggregation
driver records session outcomes, relay failures and accepted events
through its ``inc_counter()`` / ``set_gauge()`` helpers, which are no-ops
unless [MetricsConfig][relaycover.core.metrics.MetricsConfig] enables
them.

``MetricsServer`` exposes ``/metrics`` over aiohttp for the long-running
CLI mode.

Architecture:
    SERVICE_INFO:       Static metadata set once at startup.
    SERVICE_GAUGE:      Point-in-time values (followees analyzed).
    SERVICE_COUNTER:    Cumulative totals (sessions, failures, events).
    SESSION_DURATION_SECONDS: Histogram of subscription session latency.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field


class MetricsConfig(BaseModel):
    """Configuration for metrics recording and the ``/metrics`` endpoint."""

    enabled: bool = Field(default=False, description="Enable metrics collection")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


SERVICE_INFO = Info(
    "relaycover",
    "relaycover process information",
)

SESSION_DURATION_SECONDS = Histogram(
    "relaycover_session_duration_seconds",
    "Duration of a relay subscription session in seconds",
    ["service"],
    buckets=(0.1, 0.5, 1, 2, 5, 7, 10, 30),
)

SERVICE_GAUGE = Gauge(
    "relaycover_gauge",
    "Point-in-time values",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "relaycover_counter",
    "Cumulative totals",
    ["service", "name"],
)


class MetricsServer:
    """Async HTTP server exposing a Prometheus-compatible endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        # ... analysis runs ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for scrape requests (no-op when disabled).

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        """Stop the HTTP server. Safe to call if it was never started."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        output = generate_latest()
        return web.Response(body=output, headers={"Content-Type": CONTENT_TYPE_LATEST})


async def start_metrics_server(config: MetricsConfig | None = None) -> MetricsServer:
    """Create and start a metrics server; callers must ``stop()`` it."""
    server = MetricsServer(config or MetricsConfig())
    await server.start()
    return server
