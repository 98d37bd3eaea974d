"""
Unit tests for core.metrics module.

Tests:
- MetricsConfig defaults and validation
- MetricsServer start/stop lifecycle
- Metrics endpoint response format
- start_metrics_server helper function
- Module-level metric objects and their labels
"""

import pytest
from aiohttp import ClientSession
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info
from pydantic import ValidationError

from relaycover.core.metrics import (
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    SESSION_DURATION_SECONDS,
    MetricsConfig,
    MetricsServer,
    start_metrics_server,
)


# ============================================================================
# MetricsConfig Tests
# ============================================================================


class TestMetricsConfig:
    """Tests for MetricsConfig Pydantic model."""

    def test_defaults(self) -> None:
        """Metrics are off by default and bind to localhost."""
        config = MetricsConfig()

        assert config.enabled is False
        assert config.port == 8000
        assert config.host == "127.0.0.1"
        assert config.path == "/metrics"

    def test_port_minimum_validation(self) -> None:
        """Privileged ports are rejected."""
        with pytest.raises(ValidationError):
            MetricsConfig(port=80)

    def test_port_maximum_validation(self) -> None:
        """Ports above 65535 are rejected."""
        with pytest.raises(ValidationError):
            MetricsConfig(port=70000)

    @pytest.mark.parametrize("port", [1024, 9090, 65535])
    def test_valid_ports(self, port: int) -> None:
        """Boundary and common ports are accepted."""
        assert MetricsConfig(port=port).port == port


# ============================================================================
# MetricsServer Tests
# ============================================================================


class TestMetricsServerLifecycle:
    """Tests for MetricsServer start/stop lifecycle."""

    @pytest.mark.asyncio
    async def test_start_disabled_is_noop(self) -> None:
        """start() does nothing when metrics are disabled."""
        server = MetricsServer(MetricsConfig(enabled=False))

        await server.start()

        assert server._runner is None

    @pytest.mark.asyncio
    async def test_start_enabled_creates_runner(self) -> None:
        """start() creates a runner when enabled."""
        server = MetricsServer(MetricsConfig(enabled=True, port=19876))

        try:
            await server.start()
            assert server._runner is not None
        finally:
            await server.stop()
        assert server._runner is None

    @pytest.mark.asyncio
    async def test_stop_without_start_is_safe(self) -> None:
        """stop() is safe without a prior start()."""
        server = MetricsServer(MetricsConfig())
        await server.stop()
        await server.stop()


class TestMetricsServerEndpoint:
    """Tests for the HTTP endpoint."""

    @pytest.mark.asyncio
    async def test_metrics_endpoint_serves_content(self) -> None:
        """The endpoint serves the Prometheus exposition format."""
        config = MetricsConfig(enabled=True, port=19879)
        server = MetricsServer(config)
        SERVICE_COUNTER.labels(service="test", name="sessions_finished").inc()

        try:
            await server.start()
            async with (
                ClientSession() as session,
                session.get(f"http://127.0.0.1:{config.port}/metrics") as resp,
            ):
                assert resp.status == 200
                assert CONTENT_TYPE_LATEST in resp.headers.get("Content-Type", "")
                body = await resp.text()
                assert "relaycover_counter" in body
        finally:
            await server.stop()

    @pytest.mark.asyncio
    async def test_custom_path(self) -> None:
        """The configured path is served and the default one is not."""
        config = MetricsConfig(enabled=True, port=19880, path="/custom/prom")
        server = MetricsServer(config)

        try:
            await server.start()
            async with ClientSession() as session:
                async with session.get(f"http://127.0.0.1:{config.port}/custom/prom") as resp:
                    assert resp.status == 200
                async with session.get(f"http://127.0.0.1:{config.port}/metrics") as resp:
                    assert resp.status == 404
        finally:
            await server.stop()


class TestStartMetricsServer:
    """Tests for the start_metrics_server helper."""

    @pytest.mark.asyncio
    async def test_with_none_config(self) -> None:
        """A missing config means a disabled server."""
        server = await start_metrics_server(None)
        assert server._runner is None
        await server.stop()

    @pytest.mark.asyncio
    async def test_with_enabled_config(self) -> None:
        """An enabled config starts listening immediately."""
        server = await start_metrics_server(MetricsConfig(enabled=True, port=19882))
        try:
            assert server._runner is not None
        finally:
            await server.stop()


# ============================================================================
# Module-level Metrics Tests
# ============================================================================


class TestMetricObjects:
    """Types and labels of the shared metric objects."""

    def test_types(self) -> None:
        """Each shared metric has the expected Prometheus type."""
        assert isinstance(SERVICE_INFO, Info)
        assert isinstance(SERVICE_GAUGE, Gauge)
        assert isinstance(SERVICE_COUNTER, Counter)
        assert isinstance(SESSION_DURATION_SECONDS, Histogram)

    def test_labels(self) -> None:
        """Gauge and counter are keyed by service and name."""
        assert SERVICE_GAUGE._labelnames == ("service", "name")
        assert SERVICE_COUNTER._labelnames == ("service", "name")
        assert SESSION_DURATION_SECONDS._labelnames == ("service",)

    def test_session_timeout_bucket(self) -> None:
        """The default fetch timeout is one of the histogram buckets."""
        assert 7 in SESSION_DURATION_SECONDS._upper_bounds

    def test_gauge_set(self) -> None:
        """Gauges hold the last value set."""
        gauge = SERVICE_GAUGE.labels(service="test", name="followees_analyzed")
        gauge.set(12)
        assert gauge._value.get() == 12

    def test_counter_increment(self) -> None:
        """Counters accumulate increments."""
        counter = SERVICE_COUNTER.labels(service="test", name="relay_failures")
        before = counter._value.get()
        counter.inc(2)
        assert counter._value.get() == before + 2
