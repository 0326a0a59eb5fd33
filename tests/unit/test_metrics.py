"""
Unit tests for Prometheus metrics and event sinks
"""

import logging

import aiohttp.test_utils
import pytest
from aiohttp import web
from prometheus_client import CollectorRegistry, generate_latest
from unittest.mock import Mock

from flash_arbitrage.metrics import EngineMetrics, FanOutSink, LoggingEventSink
from flash_arbitrage.network.rpc_client import HealthStatus


@pytest.fixture
def test_registry():
    """Create a test-specific registry"""
    return CollectorRegistry()


@pytest.fixture
def metrics(test_registry):
    """Create EngineMetrics instance with test registry"""
    return EngineMetrics(test_registry)


def sample(registry, name, **labels):
    return registry.get_sample_value(name, labels)


class TestEngineMetrics:
    """Test EngineMetrics functionality"""

    def test_initialization(self, metrics, test_registry):
        """Test metrics initialization"""
        assert metrics.registry is test_registry
        output = generate_latest(test_registry).decode("utf-8")
        assert "flash_arbitrage_pipeline_transitions_total" in output
        assert "flash_arbitrage_quote_latency_seconds" in output

    def test_event_dispatch(self, metrics, test_registry):
        """Test that sink events land on the matching counters"""
        metrics.record({"event": "pipeline_transition", "state": "confirmed"})
        metrics.record({"event": "pipeline_transition", "state": "confirmed"})
        metrics.record({"event": "opportunity", "source": "mempool"})
        metrics.record({"event": "simulation", "outcome": "failure"})
        metrics.record({"event": "submission", "outcome": "accepted"})
        metrics.record({"event": "swap_decoded", "dex": "camelot"})

        assert sample(test_registry, "flash_arbitrage_pipeline_transitions_total", state="confirmed") == 2
        assert sample(test_registry, "flash_arbitrage_opportunities_total", source="mempool") == 1
        assert sample(test_registry, "flash_arbitrage_simulations_total", outcome="failure") == 1
        assert sample(test_registry, "flash_arbitrage_submissions_total", outcome="accepted") == 1
        assert sample(test_registry, "flash_arbitrage_decoded_swaps_total", dex="camelot") == 1

    def test_unknown_events_ignored(self, metrics, test_registry):
        """Test that unrecognised events are dropped"""
        metrics.record({"event": "something_else", "state": "x"})
        metrics.record({})
        assert sample(test_registry, "flash_arbitrage_pipeline_transitions_total", state="x") is None

    def test_quote_latency(self, metrics, test_registry):
        """Test latency histogram observations"""
        metrics.observe_quote_latency("sushi", 0.03)
        metrics.observe_quote_latency("sushi", 0.3)

        assert sample(test_registry, "flash_arbitrage_quote_latency_seconds_count", dex="sushi") == 2
        assert sample(
            test_registry, "flash_arbitrage_quote_latency_seconds_bucket", dex="sushi", le="0.05"
        ) == 1

    def test_health_gauge(self, metrics, test_registry):
        """Test health status encoding"""
        metrics.set_health("rpc", HealthStatus.DEGRADED)
        metrics.record({"event": "health", "component": "ws", "status": "critical"})

        assert sample(test_registry, "flash_arbitrage_rpc_health", component="rpc") == 1
        assert sample(test_registry, "flash_arbitrage_rpc_health", component="ws") == 2

    def test_separate_registries(self):
        """Test that two instances with their own registries do not collide"""
        first = EngineMetrics(CollectorRegistry())
        second = EngineMetrics(CollectorRegistry())
        first.record({"event": "swap_decoded", "dex": "curve"})
        assert sample(second.registry, "flash_arbitrage_decoded_swaps_total", dex="curve") is None

    @pytest.mark.asyncio
    async def test_metrics_server(self, metrics):
        """Test metrics HTTP server"""
        success = await metrics.start_server(port=0, host="127.0.0.1")

        if success:
            assert metrics._app is not None
            assert metrics._runner is not None

            await metrics.stop_server()
            assert metrics._runner is None


@pytest.mark.asyncio
async def test_metrics_server_endpoints():
    """Test metrics server HTTP endpoints"""
    metrics = EngineMetrics(CollectorRegistry())
    metrics.record({"event": "submission", "outcome": "rejected"})

    app = web.Application()
    app.router.add_get("/metrics", metrics._metrics_handler)
    app.router.add_get("/health", metrics._health_handler)

    async with aiohttp.test_utils.TestClient(aiohttp.test_utils.TestServer(app)) as client:
        resp = await client.get("/metrics")
        assert resp.status == 200
        text = await resp.text()
        assert 'flash_arbitrage_submissions_total{outcome="rejected"} 1.0' in text

        resp = await client.get("/health")
        assert resp.status == 200
        json_data = await resp.json()
        assert json_data["status"] == "healthy"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, code",
    [
        (HealthStatus.HEALTHY, 200),
        (HealthStatus.DEGRADED, 200),
        (HealthStatus.CRITICAL, 503),
    ],
)
async def test_health_endpoint_reports_bound_source(status, code):
    """Test that /health serves the bound health source"""
    metrics = EngineMetrics(CollectorRegistry())
    metrics.bind_health(lambda: status)

    app = web.Application()
    app.router.add_get("/health", metrics._health_handler)

    async with aiohttp.test_utils.TestClient(aiohttp.test_utils.TestServer(app)) as client:
        resp = await client.get("/health")
        assert resp.status == code
        assert (await resp.json())["status"] == status.value


class TestSinks:
    """Test the logging and fan-out sinks"""

    def test_logging_sink(self, caplog):
        sink = LoggingEventSink(level=logging.INFO)
        with caplog.at_level(logging.INFO, logger="flash_arbitrage.metrics"):
            sink.record({"event": "simulation", "outcome": "success"})
        assert "METRIC_EVENT" in caplog.text
        assert '"outcome": "success"' in caplog.text

    def test_fan_out_isolates_failures(self, test_registry):
        broken = Mock()
        broken.record.side_effect = RuntimeError("down")
        metrics = EngineMetrics(test_registry)
        sink = FanOutSink(broken, metrics)

        sink.record({"event": "swap_decoded", "dex": "camelot"})
        broken.record.assert_called_once()
        assert sample(test_registry, "flash_arbitrage_decoded_swaps_total", dex="camelot") == 1
