"""
Prometheus metrics for the flash arbitrage engine.

Components never talk to prometheus_client directly. They hand plain event
dicts to a ``MetricsSink``; ``EngineMetrics`` turns those events into
counters and also serves them over HTTP.
"""

import logging
from typing import Any, Callable, Dict, Optional, Protocol

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from .network.rpc_client import HealthStatus
from .utils import safe_json_dump

logger = logging.getLogger(__name__)

_HEALTH_VALUES = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.CRITICAL: 2,
}


class MetricsSink(Protocol):
    """Receives engine events; implementations must not block or raise."""

    def record(self, event: Dict[str, Any]) -> None:
        ...


class LoggingEventSink:
    """Writes every event as a ``METRIC_EVENT`` log line."""

    def __init__(self, level: int = logging.DEBUG):
        self.level = level

    def record(self, event: Dict[str, Any]) -> None:
        logger.log(self.level, f"METRIC_EVENT: {safe_json_dump(event)}")


class EngineMetrics:
    """
    Prometheus counters for opportunities, pipeline transitions, simulations,
    submissions and decoded swaps, plus quote latency and connection health.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        health_source: Optional[Callable[[], HealthStatus]] = None,
    ):
        """Initialize metrics with custom registry or default"""
        self.registry = registry or REGISTRY
        self._health_source = health_source
        self._initialize_metrics()

        self._app = None
        self._runner = None
        self._site = None

    def _initialize_metrics(self):
        self.opportunities_total = Counter(
            "flash_arbitrage_opportunities_total",
            "Opportunities handed to the execution pipeline",
            ["source"],
            registry=self.registry,
        )
        self.pipeline_transitions_total = Counter(
            "flash_arbitrage_pipeline_transitions_total",
            "Opportunity state transitions",
            ["state"],
            registry=self.registry,
        )
        self.simulations_total = Counter(
            "flash_arbitrage_simulations_total",
            "Bundle simulations by outcome",
            ["outcome"],
            registry=self.registry,
        )
        self.submissions_total = Counter(
            "flash_arbitrage_submissions_total",
            "Relay submissions by outcome",
            ["outcome"],
            registry=self.registry,
        )
        self.decoded_swaps_total = Counter(
            "flash_arbitrage_decoded_swaps_total",
            "Pending swaps decoded from the mempool",
            ["dex"],
            registry=self.registry,
        )
        self.quote_latency_seconds = Histogram(
            "flash_arbitrage_quote_latency_seconds",
            "Latency of a single DEX quote",
            ["dex"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
            registry=self.registry,
        )
        self.rpc_health = Gauge(
            "flash_arbitrage_rpc_health",
            "Connection health (0 healthy, 1 degraded, 2 critical)",
            ["component"],
            registry=self.registry,
        )

    def record(self, event: Dict[str, Any]) -> None:
        """Dispatch a sink event onto the matching metric; unknown events are ignored."""
        kind = event.get("event")
        if kind == "pipeline_transition":
            self.pipeline_transitions_total.labels(state=event["state"]).inc()
        elif kind == "opportunity":
            self.opportunities_total.labels(source=event.get("source", "unknown")).inc()
        elif kind == "simulation":
            self.simulations_total.labels(outcome=event["outcome"]).inc()
        elif kind == "submission":
            self.submissions_total.labels(outcome=event["outcome"]).inc()
        elif kind == "swap_decoded":
            self.decoded_swaps_total.labels(dex=event.get("dex", "unknown")).inc()
        elif kind == "health":
            self.set_health(event.get("component", "rpc"), HealthStatus(event["status"]))

    def observe_quote_latency(self, dex: str, seconds: float) -> None:
        self.quote_latency_seconds.labels(dex=dex).observe(seconds)

    def set_health(self, component: str, status: HealthStatus) -> None:
        self.rpc_health.labels(component=component).set(_HEALTH_VALUES[status])

    def bind_health(self, source: Callable[[], HealthStatus]) -> None:
        """Serve ``source()`` on /health."""
        self._health_source = source

    async def start_server(
        self, port: int = 8000, host: str = "0.0.0.0", path: str = "/metrics"
    ) -> bool:
        """Start Prometheus metrics HTTP server"""
        try:
            self._app = web.Application()
            self._app.router.add_get(path, self._metrics_handler)
            self._app.router.add_get("/health", self._health_handler)

            self._runner = web.AppRunner(self._app)
            await self._runner.setup()

            self._site = web.TCPSite(self._runner, host, port)
            await self._site.start()

            logger.info(f"Prometheus metrics server started on http://{host}:{port}{path}")
            return True
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False

    async def stop_server(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("Metrics server stopped")

    async def _metrics_handler(self, request):
        output = generate_latest(self.registry)
        # aiohttp rejects a charset inside content_type
        content_type = CONTENT_TYPE_LATEST.split(";")[0]
        return web.Response(text=output.decode("utf-8"), content_type=content_type)

    async def _health_handler(self, request):
        status = self._health_source() if self._health_source else HealthStatus.HEALTHY
        return web.json_response(
            {"status": status.value, "service": "flash_arbitrage_metrics"},
            status=503 if status is HealthStatus.CRITICAL else 200,
        )


class FanOutSink:
    """Forwards each event to several sinks, isolating their failures."""

    def __init__(self, *sinks: MetricsSink):
        self.sinks = list(sinks)

    def record(self, event: Dict[str, Any]) -> None:
        for sink in self.sinks:
            try:
                sink.record(event)
            except Exception as e:
                logger.warning(f"Metrics sink {type(sink).__name__} failed: {e}")

