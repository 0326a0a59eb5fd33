"""
Engine wiring.

Builds every component from an ``EngineConfig`` and runs two loops: a
periodic route scan and the mempool back-run watcher. Both feed the same
execution pipeline, which refuses to submit while connection health is
CRITICAL.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from .bundle import BundleOrchestrator, ConversionVenue, FlashloanSpec
from .config_loader import resolve_secret
from .config_schema import EngineConfig
from .dex.adapters import build_adapters
from .dex.encoders import default_encoders
from .dex.registry import RouterRegistry
from .exceptions import (
    ConfigurationError,
    ConstructionError,
    FlashArbitrageError,
    InsufficientProfit,
    ValidationError,
)
from .execution import (
    CircuitBreaker,
    ExecutionPipeline,
    ExecutionResult,
    Opportunity,
    RelayClient,
    SimulationClient,
    TransactionSigner,
    WindowRateLimiter,
)
from .mempool import BoundedSeenCache, MempoolDecoder, MempoolWatcher, TTLCache
from .metrics import EngineMetrics, FanOutSink, LoggingEventSink
from .network import HealthStatus, ReconnectingSubscription, ResilientRpcClient
from .quoting import QuoteAggregator
from .routing import GasCostModel, RouteExplorer
from .token_feed import TokenUniverseFeed
from .types import DecodedSwap, DexKind, Route, TokenInfo
from .utils import bps_share, format_duration, get_current_timestamp

logger = logging.getLogger(__name__)

GWEI = 10**9

_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.CRITICAL: 2}


class ArbitrageEngine:
    def __init__(
        self,
        config: EngineConfig,
        *,
        private_key: Optional[str] = None,
        dry_run: Optional[bool] = None,
        metrics=None,
        rpc=None,
        simulator=None,
        relay=None,
        subscription=None,
        token_feed=None,
    ):
        """
        Args:
            config: Validated engine configuration
            private_key: Searcher key; without one the engine runs dry
            dry_run: Overrides ``execution.dry_run`` when given
            metrics: EngineMetrics (or any sink with ``observe_quote_latency``)
            rpc: Pre-built RPC client, mainly for tests
            simulator: Pre-built simulation client
            relay: Pre-built relay client
            subscription: Pre-built pending-transaction subscription
            token_feed: Pre-built token universe feed
        """
        self.config = config
        net = config.network
        search = config.search
        execution = config.execution

        self.dry_run = execution.dry_run if dry_run is None else dry_run
        if private_key is None and not self.dry_run:
            logger.warning("No private key available; forcing dry-run")
            self.dry_run = True

        self.metrics = metrics
        self.sink = LoggingEventSink()
        if metrics is not None:
            self.sink = FanOutSink(metrics, self.sink)
        if isinstance(metrics, EngineMetrics):
            metrics.bind_health(self.health)

        self.rpc = rpc or ResilientRpcClient(net.rpc_urls, request_timeout=net.request_timeout)

        self.registry = RouterRegistry.with_defaults()
        for dex in config.dexes:
            self.registry.register(dex.router, dex.dex_kind, coins=dex.coins)

        self.aggregator = QuoteAggregator(
            build_adapters(config.dexes, self.rpc),
            max_concurrency=search.quote_concurrency,
            quote_timeout=search.quote_timeout,
            metrics=metrics,
        )
        gas_override = (
            int(search.gas_price_gwei * GWEI) if search.gas_price_gwei is not None else None
        )
        self.gas_model = GasCostModel(
            wrapped_native=config.tokens.wrapped_native,
            rpc=self.rpc,
            price_source=self.aggregator,
            base_gas=search.base_gas,
            per_hop_gas=search.per_hop_gas,
            gas_price_override=gas_override,
        )
        self.explorer = RouteExplorer(
            self.aggregator,
            self.gas_model,
            min_profit_threshold=search.min_profit_threshold,
            branch_concurrency=search.branch_concurrency,
        )

        conversion = None
        if execution.conversion is not None:
            conversion = ConversionVenue(
                DexKind(execution.conversion.kind),
                execution.conversion.router,
                execution.conversion.fee,
            )
        self.orchestrator = BundleOrchestrator(
            default_encoders(self.registry),
            executor_address=execution.executor_address,
            tip_bps=execution.tip_bps,
            slippage_bps=execution.slippage_bps,
            deadline_seconds=execution.deadline_seconds,
            conversion=conversion,
        )

        if private_key:
            self.signer = TransactionSigner(private_key, net.chain_id)
        else:
            self.signer = TransactionSigner.throwaway(net.chain_id)

        self.simulator = simulator or SimulationClient(
            execution.simulation_url,
            network_id=net.chain_id,
            access_key=resolve_secret(execution.simulation_access_key_env),
        )
        self.relay = relay
        if self.relay is None and execution.relay_urls:
            self.relay = RelayClient(
                execution.relay_urls,
                auth_key=resolve_secret(execution.relay_auth_key_env),
            )
        if self.relay is None and not self.dry_run:
            raise ConfigurationError(
                "Live mode needs at least one relay; set execution.relay_urls or run dry",
                {"relay_urls": execution.relay_urls},
            )

        self.pipeline = ExecutionPipeline(
            self.rpc,
            self.simulator,
            self.relay,
            self.signer,
            self.gas_model,
            executor_address=execution.executor_address,
            min_profit_threshold=search.min_profit_threshold,
            max_gas_price_wei=int(execution.max_gas_price_gwei * GWEI),
            priority_fee_wei=int(execution.priority_fee_gwei * GWEI),
            gas_limit=execution.gas_limit,
            gas_limit_margin_bps=execution.gas_limit_margin_bps,
            validate_breaker=CircuitBreaker(
                "validate",
                max_failures=execution.breaker_max_failures,
                reset_timeout=execution.breaker_reset_timeout,
                excluded_exceptions=(InsufficientProfit, ValidationError),
            ),
            submit_breaker=CircuitBreaker(
                "submit",
                max_failures=execution.breaker_max_failures,
                reset_timeout=execution.breaker_reset_timeout,
            ),
            rate_limiter=WindowRateLimiter(execution.rate_limit, execution.rate_window),
            metrics_sink=self.sink,
            dry_run=self.dry_run,
            health_check=self.health,
        )

        self.subscription = subscription
        if self.subscription is None and config.mempool.enabled and net.ws_urls:
            self.subscription = ReconnectingSubscription(
                net.ws_urls,
                max_retries=net.max_reconnect_attempts,
                base_delay=net.reconnect_base_delay,
                max_delay=net.reconnect_max_delay,
                heartbeat_interval=net.heartbeat_interval,
            )
        self.watcher = None
        if self.subscription is not None:
            self.watcher = MempoolWatcher(
                self.subscription,
                self.rpc,
                MempoolDecoder(self.registry, config.tokens.wrapped_native),
                self.handle_decoded_swap,
                seen_cache=BoundedSeenCache(config.mempool.seen_cache_size),
                fetch_timeout=config.mempool.fetch_timeout,
                metrics_sink=self.sink,
            )

        self.token_feed = token_feed
        if self.token_feed is None and config.tokens.feed_url:
            self.token_feed = TokenUniverseFeed(
                config.tokens.feed_url,
                top_n=config.tokens.feed_top_n,
                timeout=config.tokens.feed_timeout,
            )
        self._feed_cache: TTLCache = TTLCache(ttl=300.0, max_entries=1)

        self.base_token = TokenInfo(
            config.tokens.base.address, config.tokens.base.symbol, config.tokens.base.decimals
        )
        self._known_tokens: Dict[str, TokenInfo] = {self.base_token.address.lower(): self.base_token}
        for entry in config.tokens.universe:
            token = TokenInfo(entry.address, entry.symbol, entry.decimals)
            self._known_tokens.setdefault(token.address.lower(), token)

        self._stop = asyncio.Event()

        logger.info(
            f"Engine ready: {len(self.aggregator.adapters)} quoting adapters, "
            f"{len(self.registry)} known routers, mempool={'on' if self.watcher else 'off'}, "
            f"dry_run={self.dry_run}"
        )

    def health(self) -> HealthStatus:
        """Worst of the RPC client and mempool subscription health."""
        statuses = [self.rpc.health]
        if self.subscription is not None:
            statuses.append(self.subscription.health)
        return max(statuses, key=lambda s: _SEVERITY[s])

    @property
    def flashloan(self) -> FlashloanSpec:
        execution = self.config.execution
        return FlashloanSpec(execution.flashloan_provider, token=execution.flashloan_token)

    async def verify_chain(self) -> None:
        """
        Raises:
            ConfigurationError: If the node serves a different chain
        """
        chain_id = await self.rpc.chain_id()
        if chain_id != self.config.network.chain_id:
            raise ConfigurationError(
                f"RPC chain id {chain_id} does not match configured "
                f"{self.config.network.chain_id}"
            )

    async def candidate_tokens(self) -> List[TokenInfo]:
        """Configured universe plus feed tokens, refreshed every few minutes."""
        tokens = [t for t in self._known_tokens.values() if t != self.base_token]
        if self.token_feed is None:
            return tokens

        fed = self._feed_cache.get("tokens")
        if fed is None:
            fed = await self.token_feed.fetch()
            if fed:
                self._feed_cache.set("tokens", fed)
                for token in fed:
                    self._known_tokens.setdefault(token.address.lower(), token)

        seen = {t.address.lower() for t in tokens}
        return tokens + [t for t in fed if t.address.lower() not in seen]

    async def scan_once(self) -> Optional[ExecutionResult]:
        """Search for the best loop and run it through the pipeline."""
        started = get_current_timestamp()
        search = self.config.search
        route = await self.explorer.find_best_route(
            self.base_token, await self.candidate_tokens(), search.amount_in, search.max_hops
        )
        self._record({"event": "health", "component": "rpc", "status": self.rpc.health.value})
        if route is None:
            logger.debug(f"Scan found nothing in {format_duration(get_current_timestamp() - started)}")
            return None
        return await self.execute_route(route)

    async def execute_route(self, route: Route) -> Optional[ExecutionResult]:
        try:
            bundle = self.orchestrator.build_bundle(route, self.flashloan)
        except ConstructionError as e:
            logger.warning(f"Cannot build bundle for {route.describe()}: {e}")
            return None

        tip = bps_share(max(route.net_profit, 0), self.orchestrator.tip_bps)
        opportunity = Opportunity(
            bundle=bundle,
            expected_profit=route.net_profit,
            profit_token=route.base_token,
            source="scanner",
            route=route,
            expected_gross=route.gross_profit - tip,
        )
        self._record({"event": "opportunity", "source": opportunity.source})
        return await self.pipeline.execute(opportunity)

    async def handle_decoded_swap(self, swap: DecodedSwap) -> Optional[ExecutionResult]:
        """Back-run a decoded victim swap on its own DEX."""
        flashloan = FlashloanSpec(
            self.config.execution.flashloan_provider, amount=self.config.mempool.backrun_amount
        )
        try:
            bundle = self.orchestrator.build_bundle(swap, flashloan)
        except ConstructionError as e:
            logger.debug(f"Skipping swap {swap.tx_hash}: {e}")
            return None

        opportunity = Opportunity(
            bundle=bundle,
            expected_profit=0,
            profit_token=self._token_info(swap.token_out),
            source="mempool",
            decoded_swap=swap,
        )
        self._record({"event": "opportunity", "source": opportunity.source})
        return await self.pipeline.execute(opportunity)

    def _token_info(self, address: str) -> TokenInfo:
        known = self._known_tokens.get(address.lower())
        return known if known is not None else TokenInfo(address, symbol="")

    async def run_scanner(self) -> None:
        interval = self.config.search.scan_interval
        while not self._stop.is_set():
            try:
                await self.scan_once()
            except FlashArbitrageError as e:
                logger.error(f"Scan failed: {type(e).__name__}: {e}")
            except Exception:
                logger.exception("Scan crashed; continuing with the next scan")
            await self._sleep_until_stopped(interval)

    async def run_mempool(self) -> None:
        """Watch the mempool; after reconnect exhaustion wait, then start over."""
        if self.watcher is None:
            return
        recovery_delay = self.config.network.reconnect_max_delay
        while not self._stop.is_set():
            try:
                await self.watcher.run()
            except FlashArbitrageError as e:
                logger.error(f"Mempool watcher failed: {type(e).__name__}: {e}")
            except Exception:
                logger.exception("Mempool watcher crashed")
            self._record(
                {"event": "health", "component": "mempool", "status": self.subscription.health.value}
            )
            logger.warning(
                f"Mempool watcher stopped; retrying in {recovery_delay:.0f}s "
                f"(stats={self.watcher.stats})"
            )
            await self._sleep_until_stopped(recovery_delay)
            self.subscription.reset()

    async def run(self, once: bool = False) -> None:
        await self.verify_chain()
        if once:
            await self.scan_once()
            return

        if self.metrics is not None and self.config.metrics.enabled:
            await self.metrics.start_server(self.config.metrics.port, self.config.metrics.host)

        tasks = [asyncio.create_task(self.run_scanner(), name="scanner")]
        if self.watcher is not None:
            tasks.append(asyncio.create_task(self.run_mempool(), name="mempool"))
        stop_waiter = asyncio.create_task(self._stop.wait(), name="stop")
        try:
            done, _ = await asyncio.wait(
                [stop_waiter, *tasks], return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                if task is stop_waiter or task.cancelled():
                    continue
                error = task.exception()
                if error is not None:
                    logger.error(f"Task {task.get_name()} died: {type(error).__name__}: {error}")
                    raise error
                logger.warning(f"Task {task.get_name()} exited before stop was requested")
        finally:
            for task in (stop_waiter, *tasks):
                task.cancel()
            await asyncio.gather(stop_waiter, *tasks, return_exceptions=True)

    def stop(self) -> None:
        logger.info("Stop requested")
        self._stop.set()

    async def close(self) -> None:
        for component in (self.rpc, self.simulator, self.relay, self.subscription, self.token_feed):
            if component is not None:
                await component.close()
        if self.metrics is not None and self.config.metrics.enabled:
            await self.metrics.stop_server()

    async def _sleep_until_stopped(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _record(self, event: dict) -> None:
        try:
            self.sink.record(event)
        except Exception as e:
            logger.warning(f"Metrics sink failed on {event.get('event')}: {e}")
