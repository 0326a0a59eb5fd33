"""
Simulate-then-submit execution pipeline.

An opportunity moves DISCOVERED -> SIMULATED -> VALIDATED -> SUBMITTED and
ends CONFIRMED (accepted by at least one relay) or REJECTED. Every failure
mode, including unexpected errors, becomes a REJECTED result with a reason;
nothing escapes ``execute`` except cancellation.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..exceptions import (
    CircuitOpenError,
    FlashArbitrageError,
    InsufficientProfit,
    NetworkError,
    RateLimitExceeded,
    SimulationFailure,
    ValidationError,
)
from ..network.rpc_client import HealthStatus
from ..types import Bundle, DecodedSwap, Route, TokenInfo
from ..utils import BPS_DENOMINATOR, format_token_amount, get_logger, safe_json_dump
from .breaker import CircuitBreaker
from .rate_limiter import WindowRateLimiter
from .relay import RelayResponse
from .simulator import SimulationResult

logger = logging.getLogger(__name__)


class OpportunityState(Enum):
    """
    Lifecycle of one opportunity through the pipeline.

    Values:
        DISCOVERED: Found by the scanner or the mempool watcher
        SIMULATED: Simulation succeeded
        VALIDATED: Gas ceiling and re-derived profit checks passed
        SUBMITTED: Sent to the relays
        CONFIRMED: Accepted by at least one relay (not on-chain inclusion)
        REJECTED: Terminal failure, see ``ExecutionResult.reason``
    """

    DISCOVERED = "discovered"
    SIMULATED = "simulated"
    VALIDATED = "validated"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass
class Opportunity:
    bundle: Bundle
    expected_profit: int
    profit_token: TokenInfo
    source: str
    route: Optional[Route] = None
    decoded_swap: Optional[DecodedSwap] = None
    expected_gross: Optional[int] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def __post_init__(self):
        if self.expected_gross is None:
            self.expected_gross = self.expected_profit


@dataclass
class ExecutionResult:
    opportunity_id: str
    state: OpportunityState = OpportunityState.DISCOVERED
    reason: Optional[str] = None
    simulation: Optional[SimulationResult] = None
    validated_profit: Optional[int] = None
    relay_responses: List[RelayResponse] = field(default_factory=list)
    transitions: List[OpportunityState] = field(default_factory=list)
    dry_run: bool = False

    @property
    def accepted(self) -> bool:
        return self.state is OpportunityState.CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "opportunity_id": self.opportunity_id,
            "state": self.state.value,
            "reason": self.reason,
            "gas_used": self.simulation.gas_used if self.simulation else None,
            "simulation_url": self.simulation.simulation_url if self.simulation else None,
            "validated_profit": self.validated_profit,
            "relays": [
                {"relay": r.relay, "accepted": r.accepted, "error": r.error}
                for r in self.relay_responses
            ],
            "transitions": [s.value for s in self.transitions],
            "dry_run": self.dry_run,
        }


class ExecutionPipeline:
    def __init__(
        self,
        rpc,
        simulator,
        relay,
        signer,
        gas_model,
        *,
        executor_address: str,
        min_profit_threshold: int,
        max_gas_price_wei: int,
        priority_fee_wei: int = 0,
        gas_limit: int = 1_500_000,
        gas_limit_margin_bps: int = 2000,
        validate_breaker: Optional[CircuitBreaker] = None,
        submit_breaker: Optional[CircuitBreaker] = None,
        rate_limiter: Optional[WindowRateLimiter] = None,
        metrics_sink=None,
        dry_run: bool = False,
        health_check: Optional[Callable[[], HealthStatus]] = None,
    ):
        """
        Args:
            rpc: ResilientRpcClient (nonce, block number, health)
            simulator: SimulationClient
            relay: RelayClient; unused in dry-run
            signer: TransactionSigner
            gas_model: GasCostModel used for gas price and profit conversion
            executor_address: Contract receiving ``orchestrate``
            min_profit_threshold: Net profit floor in profit-token units
            max_gas_price_wei: Gas price ceiling enforced during validation
            priority_fee_wei: Tip added on top of the current gas price
            gas_limit: Gas limit for the simulation transaction
            gas_limit_margin_bps: Margin applied to simulated gas on submission
            validate_breaker: Breaker around validation
            submit_breaker: Breaker around relay submission
            rate_limiter: Shared limiter keyed by "validate" and "submit"
            metrics_sink: Object with ``record(event)``
            dry_run: Stop at VALIDATED without submitting
            health_check: Connection health source, defaults to ``rpc.health``
        """
        self.rpc = rpc
        self.simulator = simulator
        self.relay = relay
        self.signer = signer
        self.gas_model = gas_model
        self.executor_address = executor_address
        self.min_profit_threshold = min_profit_threshold
        self.max_gas_price_wei = max_gas_price_wei
        self.priority_fee_wei = priority_fee_wei
        self.gas_limit = gas_limit
        self.gas_limit_margin_bps = gas_limit_margin_bps
        self.validate_breaker = validate_breaker or CircuitBreaker(
            "validate", excluded_exceptions=(InsufficientProfit, ValidationError)
        )
        self.submit_breaker = submit_breaker or CircuitBreaker("submit")
        self.rate_limiter = rate_limiter or WindowRateLimiter()
        self._sink = metrics_sink
        self.dry_run = dry_run
        self._health_check = health_check or (lambda: rpc.health)

    async def execute(self, opportunity: Opportunity) -> ExecutionResult:
        """Drive one opportunity to a terminal state."""
        result = ExecutionResult(opportunity.id, dry_run=self.dry_run)
        log = get_logger(__name__, extra={"opportunity": opportunity.id, "source": opportunity.source})
        self._transition(opportunity, result, OpportunityState.DISCOVERED)

        try:
            await self._run(opportunity, result)
        except SimulationFailure as e:
            self._reject(opportunity, result, f"simulation_failed: {e}")
        except InsufficientProfit as e:
            logger.info(
                f"Opportunity {opportunity.id} below threshold: "
                f"profit={e.expected} threshold={e.threshold}"
            )
            self._reject(opportunity, result, "insufficient_profit")
        except RateLimitExceeded as e:
            self._reject(opportunity, result, f"rate_limited: {e.operation}")
        except CircuitOpenError as e:
            self._reject(opportunity, result, f"circuit_open: {e.operation}")
        except ValidationError as e:
            self._reject(opportunity, result, f"validation_failed: {e}")
        except FlashArbitrageError as e:
            log.error(f"Execution failed: {type(e).__name__}: {e}")
            self._reject(opportunity, result, f"{type(e).__name__}: {e}")
        except Exception as e:
            log.exception(f"Unexpected {type(e).__name__} during execution")
            self._reject(opportunity, result, f"internal_error: {type(e).__name__}: {e}")

        logger.info(f"EXECUTION_RESULT: {safe_json_dump(result.to_dict())}")
        return result

    async def _run(self, opportunity: Opportunity, result: ExecutionResult) -> None:
        if self._health_check() is HealthStatus.CRITICAL:
            self._reject(opportunity, result, "connectivity_lost")
            return

        gas_price = await self.gas_model.current_gas_price()
        nonce = await self.rpc.get_transaction_count(self.signer.address, "pending")
        raw = self._sign(opportunity.bundle, nonce, self.gas_limit, gas_price)

        simulation = await self.simulator.simulate(
            [raw], owner=self.executor_address, profit_token=opportunity.profit_token.address
        )
        result.simulation = simulation
        self._record({"event": "simulation", "outcome": "success" if simulation.success else "failure"})
        if not simulation.success:
            raise SimulationFailure(
                simulation.error or "bundle reverted in simulation",
                gas_used=simulation.gas_used,
                simulation_url=simulation.simulation_url,
            )
        self._transition(opportunity, result, OpportunityState.SIMULATED)

        self.rate_limiter.acquire("validate")
        result.validated_profit, gas_price = await self.validate_breaker.call(
            self._validate, opportunity, simulation
        )
        self._transition(opportunity, result, OpportunityState.VALIDATED)

        if self.dry_run:
            logger.info(f"Dry run: opportunity {opportunity.id} validated, not submitting")
            return

        self.rate_limiter.acquire("submit")
        responses = await self.submit_breaker.call(
            self._submit, opportunity.bundle, simulation.gas_used, gas_price
        )
        result.relay_responses = responses
        self._transition(opportunity, result, OpportunityState.SUBMITTED)

        accepted = [r for r in responses if r.accepted]
        self._record({"event": "submission", "outcome": "accepted" if accepted else "rejected"})
        if accepted:
            self._transition(opportunity, result, OpportunityState.CONFIRMED)
        else:
            errors = "; ".join(f"{r.relay}: {r.error}" for r in responses)
            self._reject(opportunity, result, f"relays_rejected: {errors}")

    async def _validate(
        self, opportunity: Opportunity, simulation: SimulationResult
    ) -> Tuple[int, int]:
        """
        Re-derive net profit from the simulation at the current gas price.

        Returns:
            (net profit, gas price the profit was derived at)

        Raises:
            ValidationError: Gas price above the ceiling or gas not priceable
            InsufficientProfit: Net profit does not exceed the threshold
        """
        gas_price = await self.gas_model.current_gas_price()
        if gas_price > self.max_gas_price_wei:
            raise ValidationError(
                f"Gas price {gas_price} above ceiling {self.max_gas_price_wei}",
                {"gas_price": gas_price, "ceiling": self.max_gas_price_wei},
            )

        gross = (
            simulation.balance_delta
            if simulation.balance_delta is not None
            else opportunity.expected_gross
        )
        gas_cost = await self.gas_model.to_base_units(
            simulation.gas_used * gas_price, opportunity.profit_token
        )
        if gas_cost is None:
            raise ValidationError(
                f"Cannot price gas in {opportunity.profit_token.symbol}",
                {"token": opportunity.profit_token.address},
            )

        profit = gross - gas_cost
        if profit <= self.min_profit_threshold:
            raise InsufficientProfit(
                f"Net profit {profit} does not exceed {self.min_profit_threshold}",
                expected=profit,
                threshold=self.min_profit_threshold,
            )
        token = opportunity.profit_token
        logger.info(
            f"Opportunity {opportunity.id} validated: net "
            f"{format_token_amount(profit, token.decimals)} {token.symbol}"
        )
        return profit, gas_price

    async def _submit(self, bundle: Bundle, gas_used: int, gas_price: int) -> List[RelayResponse]:
        """
        Raises:
            NetworkError: If no relay could be reached at all
        """
        gas = self.gas_limit
        if gas_used > 0:
            gas = gas_used * (BPS_DENOMINATOR + self.gas_limit_margin_bps) // BPS_DENOMINATOR
        nonce = await self.rpc.get_transaction_count(self.signer.address, "pending")
        block = await self.rpc.block_number()
        raw = self._sign(bundle, nonce, gas, gas_price)

        responses = await self.relay.submit([raw], block + 1)
        if responses and all(r.transport_error for r in responses):
            raise NetworkError("No relay reachable for bundle submission")
        return responses

    def _sign(self, bundle: Bundle, nonce: int, gas: int, gas_price: int) -> bytes:
        tx = self.signer.build_transaction(
            to=self.executor_address,
            data=bundle.to_orchestrate_calldata(),
            nonce=nonce,
            gas=gas,
            max_fee_per_gas=gas_price + self.priority_fee_wei,
            max_priority_fee_per_gas=self.priority_fee_wei,
        )
        return self.signer.sign(tx)

    def _reject(self, opportunity: Opportunity, result: ExecutionResult, reason: str) -> None:
        result.reason = reason
        self._transition(opportunity, result, OpportunityState.REJECTED)

    def _transition(
        self, opportunity: Opportunity, result: ExecutionResult, state: OpportunityState
    ) -> None:
        result.state = state
        result.transitions.append(state)
        logger.debug(f"Opportunity {opportunity.id} -> {state.value}")
        self._record(
            {
                "event": "pipeline_transition",
                "opportunity_id": opportunity.id,
                "source": opportunity.source,
                "state": state.value,
                "reason": result.reason,
            }
        )

    def _record(self, event: Dict[str, Any]) -> None:
        if self._sink is None:
            return
        try:
            self._sink.record(event)
        except Exception as e:
            logger.warning(f"Metrics sink failed on {event.get('event')}: {e}")
