"""Simulation, validation, signing and relay submission."""

from .breaker import CircuitBreaker
from .pipeline import ExecutionPipeline, ExecutionResult, Opportunity, OpportunityState
from .rate_limiter import WindowRateLimiter
from .relay import RelayClient, RelayResponse
from .signer import TransactionSigner
from .simulator import SimulationClient, SimulationResult, parse_simulation_response

__all__ = [
    "CircuitBreaker",
    "ExecutionPipeline",
    "ExecutionResult",
    "Opportunity",
    "OpportunityState",
    "RelayClient",
    "RelayResponse",
    "SimulationClient",
    "SimulationResult",
    "TransactionSigner",
    "WindowRateLimiter",
    "parse_simulation_response",
]
