"""
Flash Arbitrage Engine.

On-chain arbitrage for EVM networks: concurrent cross-DEX quoting and
multi-hop route search, mempool swap decoding for back-runs, atomic
flash-loan bundles, and a simulate-then-submit pipeline over private relays.
"""

from flash_arbitrage.version import __version__

PROJECT_NAME = "flash-arbitrage"
VERSION = __version__

# Export main components for easier imports
from flash_arbitrage.engine import ArbitrageEngine
from flash_arbitrage.exceptions import FlashArbitrageError
from flash_arbitrage.execution import (
    ExecutionPipeline,
    ExecutionResult,
    Opportunity,
    OpportunityState,
)
from flash_arbitrage.types import (
    Bundle,
    DecodedSwap,
    DexKind,
    Hop,
    Quote,
    Route,
    TokenInfo,
)

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "ArbitrageEngine",
    "Bundle",
    "DecodedSwap",
    "DexKind",
    "ExecutionPipeline",
    "ExecutionResult",
    "FlashArbitrageError",
    "Hop",
    "Opportunity",
    "OpportunityState",
    "Quote",
    "Route",
    "TokenInfo",
]
