"""Atomic flash-loan bundle construction."""

from .calls import MAX_UINT256, approve_call, pay_miner_call
from .orchestrator import BundleOrchestrator, ConversionVenue, FlashloanSpec

__all__ = [
    "BundleOrchestrator",
    "ConversionVenue",
    "FlashloanSpec",
    "MAX_UINT256",
    "approve_call",
    "pay_miner_call",
]
