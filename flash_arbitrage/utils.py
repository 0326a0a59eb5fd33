"""
Common utilities and helper functions for the flash arbitrage engine.

Address normalisation, hex conversion for JSON-RPC payloads, basis point
arithmetic on integer token amounts and logger construction.
"""

import json
import logging
import time
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
BPS_DENOMINATOR = 10_000


# Timestamp utilities
def get_current_timestamp() -> float:
    """Get current Unix timestamp as float."""
    return time.time()


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    else:
        return f"{seconds / 60:.1f}m"


# Address and hex utilities
def to_checksum(address: str) -> str:
    """
    Normalise an address to its EIP-55 checksum form.

    Raises:
        ValueError: If the value is not a 20-byte hex address
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return Web3.to_checksum_address(address)


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive address comparison; None never matches."""
    if a is None or b is None:
        return False
    return a.lower() == b.lower()


def to_hex(data: Union[bytes, bytearray]) -> str:
    """Encode raw bytes as a 0x-prefixed hex string."""
    return "0x" + bytes(data).hex()


def hex_to_bytes(value: Optional[str]) -> bytes:
    """Decode a 0x-prefixed hex string; empty or None gives b''."""
    if not value:
        return b""
    if value.startswith(("0x", "0X")):
        value = value[2:]
    return bytes.fromhex(value)


def hex_to_int(value: Union[str, int, None], default: int = 0) -> int:
    """Parse a JSON-RPC quantity (hex string or int)."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    return int(value, 16)


# Integer amount math
def apply_bps_haircut(amount: int, bps: int) -> int:
    """Reduce ``amount`` by ``bps`` basis points, rounding down."""
    return amount * (BPS_DENOMINATOR - bps) // BPS_DENOMINATOR


def bps_share(amount: int, bps: int) -> int:
    """Return ``bps`` basis points of ``amount``, rounding down."""
    if amount <= 0:
        return 0
    return amount * bps // BPS_DENOMINATOR


def format_token_amount(amount: int, decimals: int, precision: int = 6) -> str:
    """Render a raw integer amount in human units for log lines."""
    scaled = Decimal(amount) / (Decimal(10) ** decimals)
    return f"{scaled:.{precision}f}"


def safe_json_dump(data: Any, **kwargs) -> str:
    """Serialize log payloads, stringifying anything JSON cannot carry."""
    defaults = {"ensure_ascii": False, "default": str}
    defaults.update(kwargs)
    return json.dumps(data, **defaults)


# Logging utilities
def get_logger(
    name: str,
    level: Optional[Union[str, int]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Union[logging.Logger, logging.LoggerAdapter]:
    """
    Get a module logger, optionally bound to extra context.

    Handlers are configured once at the root by ``logging_config.setup``;
    this only names the logger and applies level and context.

    Args:
        name: Logger name (typically __name__)
        level: Optional logging level for this logger
        extra: Context fields appended to every message

    Returns:
        Logger, or a LoggerAdapter when extra context is given
    """
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)

    if extra:
        return _ContextAdapter(logger, extra)
    return logger


class _ContextAdapter(logging.LoggerAdapter):
    """Appends ``key=value`` context pairs to each message."""

    def process(self, msg, kwargs):
        context = " ".join(f"{k}={v}" for k, v in self.extra.items())
        return f"{msg} | {context}", kwargs
