"""
Uniswap V3 style adapter and packed path codec.

Quotes come from QuoterV2 when a quoter is configured. Without one the
adapter falls back to a single-tick estimate from the pool's current
``sqrtPriceX96`` and active liquidity. That estimate ignores tick crossings
and is only a lower-fidelity approximation for small trades; it is never
treated as an exact reserve model.
"""

from typing import List, Optional, Sequence, Tuple

from ...exceptions import ConfigurationError, ProtocolDecodeError
from ...types import DexKind, Quote
from ...utils import to_checksum
from ..abi import POOL_LIQUIDITY, POOL_SLOT0, QUOTE_EXACT_INPUT_SINGLE
from .base import ContractReader

# Common V3 fee tiers (hundredths of a bip)
V3_FEE_TIERS = {
    "LOWEST": 100,  # 0.01%
    "LOW": 500,  # 0.05%
    "MEDIUM": 3000,  # 0.30%
    "HIGH": 10000,  # 1.00%
}

DEFAULT_V3_SWAP_GAS = 130_000
Q96 = 1 << 96

_ADDRESS_BYTES = 20
_FEE_BYTES = 3
_STEP = _ADDRESS_BYTES + _FEE_BYTES


def encode_v3_path(tokens: Sequence[str], fees: Sequence[int]) -> bytes:
    """
    Encode a Uniswap V3 swap path.

    V3 paths are packed as: token0 (20 bytes) | fee0 (3 bytes) | token1 (20 bytes) | ...

    Raises:
        ValueError: If token and fee counts disagree or a fee does not fit 24 bits
    """
    if len(tokens) < 2 or len(fees) != len(tokens) - 1:
        raise ValueError(
            f"Path needs n tokens and n-1 fees, got {len(tokens)} and {len(fees)}"
        )
    out = bytearray(bytes.fromhex(to_checksum(tokens[0])[2:]))
    for fee, token in zip(fees, tokens[1:]):
        if not 0 <= fee < (1 << 24):
            raise ValueError(f"Fee out of uint24 range: {fee}")
        out += fee.to_bytes(_FEE_BYTES, "big")
        out += bytes.fromhex(to_checksum(token)[2:])
    return bytes(out)


def decode_v3_path(path: bytes) -> Tuple[List[str], List[int]]:
    """
    Split a packed V3 path into checksummed tokens and fee tiers.

    Raises:
        ProtocolDecodeError: If the length is not 20 + 23k bytes with k >= 1
    """
    if len(path) < _ADDRESS_BYTES + _STEP or (len(path) - _ADDRESS_BYTES) % _STEP:
        raise ProtocolDecodeError(f"Malformed V3 path of {len(path)} bytes")

    tokens = [to_checksum("0x" + path[:_ADDRESS_BYTES].hex())]
    fees = []
    offset = _ADDRESS_BYTES
    while offset < len(path):
        fees.append(int.from_bytes(path[offset : offset + _FEE_BYTES], "big"))
        offset += _FEE_BYTES
        tokens.append(to_checksum("0x" + path[offset : offset + _ADDRESS_BYTES].hex()))
        offset += _ADDRESS_BYTES
    return tokens, fees


def approximate_amount_out(
    amount_in: int, sqrt_price_x96: int, liquidity: int, zero_for_one: bool, fee: int
) -> int:
    """
    Single-tick V3 swap estimate.

    Applies the fee to the input and moves the price within the current
    tick's liquidity only, so large trades that would cross ticks are
    overestimated.
    """
    if amount_in <= 0 or liquidity <= 0 or sqrt_price_x96 <= 0:
        return 0
    amount = amount_in * (1_000_000 - fee) // 1_000_000

    if zero_for_one:
        numerator = liquidity * Q96
        sqrt_next = numerator * sqrt_price_x96 // (numerator + amount * sqrt_price_x96)
        return liquidity * (sqrt_price_x96 - sqrt_next) // Q96

    sqrt_next = sqrt_price_x96 + amount * Q96 // liquidity
    return liquidity * Q96 * (sqrt_next - sqrt_price_x96) // (sqrt_next * sqrt_price_x96)


class UniswapV3Adapter:
    def __init__(
        self,
        name: str,
        kind: DexKind,
        router: str,
        reader: ContractReader,
        fee: int = V3_FEE_TIERS["MEDIUM"],
        quoter: Optional[str] = None,
        pool: Optional[str] = None,
        gas_estimate: Optional[int] = None,
    ):
        if quoter is None and pool is None:
            raise ConfigurationError(f"V3 adapter {name} needs a quoter or a pool address")
        self.name = name
        self.kind = kind
        self.router = to_checksum(router)
        self.fee = fee
        self.quoter = to_checksum(quoter) if quoter else None
        self.pool = to_checksum(pool) if pool else None
        self._reader = reader
        self._gas_estimate = gas_estimate or DEFAULT_V3_SWAP_GAS

    async def quote(self, token_in: str, token_out: str, amount_in: int) -> Quote:
        if self.quoter is not None:
            amount_out, gas = await self._quote_with_quoter(token_in, token_out, amount_in)
        else:
            amount_out = await self._quote_from_pool(token_in, token_out, amount_in)
            gas = self._gas_estimate
        return Quote(
            dex=self.name,
            amount_in=amount_in,
            amount_out=amount_out,
            estimated_gas=gas,
            kind=self.kind,
            router=self.router,
            fee=self.fee,
        )

    async def _quote_with_quoter(
        self, token_in: str, token_out: str, amount_in: int
    ) -> Tuple[int, int]:
        params = (to_checksum(token_in), to_checksum(token_out), amount_in, self.fee, 0)
        raw = await self._reader.eth_call(
            self.quoter, QUOTE_EXACT_INPUT_SINGLE.encode_call(params)
        )
        amount_out, _sqrt_after, _ticks_crossed, gas_estimate = (
            QUOTE_EXACT_INPUT_SINGLE.decode_output(raw)
        )
        return amount_out, gas_estimate or self._gas_estimate

    async def _quote_from_pool(self, token_in: str, token_out: str, amount_in: int) -> int:
        slot0 = await self._reader.eth_call(self.pool, POOL_SLOT0.encode_call())
        liquidity_raw = await self._reader.eth_call(self.pool, POOL_LIQUIDITY.encode_call())
        (sqrt_price_x96,) = POOL_SLOT0.decode_output(slot0[:32])
        (liquidity,) = POOL_LIQUIDITY.decode_output(liquidity_raw[:32])
        # token0 is the numerically smaller address
        zero_for_one = int(token_in, 16) < int(token_out, 16)
        return approximate_amount_out(amount_in, sqrt_price_x96, liquidity, zero_for_one, self.fee)

    def __repr__(self) -> str:
        return f"UniswapV3Adapter({self.name}, fee={self.fee})"
