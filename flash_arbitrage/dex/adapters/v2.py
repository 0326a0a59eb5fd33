"""
Uniswap V2 style adapter for constant-product AMM routers.

Quotes through the router's ``getAmountsOut`` so fee-variant forks
(Sushi, Camelot) are priced by their own on-chain math.
"""

from typing import Optional

from ...types import DexKind, Quote
from ...utils import to_checksum
from ..abi import GET_AMOUNTS_OUT
from .base import ContractReader

DEFAULT_V2_SWAP_GAS = 110_000


def swap_out(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int = 30) -> int:
    """
    Calculate output amount for a V2 swap using constant-product formula.

    Integer math identical to UniswapV2Library.getAmountOut:
        amountInWithFee = amountIn * (10000 - fee_bps)
        amountOut = amountInWithFee * reserveOut / (reserveIn * 10000 + amountInWithFee)

    Args:
        amount_in: Input token amount (raw units)
        reserve_in: Reserve of input token
        reserve_out: Reserve of output token
        fee_bps: Pool fee in basis points (30 for 0.3%)

    Returns:
        Output token amount (raw units, rounded down)

    Raises:
        ValueError: If inputs are invalid (negative, zero reserves, etc.)
    """
    if amount_in <= 0:
        raise ValueError(f"amount_in must be positive: {amount_in}")
    if reserve_in <= 0 or reserve_out <= 0:
        raise ValueError(
            f"Reserves must be positive: in={reserve_in}, out={reserve_out}"
        )
    if fee_bps < 0 or fee_bps >= 10_000:
        raise ValueError(f"Fee must be in [0, 10000) bps: {fee_bps}")

    amount_in_with_fee = amount_in * (10_000 - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * 10_000 + amount_in_with_fee
    return numerator // denominator


class UniswapV2Adapter:
    """Quotes a V2 router via ``getAmountsOut(amountIn, [tokenIn, tokenOut])``."""

    def __init__(
        self,
        name: str,
        kind: DexKind,
        router: str,
        reader: ContractReader,
        gas_estimate: Optional[int] = None,
    ):
        self.name = name
        self.kind = kind
        self.router = to_checksum(router)
        self.fee = 0
        self._reader = reader
        self._gas_estimate = gas_estimate or DEFAULT_V2_SWAP_GAS

    async def quote(self, token_in: str, token_out: str, amount_in: int) -> Quote:
        data = GET_AMOUNTS_OUT.encode_call(
            amount_in, [to_checksum(token_in), to_checksum(token_out)]
        )
        raw = await self._reader.eth_call(self.router, data)
        (amounts,) = GET_AMOUNTS_OUT.decode_output(raw)
        amount_out = amounts[-1] if amounts else 0
        return Quote(
            dex=self.name,
            amount_in=amount_in,
            amount_out=amount_out,
            estimated_gas=self._gas_estimate,
            kind=self.kind,
            router=self.router,
            fee=self.fee,
        )

    def __repr__(self) -> str:
        return f"UniswapV2Adapter({self.name}, {self.router})"
