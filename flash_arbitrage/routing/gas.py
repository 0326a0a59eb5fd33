"""
Gas cost model for route profitability.

Gas units grow linearly with hop count. The wei cost is converted into the
base token through the price of one native coin in that token: 1:1 for the
wrapped native token, otherwise a quote for one native coin, cached for a
short TTL.
"""

import logging
from typing import Optional

from ..mempool.cache import TTLCache
from ..types import TokenInfo
from ..utils import same_address

logger = logging.getLogger(__name__)

ONE_NATIVE = 10**18


class GasCostModel:
    def __init__(
        self,
        *,
        wrapped_native: str,
        rpc=None,
        price_source=None,
        base_gas: int = 150_000,
        per_hop_gas: int = 100_000,
        gas_price_override: Optional[int] = None,
        price_cache: Optional[TTLCache] = None,
    ):
        """
        Args:
            wrapped_native: Address of the wrapped native token (WETH)
            rpc: Client exposing ``gas_price()``; unused with an override
            price_source: Aggregator used to price native in other tokens
            base_gas: Fixed gas for the flash loan and executor overhead
            per_hop_gas: Additional gas per swap
            gas_price_override: Fixed gas price in wei
            price_cache: TTL cache for native prices keyed by token address
        """
        if rpc is None and gas_price_override is None:
            raise ValueError("GasCostModel needs an RPC client or a gas price override")
        self.wrapped_native = wrapped_native
        self._rpc = rpc
        self._price_source = price_source
        self.base_gas = base_gas
        self.per_hop_gas = per_hop_gas
        self._gas_price_override = gas_price_override
        self._price_cache = price_cache if price_cache is not None else TTLCache(ttl=30.0)

    def gas_units(self, hop_count: int) -> int:
        return self.base_gas + self.per_hop_gas * hop_count

    async def current_gas_price(self) -> int:
        if self._gas_price_override is not None:
            return self._gas_price_override
        return await self._rpc.gas_price()

    async def native_price_in(self, token: TokenInfo) -> Optional[int]:
        """Raw amount of ``token`` worth one native coin, or None if unknown."""
        if same_address(token.address, self.wrapped_native):
            return ONE_NATIVE

        cached = self._price_cache.get(token.address)
        if cached is not None:
            return cached
        if self._price_source is None:
            return None

        quote = await self._price_source.best_quote(
            self.wrapped_native, token.address, ONE_NATIVE
        )
        if quote is None:
            logger.warning(f"No native price available for {token.symbol}")
            return None
        self._price_cache.set(token.address, quote.amount_out)
        return quote.amount_out

    async def to_base_units(self, gas_wei: int, token: TokenInfo) -> Optional[int]:
        price = await self.native_price_in(token)
        if price is None:
            return None
        return gas_wei * price // ONE_NATIVE

    async def route_gas_cost(
        self, hop_count: int, token: TokenInfo, gas_price: int
    ) -> Optional[int]:
        """Gas cost of an ``hop_count``-hop route expressed in ``token`` units."""
        return await self.to_base_units(self.gas_units(hop_count) * gas_price, token)
