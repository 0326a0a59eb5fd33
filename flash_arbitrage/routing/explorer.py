"""
Bounded-depth search for profitable closed-loop routes.

From the base token the explorer branches over unvisited candidate tokens,
quoting each hop through the aggregator, and tries to close the loop back
to the base token at every depth. Sibling branches run concurrently; each
branch owns its own copy of the visited set. Results are merged in
candidate order, so ties resolve to the first route in iteration order
regardless of which branch finished first.
"""

import asyncio
import logging
from typing import FrozenSet, List, Optional, Sequence, Tuple

from ..quoting.aggregator import QuoteAggregator
from ..types import Hop, Route, TokenInfo
from ..utils import format_token_amount, safe_json_dump
from .gas import GasCostModel

logger = logging.getLogger(__name__)


class RouteExplorer:
    def __init__(
        self,
        aggregator: QuoteAggregator,
        gas_model: GasCostModel,
        *,
        min_profit_threshold: int,
        branch_concurrency: int = 16,
    ):
        self._aggregator = aggregator
        self._gas_model = gas_model
        self.min_profit_threshold = min_profit_threshold
        self._branch_semaphore = asyncio.Semaphore(branch_concurrency)

    async def find_best_route(
        self,
        base_token: TokenInfo,
        candidate_tokens: Sequence[TokenInfo],
        amount_in: int,
        max_hops: int,
    ) -> Optional[Route]:
        """
        Find the most profitable loop starting and ending at ``base_token``.

        Args:
            base_token: Token borrowed and repaid
            candidate_tokens: Intermediate tokens; the base token is skipped
            amount_in: Amount of base token entering the first hop
            max_hops: Maximum number of swaps in a loop (at least 2)

        Returns:
            The route with the greatest net profit above the threshold, or None
        """
        if amount_in <= 0 or max_hops < 2:
            return None

        candidates = self._dedupe(base_token, candidate_tokens)
        if not candidates:
            return None

        gas_price = await self._gas_model.current_gas_price()
        search = _Search(
            explorer=self,
            base_token=base_token,
            candidates=candidates,
            amount_in=amount_in,
            max_hops=max_hops,
            gas_price=gas_price,
        )
        best = await search.explore(
            current=base_token,
            amount=amount_in,
            hops=(),
            visited=frozenset({base_token.address.lower()}),
        )

        if best is not None:
            log_data = {
                "route": best.describe(),
                "venues": [h.venue for h in best.hops],
                "amount_in": best.amount_in,
                "amount_out": best.amount_out,
                "gas_cost": best.gas_cost,
                "net_profit": best.net_profit,
                "net_profit_fmt": format_token_amount(best.net_profit, base_token.decimals),
            }
            logger.info(f"OPPORTUNITY_FOUND: {safe_json_dump(log_data)}")
        return best

    @staticmethod
    def _dedupe(base: TokenInfo, tokens: Sequence[TokenInfo]) -> Tuple[TokenInfo, ...]:
        seen = {base.address.lower()}
        result: List[TokenInfo] = []
        for token in tokens:
            key = token.address.lower()
            if key in seen:
                continue
            seen.add(key)
            result.append(token)
        return tuple(result)


class _Search:
    """State for one ``find_best_route`` call."""

    def __init__(
        self,
        explorer: RouteExplorer,
        base_token: TokenInfo,
        candidates: Tuple[TokenInfo, ...],
        amount_in: int,
        max_hops: int,
        gas_price: int,
    ):
        self.explorer = explorer
        self.base_token = base_token
        self.candidates = candidates
        self.amount_in = amount_in
        self.max_hops = max_hops
        self.gas_price = gas_price

    async def explore(
        self,
        current: TokenInfo,
        amount: int,
        hops: Tuple[Hop, ...],
        visited: FrozenSet[str],
    ) -> Optional[Route]:
        branches = []
        if hops:
            branches.append(self._close(current, amount, hops))
        # leave room for the closing hop
        if len(hops) + 1 < self.max_hops:
            for token in self.candidates:
                if token.address.lower() in visited:
                    continue
                branches.append(
                    self._extend(current, token, amount, hops, visited | {token.address.lower()})
                )

        if not branches:
            return None

        best: Optional[Route] = None
        for route in await asyncio.gather(*branches):
            if route is not None and (best is None or route.net_profit > best.net_profit):
                best = route
        return best

    async def _quote(self, token_in: TokenInfo, token_out: TokenInfo, amount: int):
        async with self.explorer._branch_semaphore:
            return await self.explorer._aggregator.best_quote(
                token_in.address, token_out.address, amount
            )

    async def _extend(
        self,
        current: TokenInfo,
        token: TokenInfo,
        amount: int,
        hops: Tuple[Hop, ...],
        visited: FrozenSet[str],
    ) -> Optional[Route]:
        quote = await self._quote(current, token, amount)
        if quote is None or quote.amount_out <= 0:
            return None
        hop = Hop.from_quote(quote, current.address, token.address)
        return await self.explore(token, quote.amount_out, hops + (hop,), visited)

    async def _close(
        self, current: TokenInfo, amount: int, hops: Tuple[Hop, ...]
    ) -> Optional[Route]:
        quote = await self._quote(current, self.base_token, amount)
        if quote is None or quote.amount_out <= 0:
            return None
        hops = hops + (Hop.from_quote(quote, current.address, self.base_token.address),)

        gas_model = self.explorer._gas_model
        gas_cost = await gas_model.route_gas_cost(len(hops), self.base_token, self.gas_price)
        if gas_cost is None:
            return None

        net_profit = quote.amount_out - self.amount_in - gas_cost
        if net_profit <= self.explorer.min_profit_threshold:
            logger.debug(
                f"Loop via {[h.token_out for h in hops[:-1]]} below threshold: net={net_profit}"
            )
            return None
        return Route(
            base_token=self.base_token,
            hops=hops,
            gas_cost=gas_cost,
            net_profit=net_profit,
        )
