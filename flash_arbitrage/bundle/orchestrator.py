"""
Bundle orchestration.

Turns a route, or a decoded victim swap, into the ordered call list the
executor contract runs inside one flash loan:

    [approve] swap ... [approve] swap ... payMiner

Approvals are emitted once per (token, spender) pair immediately before
the first call that spends the token. The orchestrator only produces
bytes; it never sends anything.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..dex.encoders import SwapEncoderRegistry
from ..exceptions import ConstructionError
from ..interfaces import SystemTimeProvider, TimeProvider
from ..types import (
    Bundle,
    Call,
    DecodedSwap,
    DexKind,
    FlashloanRequest,
    Hop,
    Route,
    TokenInfo,
)
from ..utils import apply_bps_haircut, bps_share, safe_json_dump, same_address, to_checksum
from .calls import approve_call, pay_miner_call

logger = logging.getLogger(__name__)

DEFAULT_BACKRUN_FEE = 3000


@dataclass(frozen=True)
class FlashloanSpec:
    """Where to borrow from; token and amount default to the route's own."""

    provider: str
    token: Optional[str] = None
    amount: Optional[int] = None


@dataclass(frozen=True)
class ConversionVenue:
    """DEX used to swap between a flash-loaned token and the route's token."""

    dex: DexKind
    router: str
    fee: int = DEFAULT_BACKRUN_FEE


class BundleOrchestrator:
    def __init__(
        self,
        encoders: SwapEncoderRegistry,
        *,
        executor_address: str,
        tip_bps: int = 5000,
        slippage_bps: int = 50,
        deadline_seconds: int = 60,
        conversion: Optional[ConversionVenue] = None,
        time_provider: Optional[TimeProvider] = None,
    ):
        if not 0 <= tip_bps <= 10_000 or not 0 <= slippage_bps <= 10_000:
            raise ValueError("tip_bps and slippage_bps must be within [0, 10000]")
        self._encoders = encoders
        self.executor_address = to_checksum(executor_address)
        self.tip_bps = tip_bps
        self.slippage_bps = slippage_bps
        self.deadline_seconds = deadline_seconds
        self._conversion = conversion
        self._time = time_provider or SystemTimeProvider()

    def build_bundle(
        self,
        opportunity: Union[Route, DecodedSwap],
        flashloan: FlashloanSpec,
        expected_profit: Optional[int] = None,
    ) -> Bundle:
        """
        Assemble the atomic call list for a route or a decoded victim swap.

        Args:
            opportunity: Closed-loop route, or a victim swap to back-run
            flashloan: Flash loan provider and optional token/amount override
            expected_profit: Profit used to size the miner tip; defaults to
                the route's net profit (0 for victim swaps)

        Returns:
            Bundle whose calls are approvals, swaps and one miner tip

        Raises:
            ConstructionError: On unregistered DEX kinds, missing routers,
                open routes or a token substitution without a conversion venue
        """
        if isinstance(opportunity, DecodedSwap):
            route = self.backrun_route(opportunity, flashloan.amount)
        else:
            route = opportunity
        if not route.is_closed():
            raise ConstructionError(f"Route is not a closed loop: {route.describe()}")

        profit = route.net_profit if expected_profit is None else expected_profit
        bundle = self._assemble(route, flashloan, max(profit, 0))

        log_data = {
            "route": route.describe(),
            "flashloan_token": bundle.flashloan.token,
            "flashloan_amount": bundle.flashloan.amount,
            "calls": len(bundle.calls),
            "value": bundle.total_value,
        }
        logger.info(f"BUNDLE_BUILT: {safe_json_dump(log_data)}")
        return bundle

    def backrun_route(self, swap: DecodedSwap, amount: Optional[int] = None) -> Route:
        """
        Two-hop loop on the victim's DEX: token_out -> token_in -> token_out.

        Funded by a flash loan of the victim's output token. The first hop is
        priced at the victim's own limit price and the second must at least
        repay the loan; simulation decides whether anything is left over.
        """
        if not swap.router:
            raise ConstructionError(f"No router known for {swap.dex.value}", dex=swap.dex.value)
        if swap.amount_in <= 0 or swap.amount_out_min <= 0:
            raise ConstructionError(
                "Victim swap has no usable amounts", dex=swap.dex.value
            )

        borrowed = amount if amount is not None else swap.amount_out_min
        intermediate = borrowed * swap.amount_in // swap.amount_out_min
        fee = swap.fees[0] if swap.fees else DEFAULT_BACKRUN_FEE

        def hop(token_in: str, token_out: str, amount_in: int, amount_out: int) -> Hop:
            return Hop(
                dex=swap.dex,
                token_in=token_in,
                token_out=token_out,
                amount_in=amount_in,
                amount_out=amount_out,
                router=swap.router,
                fee=fee,
                venue=swap.dex.value,
            )

        return Route(
            base_token=TokenInfo(swap.token_out, symbol=""),
            hops=(
                hop(swap.token_out, swap.token_in, borrowed, intermediate),
                hop(swap.token_in, swap.token_out, intermediate, borrowed),
            ),
            gas_cost=0,
            net_profit=0,
        )

    def _assemble(self, route: Route, flashloan: FlashloanSpec, profit: int) -> Bundle:
        base = route.base_token.address
        flash_token = to_checksum(flashloan.token) if flashloan.token else base
        flash_amount = flashloan.amount if flashloan.amount is not None else route.amount_in
        deadline = int(self._time.current_timestamp()) + self.deadline_seconds
        tip = bps_share(profit, self.tip_bps)

        hops: List[Hop] = list(route.hops)
        if not same_address(flash_token, base):
            venue = self._require_conversion(flash_token, base)
            hops.insert(0, self._conversion_hop(venue, flash_token, base, flash_amount, route.amount_in))
            hops.append(
                self._conversion_hop(venue, base, flash_token, route.amount_out - tip, flash_amount)
            )

        swap_calls = [self._encode_hop(h, deadline) for h in hops]
        calls = self._with_approvals(swap_calls)
        # tips are paid in the route token, in which profit is measured
        calls.append(pay_miner_call(self.executor_address, base, tip))

        return Bundle(
            flashloan=FlashloanRequest(
                provider=to_checksum(flashloan.provider),
                token=flash_token,
                amount=flash_amount,
            ),
            calls=tuple(calls),
        )

    def _encode_hop(self, hop: Hop, deadline: int) -> Call:
        min_out = apply_bps_haircut(hop.amount_out, self.slippage_bps)
        return self._encoders.encode(hop, self.executor_address, min_out, deadline)

    def _require_conversion(self, flash_token: str, base: str) -> ConversionVenue:
        if self._conversion is None:
            raise ConstructionError(
                f"Flash loan token {flash_token} differs from route token {base} "
                "and no conversion venue is configured"
            )
        return self._conversion

    @staticmethod
    def _conversion_hop(
        venue: ConversionVenue, token_in: str, token_out: str, amount_in: int, amount_out: int
    ) -> Hop:
        return Hop(
            dex=venue.dex,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            router=venue.router,
            fee=venue.fee,
            venue="conversion",
        )

    @staticmethod
    def _with_approvals(swap_calls: Sequence[Call]) -> List[Call]:
        """Insert one approval per (token, spender) before its first spend."""
        totals: Dict[Tuple[str, str], int] = {}
        for call in swap_calls:
            if call.requires_approval:
                key = (call.approval_token.lower(), call.target.lower())
                totals[key] = totals.get(key, 0) + call.approval_amount

        approved = set()
        calls: List[Call] = []
        for call in swap_calls:
            if call.requires_approval:
                key = (call.approval_token.lower(), call.target.lower())
                if key not in approved:
                    calls.append(approve_call(call.approval_token, call.target, totals[key]))
                    approved.add(key)
            calls.append(call)
        return calls
