"""Tests for bundle orchestration."""

import pytest

from flash_arbitrage.bundle.calls import MAX_UINT256, approve_call, pay_miner_call
from flash_arbitrage.bundle.orchestrator import (
    BundleOrchestrator,
    ConversionVenue,
    FlashloanSpec,
)
from flash_arbitrage.dex import abi
from flash_arbitrage.dex.encoders import default_encoders
from flash_arbitrage.exceptions import ConstructionError
from flash_arbitrage.interfaces import DeterministicTimeProvider
from flash_arbitrage.types import DecodedSwap, DexKind, Hop, Route, TokenInfo
from flash_arbitrage.utils import ZERO_ADDRESS, to_checksum
from tests.fakes import BALANCER_VAULT, EXECUTOR, USDC, WETH

SUSHI = to_checksum("0x" + "11" * 20)
CAMELOT = to_checksum("0x" + "22" * 20)
NOW = 1_700_000_000
ONE = 10**18


def make_route(net_profit=15 * 10**14):
    hops = (
        Hop(DexKind.SUSHISWAP_V2, WETH, USDC, ONE, 2_000 * 10**6, router=SUSHI, venue="sushi"),
        Hop(DexKind.CAMELOT, USDC, WETH, 2_000 * 10**6, 1_002 * 10**15, router=CAMELOT, venue="camelot"),
    )
    return Route(TokenInfo(WETH, "WETH"), hops, gas_cost=5 * 10**14, net_profit=net_profit)


def make_orchestrator(**kwargs):
    return BundleOrchestrator(
        default_encoders(),
        executor_address=EXECUTOR,
        time_provider=DeterministicTimeProvider(NOW),
        **kwargs,
    )


def selectors(bundle):
    return [call.data[:4] for call in bundle.calls]


class TestCallBuilders:
    """Test approval and miner tip calls"""

    def test_approve_defaults_to_unlimited(self):
        call = approve_call(USDC, SUSHI)
        assert call.target == USDC
        assert abi.ERC20_APPROVE.decode_call(call.data) == (SUSHI, MAX_UINT256)

    def test_pay_miner_in_token(self):
        call = pay_miner_call(EXECUTOR, WETH, 42)
        assert call.target == EXECUTOR
        assert call.value == 0
        assert abi.PAY_MINER.decode_call(call.data) == (WETH, 42)

    def test_pay_miner_native_carries_value(self):
        assert pay_miner_call(EXECUTOR, ZERO_ADDRESS, 42).value == 42


class TestRouteBundles:
    """Test bundles built from closed-loop routes"""

    def test_call_order_and_count(self):
        bundle = make_orchestrator().build_bundle(make_route(), FlashloanSpec(BALANCER_VAULT))

        approve = abi.ERC20_APPROVE.selector
        swap = abi.SWAP_EXACT_TOKENS_FOR_TOKENS.selector
        assert selectors(bundle) == [approve, swap, approve, swap, abi.PAY_MINER.selector]
        assert bundle.calls[0].target == WETH
        assert bundle.calls[2].target == USDC
        assert abi.ERC20_APPROVE.decode_call(bundle.calls[0].data) == (SUSHI, ONE)

    def test_flashloan_defaults_to_route(self):
        bundle = make_orchestrator().build_bundle(make_route(), FlashloanSpec(BALANCER_VAULT))
        assert bundle.flashloan.provider == BALANCER_VAULT
        assert bundle.flashloan.token == WETH
        assert bundle.flashloan.amount == ONE
        assert bundle.total_value == 0

    def test_slippage_and_deadline(self):
        bundle = make_orchestrator(slippage_bps=50, deadline_seconds=30).build_bundle(
            make_route(), FlashloanSpec(BALANCER_VAULT)
        )

        amount_in, min_out, path, recipient, deadline = abi.SWAP_EXACT_TOKENS_FOR_TOKENS.decode_call(
            bundle.calls[1].data
        )
        assert amount_in == ONE
        assert min_out == 1_990 * 10**6
        assert list(path) == [WETH, USDC]
        assert recipient == EXECUTOR
        assert deadline == NOW + 30

    def test_tip_is_share_of_profit(self):
        bundle = make_orchestrator(tip_bps=5000).build_bundle(
            make_route(), FlashloanSpec(BALANCER_VAULT)
        )
        assert abi.PAY_MINER.decode_call(bundle.calls[-1].data) == (WETH, 75 * 10**13)

    def test_expected_profit_overrides_route_profit(self):
        orchestrator = make_orchestrator(tip_bps=1000)
        bundle = orchestrator.build_bundle(make_route(), FlashloanSpec(BALANCER_VAULT), 10**16)
        assert abi.PAY_MINER.decode_call(bundle.calls[-1].data) == (WETH, 10**15)

        bundle = orchestrator.build_bundle(make_route(), FlashloanSpec(BALANCER_VAULT), -5)
        assert abi.PAY_MINER.decode_call(bundle.calls[-1].data) == (WETH, 0)

    def test_orchestrate_calldata(self):
        bundle = make_orchestrator().build_bundle(make_route(), FlashloanSpec(BALANCER_VAULT))

        loans, calls = abi.ORCHESTRATE.decode_call(bundle.to_orchestrate_calldata())
        assert loans == ((BALANCER_VAULT, WETH, ONE),)
        assert len(calls) == 5
        assert calls[1][0] == SUSHI
        assert calls[1][2] is True

    def test_open_route_rejected(self):
        route = make_route()
        open_route = Route(route.base_token, route.hops[:1], 0, 0)
        with pytest.raises(ConstructionError, match="not a closed loop"):
            make_orchestrator().build_bundle(open_route, FlashloanSpec(BALANCER_VAULT))

    def test_hop_without_router(self):
        route = make_route()
        hops = (route.hops[0], Hop(DexKind.CAMELOT, USDC, WETH, 2_000 * 10**6, 1_002 * 10**15))
        with pytest.raises(ConstructionError, match="no router"):
            make_orchestrator().build_bundle(
                Route(route.base_token, hops, 0, 1), FlashloanSpec(BALANCER_VAULT)
            )

    def test_invalid_bps(self):
        with pytest.raises(ValueError):
            make_orchestrator(tip_bps=10_001)


class TestFlashloanConversion:
    """Test borrowing a token other than the route's base token"""

    def test_requires_conversion_venue(self):
        with pytest.raises(ConstructionError, match="no conversion venue"):
            make_orchestrator().build_bundle(
                make_route(), FlashloanSpec(BALANCER_VAULT, token=USDC, amount=2_000 * 10**6)
            )

    def test_conversion_hops_wrap_route(self):
        orchestrator = make_orchestrator(
            tip_bps=5000, conversion=ConversionVenue(DexKind.SUSHISWAP_V2, SUSHI)
        )
        bundle = orchestrator.build_bundle(
            make_route(), FlashloanSpec(BALANCER_VAULT, token=USDC, amount=2_000 * 10**6)
        )

        assert bundle.flashloan.token == USDC
        assert bundle.flashloan.amount == 2_000 * 10**6

        swaps = [
            abi.SWAP_EXACT_TOKENS_FOR_TOKENS.decode_call(c.data)
            for c in bundle.calls
            if c.data[:4] == abi.SWAP_EXACT_TOKENS_FOR_TOKENS.selector
        ]
        assert [list(s[2]) for s in swaps] == [
            [USDC, WETH],
            [WETH, USDC],
            [USDC, WETH],
            [WETH, USDC],
        ]
        # route output less the tip is converted back
        assert swaps[-1][0] == 1_002 * 10**15 - 75 * 10**13

    def test_approvals_aggregate_per_spender(self):
        orchestrator = make_orchestrator(
            tip_bps=5000, conversion=ConversionVenue(DexKind.SUSHISWAP_V2, SUSHI)
        )
        bundle = orchestrator.build_bundle(
            make_route(), FlashloanSpec(BALANCER_VAULT, token=USDC, amount=2_000 * 10**6)
        )

        approvals = [
            (c.target, abi.ERC20_APPROVE.decode_call(c.data))
            for c in bundle.calls
            if c.data[:4] == abi.ERC20_APPROVE.selector
        ]
        assert approvals == [
            (USDC, (SUSHI, 2_000 * 10**6)),
            (WETH, (SUSHI, ONE + 1_002 * 10**15 - 75 * 10**13)),
            (USDC, (CAMELOT, 2_000 * 10**6)),
        ]
        # three approvals, four swaps and the tip
        assert len(bundle.calls) == 8


class TestBackrun:
    """Test bundles built from a decoded victim swap"""

    def victim(self, **overrides):
        fields = dict(
            dex=DexKind.UNISWAP_V3,
            token_in=WETH,
            token_out=USDC,
            amount_in=ONE,
            amount_out_min=1_990 * 10**6,
            recipient=EXECUTOR,
            path=(WETH, USDC),
            fees=(500,),
            tx_hash="0xvictim",
            router=SUSHI,
        )
        fields.update(overrides)
        return DecodedSwap(**fields)

    def test_route_at_victim_price(self):
        route = make_orchestrator().backrun_route(self.victim())

        assert route.base_token.address == USDC
        assert route.path == (USDC, WETH, USDC)
        assert route.amount_in == 1_990 * 10**6
        assert route.hops[0].amount_out == ONE
        assert all(h.fee == 500 and h.router == SUSHI for h in route.hops)
        assert route.is_closed()

    def test_custom_amount(self):
        route = make_orchestrator().backrun_route(self.victim(), amount=995 * 10**6)
        assert route.hops[0].amount_out == 5 * 10**17

    def test_default_fee(self):
        route = make_orchestrator().backrun_route(self.victim(fees=()))
        assert route.hops[0].fee == 3000

    @pytest.mark.parametrize(
        "overrides", [{"router": None}, {"amount_in": 0}, {"amount_out_min": 0}]
    )
    def test_unusable_victims(self, overrides):
        with pytest.raises(ConstructionError):
            make_orchestrator().backrun_route(self.victim(**overrides))

    def test_bundle_from_swap(self):
        bundle = make_orchestrator().build_bundle(self.victim(), FlashloanSpec(BALANCER_VAULT))

        assert bundle.flashloan.token == USDC
        assert bundle.flashloan.amount == 1_990 * 10**6
        assert selectors(bundle)[1] == abi.EXACT_INPUT_SINGLE.selector
        assert abi.PAY_MINER.decode_call(bundle.calls[-1].data) == (USDC, 0)
        assert len(bundle.calls) == 5
