"""Tests for the gas cost model and the route explorer."""

from unittest.mock import AsyncMock, Mock

import pytest

from flash_arbitrage.interfaces import DeterministicTimeProvider
from flash_arbitrage.mempool.cache import TTLCache
from flash_arbitrage.quoting.aggregator import QuoteAggregator
from flash_arbitrage.routing.explorer import RouteExplorer
from flash_arbitrage.routing.gas import GasCostModel
from flash_arbitrage.types import TokenInfo
from tests.fakes import ARB, USDC, USDT, WETH, FakeAdapter

WETH_TOKEN = TokenInfo(WETH, "WETH", 18)
USDC_TOKEN = TokenInfo(USDC, "USDC", 6)
USDT_TOKEN = TokenInfo(USDT, "USDT", 6)
ARB_TOKEN = TokenInfo(ARB, "ARB", 18)

ONE = 10**18


def flat_gas_model(**kwargs):
    """250k gas per hop at 1 gwei: 5e14 wei for a two-hop loop."""
    options = dict(base_gas=0, per_hop_gas=250_000, gas_price_override=10**9)
    options.update(kwargs)
    return GasCostModel(wrapped_native=WETH, **options)


def make_explorer(adapters, threshold=0, gas_model=None):
    return RouteExplorer(
        QuoteAggregator(adapters),
        gas_model or flat_gas_model(),
        min_profit_threshold=threshold,
    )


class TestGasCostModel:
    """Test gas units, gas price and native price conversion"""

    def test_requires_price_source(self):
        with pytest.raises(ValueError):
            GasCostModel(wrapped_native=WETH)

    def test_gas_units_linear_in_hops(self):
        model = GasCostModel(wrapped_native=WETH, gas_price_override=1, base_gas=150_000, per_hop_gas=100_000)
        assert model.gas_units(2) == 350_000
        assert model.gas_units(3) == 450_000

    @pytest.mark.asyncio
    async def test_gas_price_from_rpc(self):
        rpc = Mock()
        rpc.gas_price = AsyncMock(return_value=123)
        model = GasCostModel(wrapped_native=WETH, rpc=rpc)
        assert await model.current_gas_price() == 123

    @pytest.mark.asyncio
    async def test_override_skips_rpc(self):
        rpc = Mock()
        rpc.gas_price = AsyncMock(return_value=123)
        model = GasCostModel(wrapped_native=WETH, rpc=rpc, gas_price_override=5)
        assert await model.current_gas_price() == 5
        rpc.gas_price.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wrapped_native_is_one_to_one(self):
        model = flat_gas_model()
        assert await model.to_base_units(5 * 10**14, WETH_TOKEN) == 5 * 10**14
        assert await model.route_gas_cost(2, WETH_TOKEN, 10**9) == 5 * 10**14

    @pytest.mark.asyncio
    async def test_other_token_priced_through_aggregator(self):
        adapter = FakeAdapter("sushi", {(WETH, USDC): 2_000 * 10**6})
        model = flat_gas_model(price_source=QuoteAggregator([adapter]))

        # 5e14 wei at 2000 USDC per ETH is one USDC
        assert await model.to_base_units(5 * 10**14, USDC_TOKEN) == 10**6
        assert await model.to_base_units(10**15, USDC_TOKEN) == 2 * 10**6
        assert len(adapter.calls) == 1

    @pytest.mark.asyncio
    async def test_cached_price_expires(self):
        clock = DeterministicTimeProvider()
        adapter = FakeAdapter("sushi", {(WETH, USDC): 2_000 * 10**6})
        model = flat_gas_model(
            price_source=QuoteAggregator([adapter]),
            price_cache=TTLCache(ttl=30.0, time_provider=clock),
        )

        await model.native_price_in(USDC_TOKEN)
        clock.advance_time(31)
        await model.native_price_in(USDC_TOKEN)
        assert len(adapter.calls) == 2

    @pytest.mark.asyncio
    async def test_unpriceable_token(self):
        assert await flat_gas_model().to_base_units(1, USDC_TOKEN) is None
        model = flat_gas_model(price_source=QuoteAggregator([FakeAdapter("empty")]))
        assert await model.native_price_in(USDC_TOKEN) is None


class TestRouteExplorer:
    """Test loop search, profit accounting and tie-breaking"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "amount_back, threshold, expected_net",
        [
            (1_002 * 10**15, 0, 15 * 10**14),
            (1_002 * 10**15, 10**15, 15 * 10**14),
            # net 3e14 after 5e14 gas, below a 1e15 threshold
            (ONE + 8 * 10**14, 10**15, None),
        ],
    )
    async def test_two_hop_loop(self, amount_back, threshold, expected_net):
        adapter = FakeAdapter(
            "sushi", {(WETH, USDC): 2_000 * 10**6, (USDC, WETH): amount_back}
        )
        route = await make_explorer([adapter], threshold=threshold).find_best_route(
            WETH_TOKEN, [USDC_TOKEN], ONE, max_hops=2
        )

        if expected_net is None:
            assert route is None
            return
        assert route.path == (WETH, USDC, WETH)
        assert route.is_closed()
        assert route.amount_in == ONE
        assert route.amount_out == amount_back
        assert route.gas_cost == 5 * 10**14
        assert route.net_profit == expected_net
        assert route.hops[0].venue == "sushi"

    @pytest.mark.asyncio
    async def test_threshold_rejects_thin_loops(self):
        adapter = FakeAdapter(
            "sushi", {(WETH, USDC): 2_000 * 10**6, (USDC, WETH): 1_002 * 10**15}
        )
        explorer = make_explorer([adapter], threshold=15 * 10**14)
        assert await explorer.find_best_route(WETH_TOKEN, [USDC_TOKEN], ONE, 2) is None

    @pytest.mark.asyncio
    async def test_gas_can_erase_gross_profit(self):
        adapter = FakeAdapter(
            "sushi", {(WETH, USDC): 2_000 * 10**6, (USDC, WETH): ONE + 3 * 10**14}
        )
        assert await make_explorer([adapter]).find_best_route(
            WETH_TOKEN, [USDC_TOKEN], ONE, 2
        ) is None

    @pytest.mark.asyncio
    async def test_deeper_loop_respects_max_hops(self):
        adapter = FakeAdapter(
            "sushi",
            {
                (WETH, USDC): 2_000 * 10**6,
                (USDC, WETH): 1_002 * 10**15,
                (USDC, USDT): 2_000 * 10**6,
                (USDT, WETH): 1_010 * 10**15,
            },
        )
        explorer = make_explorer([adapter])
        candidates = [USDC_TOKEN, USDT_TOKEN]

        shallow = await explorer.find_best_route(WETH_TOKEN, candidates, ONE, max_hops=2)
        assert shallow.path == (WETH, USDC, WETH)

        deep = await explorer.find_best_route(WETH_TOKEN, candidates, ONE, max_hops=3)
        assert deep.path == (WETH, USDC, USDT, WETH)
        # 10e15 gross less three hops of gas
        assert deep.net_profit == 10**16 - 75 * 10**13

    @pytest.mark.asyncio
    async def test_ties_resolve_to_first_candidate(self):
        adapter = FakeAdapter(
            "sushi",
            {
                (WETH, USDT): 2_000 * 10**6,
                (USDT, WETH): 1_002 * 10**15,
                (WETH, USDC): 2_000 * 10**6,
                (USDC, WETH): 1_002 * 10**15,
            },
        )
        explorer = make_explorer([adapter])

        route = await explorer.find_best_route(WETH_TOKEN, [USDT_TOKEN, USDC_TOKEN], ONE, 2)
        assert route.path == (WETH, USDT, WETH)

    @pytest.mark.asyncio
    async def test_candidates_deduplicated(self):
        adapter = FakeAdapter(
            "sushi", {(WETH, USDC): 2_000 * 10**6, (USDC, WETH): 1_002 * 10**15}
        )
        explorer = make_explorer([adapter])

        await explorer.find_best_route(
            WETH_TOKEN, [USDC_TOKEN, TokenInfo(USDC.lower(), "USDC", 6), WETH_TOKEN], ONE, 2
        )
        assert len(adapter.calls) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount,max_hops", [(0, 2), (-1, 3), (ONE, 1)])
    async def test_degenerate_inputs(self, amount, max_hops):
        adapter = FakeAdapter("sushi", {(WETH, USDC): 1, (USDC, WETH): 10 * ONE})
        explorer = make_explorer([adapter])
        assert await explorer.find_best_route(WETH_TOKEN, [USDC_TOKEN], amount, max_hops) is None
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_unpriceable_gas_rejects_route(self):
        adapter = FakeAdapter(
            "sushi", {(USDC, ARB): 10**18, (ARB, USDC): 2 * 10**6}
        )
        route = await make_explorer([adapter]).find_best_route(
            USDC_TOKEN, [ARB_TOKEN], 10**6, 2
        )
        assert route is None

    @pytest.mark.asyncio
    async def test_best_venue_per_hop(self):
        cheap = FakeAdapter("sushi", {(WETH, USDC): 1_990 * 10**6, (USDC, WETH): 1_002 * 10**15})
        rich = FakeAdapter("camelot", {(WETH, USDC): 2_010 * 10**6, (USDC, WETH): 10**15})
        route = await make_explorer([cheap, rich]).find_best_route(
            WETH_TOKEN, [USDC_TOKEN], ONE, 2
        )

        assert [h.venue for h in route.hops] == ["camelot", "sushi"]
        assert route.hops[1].amount_in == 2_010 * 10**6
