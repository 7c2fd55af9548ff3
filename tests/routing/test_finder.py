"""Tests for route discovery and ranking."""

import asyncio

import pytest

from dedust.core.errors import InvalidAmount, InvalidAsset, NoRouteFound, RoutingUnavailable
from dedust.core.types import PoolVariant, SwapSide
from dedust.routing.finder import RouteFinder

from conftest import TON, USDC, USDT, WBTC, FakePoolProvider, make_pool


@pytest.fixture
def bridged_provider():
    """USDT/TON and TON/WBTC pools, no direct USDT/WBTC pool."""
    return FakePoolProvider(
        [
            make_pool(USDT, TON, 25_000 * 10**6, 10_000 * 10**9, fee_bps=30),
            make_pool(TON, WBTC, 50_000 * 10**9, 100 * 10**8, fee_bps=30),
        ]
    )


class RendezvousProvider(FakePoolProvider):
    """Holds one pool read until another has been requested."""

    def __init__(self, pools, held, trigger) -> None:
        super().__init__(pools)
        self.held = self.key(*held, PoolVariant.VOLATILE)
        self.trigger = self.key(*trigger, PoolVariant.VOLATILE)
        self.triggered = asyncio.Event()

    async def get_pool_snapshot(self, asset_a, asset_b, variant):
        key = self.key(asset_a, asset_b, variant)
        if key == self.trigger:
            self.triggered.set()
        if key == self.held:
            await self.triggered.wait()
        return await super().get_pool_snapshot(asset_a, asset_b, variant)


class BrokenProvider(FakePoolProvider):
    async def get_pool_snapshot(self, asset_a, asset_b, variant):
        if variant is PoolVariant.STABLE:
            raise RuntimeError("unexpected reply")
        return await super().get_pool_snapshot(asset_a, asset_b, variant)


class TestDirectRoutes:
    """Test single-pool routes."""

    @pytest.mark.asyncio
    async def test_sell_direct(self, provider, ton_usdt_pool):
        finder = RouteFinder(provider)

        routes = await finder.find_routes(TON, USDT, 1_000 * 10**9)

        assert len(routes) == 1
        route = routes[0]
        assert route.hop_count == 1
        assert route.amount_in == 1_000 * 10**9
        assert route.amount_out == 2_266_527_234
        assert route.hops[0].pool == ton_usdt_pool
        assert route.price_impact_bps == 933

    @pytest.mark.asyncio
    async def test_buy_direct(self, provider):
        """Test exact-output routing computes the required input."""
        finder = RouteFinder(provider)

        route = await finder.find_best_route(TON, USDT, 2_266_527_234, side=SwapSide.BUY)

        assert route.amount_out == 2_266_527_234
        assert route.amount_in == 999_999_999_661

    @pytest.mark.asyncio
    async def test_every_variant_considered(self, provider, ton_usdt_pool):
        stable = make_pool(
            TON, USDT, 10_000 * 10**9, 25_000 * 10**6, fee_bps=5, variant=PoolVariant.STABLE
        )
        provider.add(stable)
        finder = RouteFinder(provider)

        routes = await finder.find_routes(TON, USDT, 1_000 * 10**9)

        assert [r.hops[0].variant for r in routes] == [PoolVariant.STABLE, PoolVariant.VOLATILE]
        assert routes[0].amount_out > routes[1].amount_out

    @pytest.mark.asyncio
    async def test_reverse_direction(self, provider):
        finder = RouteFinder(provider)

        route = await finder.find_best_route(USDT, TON, 2_500 * 10**6)

        assert route.token_in == USDT
        assert route.token_out == TON
        assert 0 < route.amount_out < 1_000 * 10**9

    @pytest.mark.asyncio
    async def test_empty_pool_ignored(self):
        provider = FakePoolProvider([make_pool(TON, USDT, 0, 0)])
        finder = RouteFinder(provider)

        with pytest.raises(NoRouteFound):
            await finder.find_routes(TON, USDT, 10**9)

    @pytest.mark.asyncio
    async def test_buy_beyond_reserve(self, provider):
        finder = RouteFinder(provider)

        with pytest.raises(NoRouteFound):
            await finder.find_routes(TON, USDT, 25_000 * 10**6, side=SwapSide.BUY)


class TestMultiHopRoutes:
    """Test routes through bridge assets."""

    @pytest.mark.asyncio
    async def test_sell_through_bridge(self, bridged_provider):
        finder = RouteFinder(bridged_provider, bridge_assets=[TON])

        route = await finder.find_best_route(USDT, WBTC, 1_000 * 10**6)

        assert route.hop_count == 2
        assert route.describe() == f"{USDT} -> {TON} -> {WBTC}"
        assert route.hops[0].amount_out == 383_505_789_129
        assert route.hops[1].amount_in == 383_505_789_129
        assert route.amount_out == 75_890_710
        assert route.total_fee_bps == 60

    @pytest.mark.asyncio
    async def test_buy_through_bridge(self, bridged_provider):
        finder = RouteFinder(bridged_provider, bridge_assets=[TON])

        route = await finder.find_best_route(USDT, WBTC, 75_890_710, side=SwapSide.BUY)

        assert route.amount_out == 75_890_710
        assert route.hops[0].amount_out == route.hops[1].amount_in
        assert 0 < route.amount_in <= 1_000 * 10**6

    @pytest.mark.asyncio
    async def test_hop_budget_limits_search(self, bridged_provider):
        finder = RouteFinder(bridged_provider, bridge_assets=[TON])

        with pytest.raises(NoRouteFound):
            await finder.find_routes(USDT, WBTC, 1_000 * 10**6, max_hops=1)

    @pytest.mark.asyncio
    async def test_bridges_skipped_when_direct_exists(self, bridged_provider):
        bridged_provider.add(make_pool(USDT, WBTC, 10**6, 10**3))
        finder = RouteFinder(bridged_provider, bridge_assets=[TON])

        routes = await finder.find_routes(USDT, WBTC, 1_000 * 10**6)

        assert [r.hop_count for r in routes] == [1]
        assert len(bridged_provider.calls) == 2

    @pytest.mark.asyncio
    async def test_bridges_searched_alongside_direct(self, bridged_provider):
        """Test a better multi-hop route outranks a shallow direct pool."""
        bridged_provider.add(make_pool(USDT, WBTC, 10**6, 10**3))
        finder = RouteFinder(
            bridged_provider, bridge_assets=[TON], search_multi_hop_with_direct=True
        )

        routes = await finder.find_routes(USDT, WBTC, 1_000 * 10**6)

        assert [r.hop_count for r in routes] == [2, 1]
        assert routes[0].amount_out == 75_890_710

    @pytest.mark.asyncio
    async def test_legs_fetched_once(self, bridged_provider):
        finder = RouteFinder(bridged_provider, bridge_assets=[TON, USDC, TON])

        await finder.find_routes(USDT, WBTC, 1_000 * 10**6)

        assert len(bridged_provider.calls) == len(set(bridged_provider.calls))

    @pytest.mark.asyncio
    async def test_legs_fetched_concurrently(self, bridged_provider):
        """Test the first leg's read can wait on the second leg's request."""
        provider = RendezvousProvider(
            bridged_provider.pools.values(), held=(USDT, TON), trigger=(TON, WBTC)
        )
        finder = RouteFinder(provider, bridge_assets=[TON])

        routes = await asyncio.wait_for(
            finder.find_routes(USDT, WBTC, 1_000 * 10**6), timeout=1
        )

        assert routes[0].amount_out == 75_890_710

    @pytest.mark.asyncio
    async def test_failed_leg_drops_only_its_routes(self, bridged_provider):
        bridged_provider.add(make_pool(USDT, USDC, 10**12, 10**12))
        bridged_provider.add(make_pool(USDC, WBTC, 10**12, 10**9))
        bridged_provider.fail(TON, WBTC)
        finder = RouteFinder(bridged_provider, bridge_assets=[TON, USDC])

        routes = await finder.find_routes(USDT, WBTC, 1_000 * 10**6)

        assert all(TON not in [hop.token_out for hop in r.hops] for r in routes)
        assert routes[0].describe() == f"{USDT} -> {USDC} -> {WBTC}"

    @pytest.mark.asyncio
    async def test_slow_pool_read_times_out(self, provider):
        provider.stall(TON, USDT, PoolVariant.STABLE)
        finder = RouteFinder(provider, fetch_timeout=0.05)

        routes = await finder.find_routes(TON, USDT, 1_000 * 10**9)

        assert [r.hops[0].variant for r in routes] == [PoolVariant.VOLATILE]


class TestRoutingFailures:
    """Test validation and failure classification."""

    @pytest.mark.asyncio
    async def test_same_asset(self, provider):
        finder = RouteFinder(provider)

        with pytest.raises(InvalidAsset):
            await finder.find_routes(TON, TON, 10**9)
        assert provider.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amount(self, provider, amount):
        finder = RouteFinder(provider)

        with pytest.raises(InvalidAmount):
            await finder.find_routes(TON, USDT, amount)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_invalid_hop_budget(self, provider):
        finder = RouteFinder(provider)

        with pytest.raises(InvalidAmount):
            await finder.find_routes(TON, USDT, 10**9, max_hops=0)

    def test_constructor_hop_budget(self, provider):
        with pytest.raises(ValueError):
            RouteFinder(provider, max_hops=0)

    @pytest.mark.asyncio
    async def test_no_pool_is_no_route(self):
        finder = RouteFinder(FakePoolProvider(), bridge_assets=[TON])

        with pytest.raises(NoRouteFound):
            await finder.find_routes(USDT, WBTC, 10**6)

    @pytest.mark.asyncio
    async def test_all_reads_failed(self, provider):
        provider.fail(TON, USDT, PoolVariant.VOLATILE)
        provider.fail(TON, USDT, PoolVariant.STABLE)
        finder = RouteFinder(provider)

        with pytest.raises(RoutingUnavailable):
            await finder.find_routes(TON, USDT, 10**9)

    @pytest.mark.asyncio
    async def test_mixed_failure_and_absence_is_no_route(self, provider):
        """Test a definitive absence wins over a transient failure."""
        provider.fail(TON, USDT, PoolVariant.VOLATILE)
        finder = RouteFinder(provider)

        with pytest.raises(NoRouteFound):
            await finder.find_routes(TON, USDT, 10**9)

    @pytest.mark.asyncio
    async def test_unexpected_provider_error_drops_candidate(self, ton_usdt_pool):
        finder = RouteFinder(BrokenProvider([ton_usdt_pool]))

        routes = await finder.find_routes(TON, USDT, 1_000 * 10**9)

        assert [r.hops[0].variant for r in routes] == [PoolVariant.VOLATILE]
