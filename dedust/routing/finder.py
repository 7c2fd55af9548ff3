"""Route discovery over DeDust pools.

A search looks up the direct pair in every pool variant and, when that yields
nothing, chains legs through configured bridge assets. All pool reads of one
search run concurrently, each bounded by a timeout.
"""

import asyncio
from enum import Enum
from itertools import permutations

import structlog

from ..core.errors import (
    InsufficientLiquidity,
    InvalidAmount,
    InvalidAsset,
    NoRouteFound,
    ProviderError,
    RoutingUnavailable,
)
from ..core.interfaces import PoolSnapshotProvider
from ..core.types import (
    Asset,
    PoolSnapshot,
    PoolVariant,
    Route,
    RouteHop,
    SwapSide,
    canonical_pair,
)
from ..pricing.amm import get_amount_in, get_amount_out, price_impact_bps

logger = structlog.get_logger(__name__)

FetchKey = tuple[Asset, Asset, PoolVariant]


class Outcome(str, Enum):
    SUCCESS = "success"
    ABSENT = "absent"
    FAILED = "failed"


_FAILED = object()


class RouteFinder:
    """Finds and ranks swap routes between two assets."""

    def __init__(
        self,
        pools: PoolSnapshotProvider,
        bridge_assets: list[Asset] | None = None,
        max_hops: int = 3,
        fetch_timeout: float = 10.0,
        variants: tuple[PoolVariant, ...] = (PoolVariant.VOLATILE, PoolVariant.STABLE),
        search_multi_hop_with_direct: bool = False,
    ) -> None:
        """Initialize route finder.

        Args:
            pools: Pool snapshot source, usually a ``PoolStateCache``
            bridge_assets: Intermediate assets multi-hop routes may pass through
            max_hops: Default hop budget
            fetch_timeout: Timeout of a single pool read in seconds
            variants: Pool variants to consider, in lookup order
            search_multi_hop_with_direct: Also explore bridges when a direct pool exists
        """
        if max_hops < 1:
            raise ValueError("max_hops must be at least 1")
        self.pools = pools
        self.bridge_assets = list(bridge_assets or [])
        self.max_hops = max_hops
        self.fetch_timeout = fetch_timeout
        self.variants = variants
        self.search_multi_hop_with_direct = search_multi_hop_with_direct

    async def find_routes(
        self,
        source: Asset,
        dest: Asset,
        amount: int,
        side: SwapSide = SwapSide.SELL,
        max_hops: int | None = None,
    ) -> list[Route]:
        """Find every viable route, best first.

        Args:
            source: Asset sold
            dest: Asset bought
            amount: Exact input (SELL) or exact output (BUY) in smallest units
            side: SELL or BUY
            max_hops: Hop budget overriding the default

        Returns:
            Routes ranked by output (SELL) or required input (BUY), then by fewer
            hops, then by lower aggregate fee

        Raises:
            InvalidAsset: If source and dest are the same asset
            InvalidAmount: If amount is not positive
            NoRouteFound: If no route exists
            RoutingUnavailable: If every candidate failed for infrastructure reasons
        """
        if source == dest:
            raise InvalidAsset("Source and destination assets must differ")
        if amount <= 0:
            raise InvalidAmount(f"Amount must be positive, got {amount}")
        hop_budget = self.max_hops if max_hops is None else max_hops
        if hop_budget < 1:
            raise InvalidAmount(f"max_hops must be at least 1, got {hop_budget}")

        fetched: dict[FetchKey, PoolSnapshot | None | object] = {}
        routes: list[Route] = []
        outcomes: list[Outcome] = []

        await self._fetch_legs([(source, dest)], fetched)
        for variant in self.variants:
            pool = fetched[self._key(source, dest, variant)]
            if pool is _FAILED:
                outcomes.append(Outcome.FAILED)
                continue
            route = self._simulate([source, dest], amount, side, fetched, variant)
            outcomes.append(Outcome.SUCCESS if route else Outcome.ABSENT)
            if route:
                routes.append(route)

        if hop_budget > 1 and (not routes or self.search_multi_hop_with_direct):
            paths = self._bridge_paths(source, dest, hop_budget)
            legs = {
                canonical_pair(path[i], path[i + 1])
                for path in paths
                for i in range(len(path) - 1)
            }
            await self._fetch_legs(list(legs), fetched)

            for path in paths:
                route = self._simulate(path, amount, side, fetched)
                if route is not None:
                    routes.append(route)
                    outcomes.append(Outcome.SUCCESS)
                else:
                    outcomes.append(self._classify_failure(path, fetched))

        if not routes:
            if Outcome.FAILED in outcomes and Outcome.ABSENT not in outcomes:
                logger.error(
                    "Routing unavailable",
                    source=str(source),
                    dest=str(dest),
                    candidates=len(outcomes),
                )
                raise RoutingUnavailable(
                    f"Pool state unavailable for every route from {source} to {dest}"
                )
            raise NoRouteFound(f"No route from {source} to {dest}")

        routes.sort(key=lambda r: self._rank_key(r, side))
        best = routes[0]
        logger.info(
            "Routes found",
            source=str(source),
            dest=str(dest),
            side=side.value,
            count=len(routes),
            best_path=best.describe(),
            best_amount_in=best.amount_in,
            best_amount_out=best.amount_out,
        )
        return routes

    async def find_best_route(
        self,
        source: Asset,
        dest: Asset,
        amount: int,
        side: SwapSide = SwapSide.SELL,
        max_hops: int | None = None,
    ) -> Route:
        routes = await self.find_routes(source, dest, amount, side, max_hops)
        return routes[0]

    @staticmethod
    def _rank_key(route: Route, side: SwapSide) -> tuple[int, int, int]:
        primary = -route.amount_out if side is SwapSide.SELL else route.amount_in
        return primary, route.hop_count, route.total_fee_bps

    @staticmethod
    def _key(asset_a: Asset, asset_b: Asset, variant: PoolVariant) -> FetchKey:
        asset_x, asset_y = canonical_pair(asset_a, asset_b)
        return asset_x, asset_y, variant

    def _bridge_paths(self, source: Asset, dest: Asset, hop_budget: int) -> list[list[Asset]]:
        bridges = [b for b in self.bridge_assets if b != source and b != dest]
        bridges = list(dict.fromkeys(bridges))
        paths = []
        for count in range(1, hop_budget):
            for sequence in permutations(bridges, count):
                paths.append([source, *sequence, dest])
        return paths

    async def _fetch_legs(
        self,
        legs: list[tuple[Asset, Asset]],
        fetched: dict[FetchKey, PoolSnapshot | None | object],
    ) -> None:
        keys = []
        for asset_a, asset_b in legs:
            for variant in self.variants:
                key = self._key(asset_a, asset_b, variant)
                if key not in fetched and key not in keys:
                    keys.append(key)
        if not keys:
            return

        results = await asyncio.gather(*(self._fetch_one(key) for key in keys))
        fetched.update(zip(keys, results))

    async def _fetch_one(self, key: FetchKey) -> PoolSnapshot | None | object:
        asset_x, asset_y, variant = key
        try:
            return await asyncio.wait_for(
                self.pools.get_pool_snapshot(asset_x, asset_y, variant),
                timeout=self.fetch_timeout,
            )
        except (ProviderError, asyncio.TimeoutError) as e:
            logger.warning(
                "Pool fetch failed, dropping dependent candidates",
                asset_x=str(asset_x),
                asset_y=str(asset_y),
                variant=variant.value,
                error=str(e) or type(e).__name__,
            )
            return _FAILED
        except Exception as e:
            logger.error(
                "Unexpected pool fetch error, dropping dependent candidates",
                asset_x=str(asset_x),
                asset_y=str(asset_y),
                variant=variant.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return _FAILED

    def _usable_pools(
        self,
        asset_a: Asset,
        asset_b: Asset,
        fetched: dict[FetchKey, PoolSnapshot | None | object],
        variant: PoolVariant | None = None,
    ) -> list[PoolSnapshot]:
        variants = self.variants if variant is None else (variant,)
        pools = []
        for v in variants:
            pool = fetched.get(self._key(asset_a, asset_b, v))
            if isinstance(pool, PoolSnapshot) and pool.has_liquidity():
                pools.append(pool)
        return pools

    def _classify_failure(
        self, path: list[Asset], fetched: dict[FetchKey, PoolSnapshot | None | object]
    ) -> Outcome:
        """ABSENT if some leg definitively has no usable pool, else FAILED."""
        failed = False
        for asset_in, asset_out in zip(path, path[1:]):
            if self._usable_pools(asset_in, asset_out, fetched):
                continue
            results = [fetched.get(self._key(asset_in, asset_out, v)) for v in self.variants]
            if any(result is _FAILED for result in results):
                failed = True
            else:
                return Outcome.ABSENT
        return Outcome.FAILED if failed else Outcome.ABSENT

    def _simulate(
        self,
        path: list[Asset],
        amount: int,
        side: SwapSide,
        fetched: dict[FetchKey, PoolSnapshot | None | object],
        variant: PoolVariant | None = None,
    ) -> Route | None:
        legs = list(zip(path, path[1:]))
        leg_pools = []
        for asset_in, asset_out in legs:
            pools = self._usable_pools(asset_in, asset_out, fetched, variant)
            if not pools:
                return None
            leg_pools.append(pools)

        if side is SwapSide.SELL:
            hops = self._simulate_exact_in(legs, leg_pools, amount)
        else:
            hops = self._simulate_exact_out(legs, leg_pools, amount)
        if hops is None:
            return None
        return Route(hops=hops)

    @staticmethod
    def _hop(
        pool: PoolSnapshot,
        token_in: Asset,
        token_out: Asset,
        amount_in: int,
        amount_out: int,
    ) -> RouteHop:
        reserve_in, reserve_out = pool.reserves_for(token_in)
        impact = price_impact_bps(amount_in, reserve_in, reserve_out, pool.fee_bps)
        return RouteHop(
            pool=pool,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            variant=pool.variant,
            price_impact_bps=impact,
        )

    def _simulate_exact_in(
        self,
        legs: list[tuple[Asset, Asset]],
        leg_pools: list[list[PoolSnapshot]],
        amount_in: int,
    ) -> list[RouteHop] | None:
        hops = []
        current = amount_in
        for (token_in, token_out), pools in zip(legs, leg_pools):
            best_pool, best_out = None, 0
            for pool in pools:
                reserve_in, reserve_out = pool.reserves_for(token_in)
                out = get_amount_out(current, reserve_in, reserve_out, pool.fee_bps)
                if out > best_out:
                    best_pool, best_out = pool, out
            if best_pool is None:
                return None
            hops.append(self._hop(best_pool, token_in, token_out, current, best_out))
            current = best_out
        return hops

    def _simulate_exact_out(
        self,
        legs: list[tuple[Asset, Asset]],
        leg_pools: list[list[PoolSnapshot]],
        amount_out: int,
    ) -> list[RouteHop] | None:
        hops = []
        current = amount_out
        for (token_in, token_out), pools in reversed(list(zip(legs, leg_pools))):
            best_pool, best_in = None, None
            for pool in pools:
                reserve_in, reserve_out = pool.reserves_for(token_in)
                try:
                    needed = get_amount_in(current, reserve_in, reserve_out, pool.fee_bps)
                except InsufficientLiquidity:
                    continue
                if best_in is None or needed < best_in:
                    best_pool, best_in = pool, needed
            if best_pool is None:
                return None
            hops.append(self._hop(best_pool, token_in, token_out, best_in, current))
            current = best_in
        hops.reverse()
        return hops
