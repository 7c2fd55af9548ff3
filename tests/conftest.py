"""Shared fixtures: well-known assets and an in-memory pool provider."""

import asyncio
from datetime import UTC, datetime

import pytest

from dedust.core.address import Address
from dedust.core.errors import ProviderError
from dedust.core.types import Asset, PoolSnapshot, PoolVariant, canonical_pair
from dedust.pools.identity import derive_pool_address

FACTORY = Address.parse("EQBfBWT7X2BHg9tXAxzhz2aKiNTU1tpt5NsiK0uSDW_YAJ67")

TON = Asset.native()
USDT = Asset.jetton("0:b113a994b5024a16719f69139328eb759596c38a25f59028b146fecdc3621dfe")
WBTC = Asset.jetton("0:" + "b7" * 32)
USDC = Asset.jetton("0:" + "c1" * 32)


def make_pool(
    asset_a: Asset,
    asset_b: Asset,
    reserve_a: int,
    reserve_b: int,
    fee_bps: int = 30,
    lp_total_supply: int | None = None,
    variant: PoolVariant = PoolVariant.VOLATILE,
) -> PoolSnapshot:
    """Build a snapshot from reserves given in (asset_a, asset_b) order."""
    asset_x, asset_y = canonical_pair(asset_a, asset_b)
    reserve_x, reserve_y = (reserve_a, reserve_b) if asset_x == asset_a else (reserve_b, reserve_a)
    if lp_total_supply is None:
        lp_total_supply = 1_000_000_000_000
    return PoolSnapshot(
        pool_address=derive_pool_address(FACTORY, asset_a, asset_b, variant),
        asset_x=asset_x,
        asset_y=asset_y,
        reserve_x=reserve_x,
        reserve_y=reserve_y,
        fee_bps=fee_bps,
        lp_total_supply=lp_total_supply,
        variant=variant,
        fetched_at=datetime.now(UTC),
    )


class FakePoolProvider:
    """In-memory pool provider that can fail or stall on chosen pairs."""

    def __init__(self, pools: list[PoolSnapshot] | None = None) -> None:
        self.pools = {}
        self.failing: set = set()
        self.stalled: set = set()
        self.calls: list = []
        for pool in pools or []:
            self.add(pool)

    @staticmethod
    def key(asset_a: Asset, asset_b: Asset, variant: PoolVariant) -> tuple:
        asset_x, asset_y = canonical_pair(asset_a, asset_b)
        return asset_x, asset_y, variant

    def add(self, pool: PoolSnapshot) -> None:
        self.pools[(pool.asset_x, pool.asset_y, pool.variant)] = pool

    def fail(self, asset_a: Asset, asset_b: Asset, variant: PoolVariant = PoolVariant.VOLATILE) -> None:
        self.failing.add(self.key(asset_a, asset_b, variant))

    def stall(self, asset_a: Asset, asset_b: Asset, variant: PoolVariant = PoolVariant.VOLATILE) -> None:
        self.stalled.add(self.key(asset_a, asset_b, variant))

    async def get_pool_snapshot(
        self, asset_a: Asset, asset_b: Asset, variant: PoolVariant
    ) -> PoolSnapshot | None:
        key = self.key(asset_a, asset_b, variant)
        self.calls.append(key)
        await asyncio.sleep(0)
        if key in self.stalled:
            await asyncio.sleep(60)
        if key in self.failing:
            raise ProviderError(f"provider down for {asset_a}/{asset_b}")
        return self.pools.get(key)


@pytest.fixture
def ton_usdt_pool() -> PoolSnapshot:
    """10,000 TON / 25,000 USDT at 0.3%."""
    return make_pool(TON, USDT, 10_000 * 10**9, 25_000 * 10**6, fee_bps=30)


@pytest.fixture
def provider(ton_usdt_pool) -> FakePoolProvider:
    return FakePoolProvider([ton_usdt_pool])
