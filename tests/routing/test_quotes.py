"""Tests for swap quotes and the quote cache."""

import asyncio
import re
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from dedust.core.errors import (
    InvalidAmount,
    InvalidSlippage,
    NoRouteFound,
    QuoteExpired,
    QuoteNotFound,
)
from dedust.core.types import SwapSide
from dedust.routing.finder import RouteFinder
from dedust.routing.quotes import (
    QuoteBuilder,
    QuoteCache,
    generate_quote_id,
    slippage_pct_to_bps,
)

from conftest import TON, USDT, WBTC, FakePoolProvider, make_pool

START = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


class Clock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def quote_cache(clock):
    return QuoteCache(now_fn=clock)


@pytest.fixture
def builder(provider, quote_cache, clock):
    return QuoteBuilder(RouteFinder(provider), quote_cache, quote_ttl_seconds=60, now_fn=clock)


class TestSlippage:
    """Test percentage to basis point conversion."""

    @pytest.mark.parametrize(
        "pct,expected",
        [
            ("1", 100),
            ("0.5", 50),
            (Decimal("0.005"), 1),
            (0, 0),
            (50, 5_000),
            ("0.125", 13),
        ],
    )
    def test_conversion(self, pct, expected):
        assert slippage_pct_to_bps(pct) == expected

    @pytest.mark.parametrize("pct", ["-0.1", "50.01", "NaN", "Infinity", "abc"])
    def test_rejected(self, pct):
        with pytest.raises(InvalidSlippage):
            slippage_pct_to_bps(pct)


def test_quote_id_format():
    quote_id = generate_quote_id(1_700_000_000_000)

    assert re.fullmatch(r"quote_[0-9a-z]+_[0-9a-f]{12}", quote_id)
    assert quote_id.split("_")[1] == "loyw3v28"
    assert generate_quote_id(1) != generate_quote_id(1)


class TestQuoteBuilder:
    """Test quote construction from the best route."""

    @pytest.mark.asyncio
    async def test_sell_quote(self, builder, quote_cache):
        quote = await builder.build_quote(TON, USDT, 1_000 * 10**9, slippage_bps=100)

        assert quote.side is SwapSide.SELL
        assert quote.amount_in == 1_000 * 10**9
        assert quote.amount_out == 2_266_527_234
        assert quote.amount_out_min == 2_243_861_961
        assert quote.amount_in_max == quote.amount_in
        assert quote.price_impact_bps == 933
        assert quote.gas_estimate == 100_000_000
        assert quote.created_at == START
        assert quote.expires_at == START + timedelta(seconds=60)
        assert quote.quote_id.startswith("quote_")
        assert await quote_cache.get(quote.quote_id) == quote

    @pytest.mark.asyncio
    async def test_buy_quote(self, builder):
        quote = await builder.build_quote(
            TON, USDT, 2_266_527_234, side=SwapSide.BUY, slippage_bps=100
        )

        assert quote.amount_out == 2_266_527_234
        assert quote.amount_in == 999_999_999_661
        assert quote.amount_in_max == 1_009_999_999_658

    @pytest.mark.asyncio
    async def test_zero_slippage(self, builder):
        quote = await builder.build_quote(TON, USDT, 10**9, slippage_bps=0)
        assert quote.amount_out_min == quote.amount_out

    @pytest.mark.asyncio
    async def test_gas_scales_with_hops(self, quote_cache, clock):
        provider = FakePoolProvider(
            [
                make_pool(USDT, TON, 25_000 * 10**6, 10_000 * 10**9),
                make_pool(TON, WBTC, 50_000 * 10**9, 100 * 10**8),
            ]
        )
        builder = QuoteBuilder(
            RouteFinder(provider, bridge_assets=[TON]),
            quote_cache,
            gas_estimate_per_hop=150_000_000,
            now_fn=clock,
        )

        quote = await builder.build_quote(USDT, WBTC, 1_000 * 10**6)

        assert quote.route.hop_count == 2
        assert quote.gas_estimate == 300_000_000

    @pytest.mark.asyncio
    @pytest.mark.parametrize("slippage_bps", [-1, 5_001])
    async def test_invalid_slippage_before_routing(self, builder, provider, slippage_bps):
        with pytest.raises(InvalidSlippage):
            await builder.build_quote(TON, USDT, 10**9, slippage_bps=slippage_bps)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_invalid_amount_before_routing(self, builder, provider):
        with pytest.raises(InvalidAmount):
            await builder.build_quote(TON, USDT, 0)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_no_route_caches_nothing(self, builder, quote_cache):
        with pytest.raises(NoRouteFound):
            await builder.build_quote(TON, WBTC, 10**9)
        assert len(quote_cache) == 0

    def test_ttl_must_be_positive(self, provider, quote_cache):
        with pytest.raises(ValueError):
            QuoteBuilder(RouteFinder(provider), quote_cache, quote_ttl_seconds=0)


class TestQuoteCache:
    """Test quote lookup, expiry and eviction."""

    @pytest.mark.asyncio
    async def test_unknown_quote(self, quote_cache):
        with pytest.raises(QuoteNotFound):
            await quote_cache.get("quote_missing")

    @pytest.mark.asyncio
    async def test_quote_valid_until_expiry(self, builder, quote_cache, clock):
        quote = await builder.build_quote(TON, USDT, 10**9)

        clock.advance(60)
        assert await quote_cache.get(quote.quote_id) == quote

        clock.advance(1)
        with pytest.raises(QuoteExpired):
            await quote_cache.get(quote.quote_id)

    @pytest.mark.asyncio
    async def test_consumed_quote_is_gone(self, builder, quote_cache):
        quote = await builder.build_quote(TON, USDT, 10**9)

        await quote_cache.mark_consumed(quote.quote_id)

        with pytest.raises(QuoteNotFound):
            await quote_cache.get(quote.quote_id)

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self, builder, quote_cache):
        """Test a claimed quote stays readable but cannot be claimed twice."""
        quote = await builder.build_quote(TON, USDT, 10**9)

        assert await quote_cache.claim(quote.quote_id) == quote
        assert await quote_cache.get(quote.quote_id) == quote
        with pytest.raises(QuoteNotFound):
            await quote_cache.claim(quote.quote_id)

        quote_cache.release(quote.quote_id)
        assert await quote_cache.claim(quote.quote_id) == quote

    @pytest.mark.asyncio
    async def test_claim_rejects_expired(self, builder, quote_cache, clock):
        quote = await builder.build_quote(TON, USDT, 10**9)
        clock.advance(61)

        with pytest.raises(QuoteExpired):
            await quote_cache.claim(quote.quote_id)

    @pytest.mark.asyncio
    async def test_sweep(self, builder, quote_cache, clock):
        first = await builder.build_quote(TON, USDT, 10**9)
        clock.advance(30)
        second = await builder.build_quote(TON, USDT, 2 * 10**9)
        clock.advance(45)

        assert await quote_cache.sweep() == 1
        assert len(quote_cache) == 1
        with pytest.raises(QuoteNotFound):
            await quote_cache.get(first.quote_id)
        assert await quote_cache.get(second.quote_id) == second

    @pytest.mark.asyncio
    async def test_background_sweeper(self, builder, clock):
        quote_cache = QuoteCache(sweep_interval_seconds=0.01, now_fn=clock)
        builder.quote_cache = quote_cache
        await builder.build_quote(TON, USDT, 10**9)

        quote_cache.start()
        clock.advance(120)
        await asyncio.sleep(0.05)
        await quote_cache.stop()

        assert len(quote_cache) == 0
