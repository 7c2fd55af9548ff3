"""Swap quote construction and the in-memory quote cache."""

import asyncio
import secrets
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import structlog

from ..core.errors import InvalidAmount, InvalidSlippage, QuoteExpired, QuoteNotFound
from ..core.types import Asset, Quote, SwapSide
from ..pricing.amm import apply_slippage_down, apply_slippage_up
from .finder import RouteFinder

logger = structlog.get_logger(__name__)

MAX_SLIPPAGE_BPS = 5_000
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_quote_id(timestamp_ms: int | None = None) -> str:
    """Return ``quote_<base36 ms timestamp>_<random hex>``."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"quote_{_to_base36(timestamp_ms)}_{secrets.token_hex(6)}"


def slippage_pct_to_bps(slippage_pct: Decimal | str | int | float) -> int:
    """Convert a slippage percentage (``1`` means 1%) to basis points.

    Raises:
        InvalidSlippage: If the value is not a number within [0, 50]
    """
    try:
        pct = Decimal(str(slippage_pct))
    except InvalidOperation as e:
        raise InvalidSlippage(f"Slippage must be a number, got {slippage_pct!r}") from e
    if not pct.is_finite() or pct < 0 or pct > 50:
        raise InvalidSlippage(f"Slippage must be between 0 and 50 percent, got {slippage_pct}")
    return int((pct * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def is_expired(quote: Quote, now: datetime) -> bool:
    return now > quote.expires_at


class QuoteCache:
    """Quotes awaiting execution, keyed by quote id."""

    def __init__(
        self,
        sweep_interval_seconds: float = 60.0,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize quote cache.

        Args:
            sweep_interval_seconds: Interval of the background eviction sweep
            now_fn: Optional function returning the current UTC time (for testing)
        """
        self.sweep_interval_seconds = sweep_interval_seconds
        self._now_fn = now_fn or (lambda: datetime.now(UTC))
        self._quotes: dict[str, Quote] = {}
        self._claimed: set[str] = set()
        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task | None = None

    async def put(self, quote: Quote) -> None:
        async with self._lock:
            self._quotes[quote.quote_id] = quote

    async def get(self, quote_id: str) -> Quote:
        """Return a live quote without removing it.

        Raises:
            QuoteNotFound: If the id is unknown or already consumed
            QuoteExpired: If the quote is past its expiry
        """
        async with self._lock:
            quote = self._quotes.get(quote_id)
        if quote is None:
            raise QuoteNotFound(f"Quote {quote_id} not found")
        if is_expired(quote, self._now_fn()):
            raise QuoteExpired(f"Quote {quote_id} expired at {quote.expires_at.isoformat()}")
        return quote

    async def claim(self, quote_id: str) -> Quote:
        """Reserve a live quote for one execution attempt.

        A claimed quote stays visible to :meth:`get` but cannot be claimed
        again until it is released or consumed.

        Raises:
            QuoteNotFound: If the id is unknown, consumed or already claimed
            QuoteExpired: If the quote is past its expiry
        """
        async with self._lock:
            quote = self._quotes.get(quote_id)
            if quote is None:
                raise QuoteNotFound(f"Quote {quote_id} not found")
            if is_expired(quote, self._now_fn()):
                raise QuoteExpired(f"Quote {quote_id} expired at {quote.expires_at.isoformat()}")
            if quote_id in self._claimed:
                raise QuoteNotFound(f"Quote {quote_id} is already being executed")
            self._claimed.add(quote_id)
        logger.debug("Quote claimed", quote_id=quote_id)
        return quote

    def release(self, quote_id: str) -> None:
        """Return a claimed quote so it can be executed again."""
        self._claimed.discard(quote_id)

    async def mark_consumed(self, quote_id: str) -> None:
        """Remove a quote so it cannot be executed twice."""
        async with self._lock:
            self._quotes.pop(quote_id, None)
            self._claimed.discard(quote_id)
        logger.debug("Quote consumed", quote_id=quote_id)

    async def sweep(self) -> int:
        """Evict expired quotes and return how many were removed."""
        now = self._now_fn()
        async with self._lock:
            expired = [qid for qid, quote in self._quotes.items() if is_expired(quote, now)]
            for quote_id in expired:
                del self._quotes[quote_id]
                self._claimed.discard(quote_id)

        if expired:
            logger.debug("Cleaned expired quotes", count=len(expired))
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            await self.sweep()

    def start(self) -> None:
        """Start the background sweep task."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Cancel the background sweep task."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    def __len__(self) -> int:
        return len(self._quotes)


class QuoteBuilder:
    """Turns the best route into a slippage-bounded, time-limited quote."""

    def __init__(
        self,
        finder: RouteFinder,
        quote_cache: QuoteCache,
        quote_ttl_seconds: float = 60.0,
        gas_estimate_per_hop: int = 100_000_000,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize quote builder.

        Args:
            finder: Route finder used to price requests
            quote_cache: Cache receiving every built quote
            quote_ttl_seconds: Quote lifetime in seconds
            gas_estimate_per_hop: Gas reserved per hop in nanotons
            now_fn: Optional function returning the current UTC time (for testing)
        """
        if quote_ttl_seconds <= 0:
            raise ValueError("quote_ttl_seconds must be positive")
        self.finder = finder
        self.quote_cache = quote_cache
        self.quote_ttl_seconds = quote_ttl_seconds
        self.gas_estimate_per_hop = gas_estimate_per_hop
        self._now_fn = now_fn or (lambda: datetime.now(UTC))

    async def build_quote(
        self,
        source: Asset,
        dest: Asset,
        amount: int,
        side: SwapSide = SwapSide.SELL,
        slippage_bps: int = 100,
        max_hops: int | None = None,
    ) -> Quote:
        """Price a swap and register the quote for later execution.

        Args:
            source: Asset sold
            dest: Asset bought
            amount: Exact input (SELL) or exact output (BUY) in smallest units
            side: SELL or BUY
            slippage_bps: Slippage tolerance in basis points
            max_hops: Hop budget overriding the finder default

        Returns:
            Cached quote for the best route

        Raises:
            InvalidAmount: If amount is not positive
            InvalidSlippage: If slippage is outside [0, 5000] bps
            NoRouteFound: If no route exists
            RoutingUnavailable: If pool state could not be read
        """
        if slippage_bps < 0 or slippage_bps > MAX_SLIPPAGE_BPS:
            raise InvalidSlippage(
                f"Slippage must be between 0 and {MAX_SLIPPAGE_BPS} bps, got {slippage_bps}"
            )
        if amount <= 0:
            raise InvalidAmount(f"Amount must be positive, got {amount}")

        route = await self.finder.find_best_route(source, dest, amount, side, max_hops)

        created_at = self._now_fn()
        amount_in_max = (
            apply_slippage_up(route.amount_in, slippage_bps)
            if side is SwapSide.BUY
            else route.amount_in
        )
        quote = Quote(
            quote_id=generate_quote_id(int(created_at.timestamp() * 1000)),
            side=side,
            route=route,
            amount_in=route.amount_in,
            amount_out=route.amount_out,
            amount_out_min=apply_slippage_down(route.amount_out, slippage_bps),
            amount_in_max=amount_in_max,
            price_impact_bps=route.price_impact_bps,
            gas_estimate=self.gas_estimate_per_hop * route.hop_count,
            slippage_bps=slippage_bps,
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=self.quote_ttl_seconds),
        )
        await self.quote_cache.put(quote)

        logger.info(
            "Swap quote generated",
            quote_id=quote.quote_id,
            side=side.value,
            path=route.describe(),
            amount_in=quote.amount_in,
            amount_out=quote.amount_out,
            amount_out_min=quote.amount_out_min,
            price_impact_bps=quote.price_impact_bps,
        )
        return quote
