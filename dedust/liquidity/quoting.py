"""Liquidity add/remove quoting and position projection.

Adding to a non-empty pool preserves the reserve ratio: the caller's amounts
are trimmed to the matched pair, and LP minted is proportional to the smaller
side's share of reserves. Removing returns both reserves pro rata to the LP
burned.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation

import structlog

from ..core.address import Address
from ..core.errors import (
    InsufficientLiquidity,
    InvalidAmount,
    InvalidAsset,
    PoolNotFound,
    PositionNotFound,
    ProviderError,
    SlippageExceeded,
)
from ..core.interfaces import LpBalanceSource, PoolSnapshotProvider
from ..core.types import (
    Asset,
    ClaimableFees,
    LiquidityOperation,
    LiquidityPosition,
    LiquidityQuote,
    PoolSnapshot,
    PoolVariant,
)
from ..pricing.amm import BPS, MAX_PRICE_IMPACT_BPS, initial_lp_amount

logger = structlog.get_logger(__name__)

MAX_REMOVE_IMPACT_BPS = 500


def _share_percent(part: int, whole: int) -> Decimal:
    """``part / whole`` as a percentage with two decimals, floored."""
    if whole <= 0:
        return Decimal(0)
    return Decimal(part * BPS // whole) / 100


def _oriented_reserves(
    pool: PoolSnapshot, base_asset: Asset, quote_asset: Asset
) -> tuple[int, int]:
    if base_asset == quote_asset:
        raise InvalidAsset("Base and quote assets must differ")
    if not (pool.contains(base_asset) and pool.contains(quote_asset)):
        raise InvalidAsset(
            f"Pool {pool.pool_address} does not trade {base_asset}/{quote_asset}"
        )
    return pool.reserves_for(base_asset)


def quote_add_liquidity(
    pool: PoolSnapshot,
    base_asset: Asset,
    quote_asset: Asset,
    base_amount: int,
    quote_amount: int,
    min_lp_tokens: int | None = None,
) -> LiquidityQuote:
    """Quote a deposit of up to ``base_amount`` and ``quote_amount``.

    Args:
        pool: Current pool state
        base_asset: Base asset of the request
        quote_asset: Quote asset of the request
        base_amount: Maximum base to deposit in smallest units
        quote_amount: Maximum quote to deposit in smallest units
        min_lp_tokens: Optional floor on LP tokens minted

    Returns:
        Quote with the matched amounts actually deposited

    Raises:
        InvalidAmount: If an amount is not positive or the deposit mints nothing
        SlippageExceeded: If fewer than ``min_lp_tokens`` would be minted
    """
    if base_amount <= 0 or quote_amount <= 0:
        raise InvalidAmount("Base and quote amounts must both be positive")
    reserve_base, reserve_quote = _oriented_reserves(pool, base_asset, quote_asset)
    total_supply = pool.lp_total_supply

    if total_supply == 0 or reserve_base == 0 or reserve_quote == 0:
        matched_base, matched_quote = base_amount, quote_amount
        base_limited = True
        lp_minted = initial_lp_amount(base_amount, quote_amount)
        impact = 0
        share = Decimal(100)
    else:
        optimal_quote = base_amount * reserve_quote // reserve_base
        if optimal_quote <= quote_amount:
            matched_base, matched_quote = base_amount, optimal_quote
            base_limited = True
        else:
            matched_base = quote_amount * reserve_base // reserve_quote
            matched_quote = quote_amount
            base_limited = False

        if matched_base == 0 or matched_quote == 0:
            raise InvalidAmount("Deposit is too small for the pool ratio")

        lp_minted = min(
            matched_base * total_supply // reserve_base,
            matched_quote * total_supply // reserve_quote,
        )
        deviation = abs(matched_quote * reserve_base - matched_base * reserve_quote)
        impact = min(deviation * BPS // (matched_base * reserve_quote), MAX_PRICE_IMPACT_BPS)
        share = _share_percent(lp_minted, total_supply + lp_minted)

    if lp_minted == 0:
        raise InvalidAmount("Deposit is too small to mint LP tokens")
    if min_lp_tokens is not None and lp_minted < min_lp_tokens:
        raise SlippageExceeded(
            f"Expected LP tokens {lp_minted} below minimum {min_lp_tokens}"
        )

    return LiquidityQuote(
        pool_address=pool.pool_address,
        operation=LiquidityOperation.ADD,
        base_asset=base_asset,
        quote_asset=quote_asset,
        base_amount=matched_base,
        quote_amount=matched_quote,
        lp_token_delta=lp_minted,
        price_impact_bps=impact,
        pool_share_percent=share,
        fee_bps=pool.fee_bps,
        variant=pool.variant,
        base_limited=base_limited,
    )


def quote_remove_liquidity(
    pool: PoolSnapshot,
    base_asset: Asset,
    quote_asset: Asset,
    lp_amount: int,
    min_base_amount: int | None = None,
    min_quote_amount: int | None = None,
) -> LiquidityQuote:
    """Quote burning ``lp_amount`` LP tokens.

    Raises:
        InvalidAmount: If ``lp_amount`` is not positive
        InsufficientLiquidity: If ``lp_amount`` exceeds the LP supply
        SlippageExceeded: If either side falls below its floor
    """
    if lp_amount <= 0:
        raise InvalidAmount(f"LP amount must be positive, got {lp_amount}")
    reserve_base, reserve_quote = _oriented_reserves(pool, base_asset, quote_asset)
    total_supply = pool.lp_total_supply
    if lp_amount > total_supply:
        raise InsufficientLiquidity(
            f"LP amount {lp_amount} exceeds total supply {total_supply}"
        )

    base_out = reserve_base * lp_amount // total_supply
    quote_out = reserve_quote * lp_amount // total_supply

    # relative gap between the two sides' withdrawal ratios
    impact = 0
    if reserve_base > 0 and reserve_quote > 0:
        deviation = abs(base_out * reserve_quote - quote_out * reserve_base)
        impact = min(deviation * BPS // (reserve_base * reserve_quote), MAX_REMOVE_IMPACT_BPS)

    if min_base_amount is not None and base_out < min_base_amount:
        raise SlippageExceeded(
            f"Expected base amount {base_out} below minimum {min_base_amount}"
        )
    if min_quote_amount is not None and quote_out < min_quote_amount:
        raise SlippageExceeded(
            f"Expected quote amount {quote_out} below minimum {min_quote_amount}"
        )

    return LiquidityQuote(
        pool_address=pool.pool_address,
        operation=LiquidityOperation.REMOVE,
        base_asset=base_asset,
        quote_asset=quote_asset,
        base_amount=base_out,
        quote_amount=quote_out,
        lp_token_delta=lp_amount,
        price_impact_bps=impact,
        pool_share_percent=_share_percent(lp_amount, total_supply),
        fee_bps=pool.fee_bps,
        variant=pool.variant,
    )


def lp_amount_for_percentage(lp_balance: int, percentage: Decimal | str | int | float) -> int:
    """LP tokens corresponding to ``percentage`` (0-100) of a balance.

    The percentage is truncated to two decimals before applying it.
    """
    try:
        pct = Decimal(str(percentage))
    except InvalidOperation as e:
        raise InvalidAmount(f"Percentage must be a number, got {percentage!r}") from e
    if not pct.is_finite() or pct <= 0 or pct > 100:
        raise InvalidAmount(f"Percentage must be within (0, 100], got {percentage}")
    return lp_balance * int(pct * 100) // BPS


def build_position(
    pool: PoolSnapshot,
    base_asset: Asset,
    quote_asset: Asset,
    owner: Address,
    lp_balance: int,
    now: datetime,
) -> LiquidityPosition:
    """Project an LP balance onto the pool's current reserves."""
    reserve_base, reserve_quote = _oriented_reserves(pool, base_asset, quote_asset)
    total_supply = pool.lp_total_supply
    if total_supply > 0:
        implied_base = reserve_base * lp_balance // total_supply
        implied_quote = reserve_quote * lp_balance // total_supply
    else:
        implied_base = implied_quote = 0

    return LiquidityPosition(
        owner=owner,
        pool_address=pool.pool_address,
        lp_token_balance=lp_balance,
        implied_base_amount=implied_base,
        implied_quote_amount=implied_quote,
        pool_share_percent=min(_share_percent(lp_balance, total_supply), Decimal(100)),
        claimable_fees=ClaimableFees(),
        created_at=now,
        last_updated=now,
    )


class LiquidityQuoter:
    """Reads pool state and LP balances to quote liquidity operations."""

    def __init__(
        self,
        pools: PoolSnapshotProvider,
        lp_balances: LpBalanceSource | None = None,
        fetch_timeout: float = 10.0,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize liquidity quoter.

        Args:
            pools: Pool snapshot source, usually a ``PoolStateCache``
            lp_balances: LP balance source (required for positions)
            fetch_timeout: Timeout of a single pool or balance read in seconds
            now_fn: Optional function returning the current UTC time (for testing)
        """
        self.pools = pools
        self.lp_balances = lp_balances
        self.fetch_timeout = fetch_timeout
        self._now_fn = now_fn or (lambda: datetime.now(UTC))

    async def _read(self, awaitable, description: str):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.fetch_timeout)
        except asyncio.TimeoutError as e:
            logger.error("Liquidity read timed out", read=description, timeout=self.fetch_timeout)
            raise ProviderError(f"Timed out reading {description}") from e

    async def get_pool(
        self, base_asset: Asset, quote_asset: Asset, variant: PoolVariant
    ) -> PoolSnapshot:
        """Raises PoolNotFound if no pool is deployed for the pair."""
        if base_asset == quote_asset:
            raise InvalidAsset("Base and quote assets must differ")
        pool = await self._read(
            self.pools.get_pool_snapshot(base_asset, quote_asset, variant),
            f"{variant.value} pool {base_asset}/{quote_asset}",
        )
        if pool is None:
            raise PoolNotFound(
                f"No {variant.value} pool for {base_asset}/{quote_asset}"
            )
        return pool

    async def quote_add(
        self,
        base_asset: Asset,
        quote_asset: Asset,
        base_amount: int,
        quote_amount: int,
        variant: PoolVariant = PoolVariant.VOLATILE,
        min_lp_tokens: int | None = None,
    ) -> LiquidityQuote:
        if base_amount <= 0 or quote_amount <= 0:
            raise InvalidAmount("Base and quote amounts must both be positive")
        pool = await self.get_pool(base_asset, quote_asset, variant)
        quote = quote_add_liquidity(
            pool, base_asset, quote_asset, base_amount, quote_amount, min_lp_tokens
        )
        logger.info(
            "Add liquidity quoted",
            pool=str(pool.pool_address),
            base_amount=quote.base_amount,
            quote_amount=quote.quote_amount,
            lp_tokens=quote.lp_token_delta,
            base_limited=quote.base_limited,
        )
        return quote

    async def quote_remove(
        self,
        base_asset: Asset,
        quote_asset: Asset,
        variant: PoolVariant = PoolVariant.VOLATILE,
        lp_amount: int | None = None,
        percentage: Decimal | None = None,
        owner: Address | None = None,
        position: LiquidityPosition | None = None,
        min_base_amount: int | None = None,
        min_quote_amount: int | None = None,
    ) -> LiquidityQuote:
        """Quote a withdrawal by LP amount or by percentage of a position.

        When withdrawing by percentage without a ``position``, the owner's
        position is read from the chain.

        Raises:
            InvalidAmount: If neither or both of lp_amount and percentage are given
            PositionNotFound: If the owner holds no LP tokens
        """
        if (lp_amount is None) == (percentage is None):
            raise InvalidAmount("Exactly one of lp_amount or percentage is required")
        if lp_amount is not None and lp_amount <= 0:
            raise InvalidAmount(f"LP amount must be positive, got {lp_amount}")

        pool = await self.get_pool(base_asset, quote_asset, variant)

        if percentage is not None:
            if position is None:
                if owner is None:
                    raise InvalidAmount("owner or position is required for percentage withdrawal")
                position = await self._position_for(pool, base_asset, quote_asset, owner)
            lp_amount = lp_amount_for_percentage(position.lp_token_balance, percentage)
            if lp_amount <= 0:
                raise InvalidAmount("Percentage of the position rounds to zero LP tokens")

        quote = quote_remove_liquidity(
            pool, base_asset, quote_asset, lp_amount, min_base_amount, min_quote_amount
        )
        logger.info(
            "Remove liquidity quoted",
            pool=str(pool.pool_address),
            lp_tokens=lp_amount,
            base_amount=quote.base_amount,
            quote_amount=quote.quote_amount,
        )
        return quote

    async def get_position(
        self,
        owner: Address,
        base_asset: Asset,
        quote_asset: Asset,
        variant: PoolVariant = PoolVariant.VOLATILE,
    ) -> LiquidityPosition:
        pool = await self.get_pool(base_asset, quote_asset, variant)
        return await self._position_for(pool, base_asset, quote_asset, owner)

    async def _position_for(
        self, pool: PoolSnapshot, base_asset: Asset, quote_asset: Asset, owner: Address
    ) -> LiquidityPosition:
        if self.lp_balances is None:
            raise NotImplementedError("No LP balance source configured")
        balance = await self._read(
            self.lp_balances.get_lp_balance(pool.pool_address, owner),
            f"LP balance of {owner} in {pool.pool_address}",
        )
        if balance <= 0:
            raise PositionNotFound(f"No position for {owner} in pool {pool.pool_address}")
        return build_position(pool, base_asset, quote_asset, owner, balance, self._now_fn())
