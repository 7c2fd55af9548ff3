"""Constant-product AMM pricing.

Pure integer functions: reserves, amounts and fees are Python ints so
intermediate products never overflow and never touch floating point.
"""

from decimal import Decimal
from math import isqrt

from ..core.errors import InsufficientLiquidity, InvalidAmount

BPS = 10_000
MAX_PRICE_IMPACT_BPS = 1_000  # displayed impact is capped at 10%


def _check_fee(fee_bps: int) -> None:
    if fee_bps < 0 or fee_bps >= BPS:
        raise ValueError(f"Fee must be within [0, {BPS}) bps, got {fee_bps}")


def amount_after_fee(amount_in: int, fee_bps: int) -> int:
    """Input left for the curve after the pool fee (rounds toward the pool)."""
    _check_fee(fee_bps)
    return amount_in * (BPS - fee_bps) // BPS


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int) -> int:
    """Output received for selling ``amount_in`` into the pool.

    Zero reserves on either side yield zero output.
    """
    if amount_in < 0:
        raise InvalidAmount(f"Amount must be non-negative, got {amount_in}")
    if reserve_in <= 0 or reserve_out <= 0:
        return 0
    in_after_fee = amount_after_fee(amount_in, fee_bps)
    return in_after_fee * reserve_out // (reserve_in + in_after_fee)


def get_amount_in(amount_out: int, reserve_in: int, reserve_out: int, fee_bps: int) -> int:
    """Smallest input whose output is at least ``amount_out``.

    Raises:
        InvalidAmount: If ``amount_out`` is not positive
        InsufficientLiquidity: If the pool cannot pay ``amount_out``
    """
    if amount_out <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount_out}")
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidity("Pool has no liquidity")
    if amount_out >= reserve_out:
        raise InsufficientLiquidity(
            f"Requested output {amount_out} exceeds pool reserve {reserve_out}"
        )
    _check_fee(fee_bps)

    numerator = amount_out * reserve_in
    denominator = reserve_out - amount_out
    in_after_fee = -(-numerator // denominator)
    return -(-in_after_fee * BPS // (BPS - fee_bps))


def spot_price(reserve_in: int, reserve_out: int) -> Decimal:
    """Marginal price of the input asset in output units."""
    if reserve_in <= 0 or reserve_out <= 0:
        return Decimal(0)
    return Decimal(reserve_out) / Decimal(reserve_in)


def execution_price(amount_in: int, amount_out: int) -> Decimal:
    if amount_in <= 0:
        return Decimal(0)
    return Decimal(amount_out) / Decimal(amount_in)


def price_impact_bps(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int) -> int:
    """Deviation of the execution price from the spot price, in bps.

    Uses the exact (unfloored) curve output, which reduces to
    ``(fee * Rin + a * (BPS - fee)) / (BPS * Rin + a * (BPS - fee))``,
    which is non-decreasing in ``amount_in``. Capped at
    :data:`MAX_PRICE_IMPACT_BPS`.
    """
    if reserve_in <= 0 or reserve_out <= 0 or amount_in <= 0:
        return 0
    _check_fee(fee_bps)
    scaled_in = amount_in * (BPS - fee_bps)
    numerator = fee_bps * reserve_in + scaled_in
    denominator = BPS * reserve_in + scaled_in
    impact = numerator * BPS // denominator
    return min(impact, MAX_PRICE_IMPACT_BPS)


def compound_price_impact_bps(impacts: list[int]) -> int:
    """Combine per-hop impacts multiplicatively."""
    remaining = BPS
    for impact in impacts:
        remaining = remaining * (BPS - impact) // BPS
    return min(BPS - remaining, MAX_PRICE_IMPACT_BPS)


def apply_slippage_down(amount: int, slippage_bps: int) -> int:
    """Floor of ``amount`` reduced by ``slippage_bps``."""
    return amount * (BPS - slippage_bps) // BPS


def apply_slippage_up(amount: int, slippage_bps: int) -> int:
    """Ceiling of ``amount`` grown by ``slippage_bps``."""
    return -(-amount * (BPS + slippage_bps) // BPS)


def initial_lp_amount(amount_a: int, amount_b: int) -> int:
    """LP tokens minted by the first deposit into an empty pool."""
    return isqrt(amount_a * amount_b)
