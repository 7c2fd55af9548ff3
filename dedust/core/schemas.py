"""Request and response models of the connector facade.

Requests carry human-friendly values (token symbols or addresses, decimal
amounts, slippage percentages). Range checks live in the connector so that
violations surface as connector errors rather than model errors.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from .types import LiquidityOperation, PoolVariant, SwapSide


class QuoteSwapRequest(BaseModel):
    """Swap quote request."""

    base: str = Field(description="Base token symbol or address")
    quote: str = Field(description="Quote token symbol or address")
    amount: Decimal = Field(description="Amount of base token (decimal units)")
    side: SwapSide = Field(default=SwapSide.SELL, description="SELL or BUY the base token")
    slippage_pct: Decimal | None = Field(
        default=None, description="Slippage tolerance in percent (default from settings)"
    )
    max_hops: int | None = Field(default=None, description="Hop budget override")


class ExecuteQuoteRequest(BaseModel):
    """Request to execute a previously issued quote."""

    quote_id: str = Field(description="Quote identifier")
    wallet_address: str = Field(description="Wallet that signs the swap")


class QuoteLiquidityRequest(BaseModel):
    """Liquidity add/remove quote request."""

    base: str = Field(description="Base token symbol or address")
    quote: str = Field(description="Quote token symbol or address")
    operation: LiquidityOperation = Field(description="add or remove")
    pool_type: PoolVariant = Field(default=PoolVariant.VOLATILE, description="Pool variant")
    base_amount: Decimal | None = Field(
        default=None, description="Maximum base to deposit (decimal units)"
    )
    quote_amount: Decimal | None = Field(
        default=None, description="Maximum quote to deposit (decimal units)"
    )
    lp_token_amount: int | None = Field(
        default=None, description="LP tokens to burn (smallest units)"
    )
    percentage: Decimal | None = Field(
        default=None, description="Share of the position to withdraw (0-100)"
    )
    wallet_address: str | None = Field(
        default=None, description="Position owner for percentage withdrawals"
    )
    min_lp_tokens: int | None = Field(default=None, description="Floor on LP minted")
    min_base_amount: int | None = Field(default=None, description="Floor on base received")
    min_quote_amount: int | None = Field(default=None, description="Floor on quote received")


class PoolInfoRequest(BaseModel):
    base: str = Field(description="Base token symbol or address")
    quote: str = Field(description="Quote token symbol or address")
    pool_type: PoolVariant = Field(default=PoolVariant.VOLATILE, description="Pool variant")


class PositionInfoRequest(BaseModel):
    wallet_address: str = Field(description="Position owner")
    base: str = Field(description="Base token symbol or address")
    quote: str = Field(description="Quote token symbol or address")
    pool_type: PoolVariant = Field(default=PoolVariant.VOLATILE, description="Pool variant")


class PoolInfo(BaseModel):
    """Human-readable pool view."""

    address: str = Field(description="Pool contract address")
    base_symbol: str = Field(description="Base token symbol")
    quote_symbol: str = Field(description="Quote token symbol")
    base_reserve: Decimal = Field(description="Base reserve (decimal units)")
    quote_reserve: Decimal = Field(description="Quote reserve (decimal units)")
    price: Decimal = Field(description="Spot price of base in quote units")
    fee_pct: Decimal = Field(description="Trade fee in percent")
    lp_total_supply: int = Field(description="LP token total supply")
    pool_type: PoolVariant = Field(description="Pool variant")
    fetched_at: datetime = Field(description="When the pool state was read")


class ExecutionResult(BaseModel):
    """Outcome of submitting a quote's signed message."""

    quote_id: str = Field(description="Executed quote")
    tx_hash: str = Field(description="Hash of the submitted external message")
    wallet_address: str = Field(description="Wallet that signed the swap")
    amount_in: int = Field(description="Input amount of the quote")
    amount_out_min: int = Field(description="Minimum output enforced on chain")
    submitted_at: datetime = Field(description="Submission time")
