"""Core data types for the DeDust connector."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from functools import total_ordering

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..pricing.amm import MAX_PRICE_IMPACT_BPS, compound_price_impact_bps
from .address import Address


class AssetKind(str, Enum):
    NATIVE = "native"
    JETTON = "jetton"


class PoolVariant(str, Enum):
    VOLATILE = "volatile"
    STABLE = "stable"


class SwapSide(str, Enum):
    SELL = "SELL"
    BUY = "BUY"


class LiquidityOperation(str, Enum):
    ADD = "add"
    REMOVE = "remove"


@total_ordering
class Asset(BaseModel):
    """Native TON or a jetton identified by its master contract address.

    Native sorts before every jetton; jettons order by workchain, then by the
    raw account hash bytes.
    """

    model_config = ConfigDict(frozen=True)

    kind: AssetKind = Field(description="Asset kind")
    address: Address | None = Field(
        default=None, description="Jetton master address (None for native)"
    )

    @model_validator(mode="after")
    def _check_address(self) -> "Asset":
        if self.kind is AssetKind.NATIVE and self.address is not None:
            raise ValueError("native asset cannot carry an address")
        if self.kind is AssetKind.JETTON and self.address is None:
            raise ValueError("jetton asset requires an address")
        return self

    @classmethod
    def native(cls) -> "Asset":
        return cls(kind=AssetKind.NATIVE)

    @classmethod
    def jetton(cls, address: Address | str) -> "Asset":
        if isinstance(address, str):
            address = Address.parse(address)
        return cls(kind=AssetKind.JETTON, address=address)

    @property
    def is_native(self) -> bool:
        return self.kind is AssetKind.NATIVE

    def sort_key(self) -> tuple[int, int, bytes]:
        if self.address is None:
            return (0, 0, b"")
        return (1, self.address.workchain, self.address.hash_part)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Asset):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        return "native" if self.address is None else str(self.address)


def canonical_pair(asset_a: Asset, asset_b: Asset) -> tuple[Asset, Asset]:
    """Order two assets the way pools store them."""
    return (asset_a, asset_b) if asset_a < asset_b else (asset_b, asset_a)


class PoolSnapshot(BaseModel):
    """Point-in-time pool state; assets are stored in canonical order."""

    model_config = ConfigDict(frozen=True)

    pool_address: Address = Field(description="Pool contract address")
    asset_x: Asset = Field(description="Lower asset of the canonical pair")
    asset_y: Asset = Field(description="Higher asset of the canonical pair")
    reserve_x: int = Field(ge=0, description="Reserve of asset_x in smallest units")
    reserve_y: int = Field(ge=0, description="Reserve of asset_y in smallest units")
    fee_bps: int = Field(ge=0, lt=10_000, description="Trade fee in basis points")
    lp_total_supply: int = Field(ge=0, description="LP token total supply")
    variant: PoolVariant = Field(description="Pool variant")
    fetched_at: datetime = Field(description="When the state was read")

    @model_validator(mode="after")
    def _check_order(self) -> "PoolSnapshot":
        if not self.asset_x < self.asset_y:
            raise ValueError("pool assets must be distinct and canonically ordered")
        return self

    def has_liquidity(self) -> bool:
        return self.reserve_x > 0 and self.reserve_y > 0

    def contains(self, asset: Asset) -> bool:
        return asset == self.asset_x or asset == self.asset_y

    def other(self, asset: Asset) -> Asset:
        if asset == self.asset_x:
            return self.asset_y
        if asset == self.asset_y:
            return self.asset_x
        raise ValueError(f"Asset {asset} is not part of pool {self.pool_address}")

    def reserves_for(self, asset_in: Asset) -> tuple[int, int]:
        """Return ``(reserve_in, reserve_out)`` for a trade selling ``asset_in``."""
        if asset_in == self.asset_x:
            return self.reserve_x, self.reserve_y
        if asset_in == self.asset_y:
            return self.reserve_y, self.reserve_x
        raise ValueError(f"Asset {asset_in} is not part of pool {self.pool_address}")


class RouteHop(BaseModel):
    """Single simulated swap through one pool."""

    model_config = ConfigDict(frozen=True)

    pool: PoolSnapshot = Field(description="Pool the hop trades through")
    token_in: Asset = Field(description="Asset sold into the pool")
    token_out: Asset = Field(description="Asset bought from the pool")
    amount_in: int = Field(gt=0, description="Input amount in smallest units")
    amount_out: int = Field(gt=0, description="Output amount in smallest units")
    variant: PoolVariant = Field(description="Pool variant")
    price_impact_bps: int = Field(
        default=0, ge=0, le=MAX_PRICE_IMPACT_BPS, description="Hop price impact"
    )

    @model_validator(mode="after")
    def _check_tokens(self) -> "RouteHop":
        if self.token_in == self.token_out:
            raise ValueError("token_in and token_out must be different")
        if not (self.pool.contains(self.token_in) and self.pool.contains(self.token_out)):
            raise ValueError("hop tokens must belong to the hop pool")
        return self


class Route(BaseModel):
    """Ordered, chained sequence of hops."""

    model_config = ConfigDict(frozen=True)

    hops: list[RouteHop] = Field(description="Hops in execution order")

    @model_validator(mode="after")
    def _check_chain(self) -> "Route":
        if not self.hops:
            raise ValueError("route must contain at least one hop")
        for index, (current, following) in enumerate(zip(self.hops, self.hops[1:])):
            if current.token_out != following.token_in:
                raise ValueError(
                    f"hop {index + 1} token_in must match hop {index} token_out"
                )
        return self

    @property
    def token_in(self) -> Asset:
        return self.hops[0].token_in

    @property
    def token_out(self) -> Asset:
        return self.hops[-1].token_out

    @property
    def amount_in(self) -> int:
        return self.hops[0].amount_in

    @property
    def amount_out(self) -> int:
        return self.hops[-1].amount_out

    @property
    def hop_count(self) -> int:
        return len(self.hops)

    @property
    def total_fee_bps(self) -> int:
        return sum(hop.pool.fee_bps for hop in self.hops)

    @property
    def price_impact_bps(self) -> int:
        return compound_price_impact_bps([hop.price_impact_bps for hop in self.hops])

    def describe(self) -> str:
        path = [str(self.token_in)] + [str(hop.token_out) for hop in self.hops]
        return " -> ".join(path)


class Quote(BaseModel):
    """Time-bounded swap quote that can later be committed to execution."""

    model_config = ConfigDict(frozen=True)

    quote_id: str = Field(description="Unique quote identifier")
    side: SwapSide = Field(description="SELL (exact input) or BUY (exact output)")
    route: Route = Field(description="Route the quote was priced on")
    amount_in: int = Field(gt=0, description="Input amount in smallest units")
    amount_out: int = Field(gt=0, description="Expected output in smallest units")
    amount_out_min: int = Field(ge=0, description="Minimum acceptable output")
    amount_in_max: int = Field(gt=0, description="Maximum input after slippage")
    price_impact_bps: int = Field(ge=0, le=MAX_PRICE_IMPACT_BPS)
    gas_estimate: int = Field(ge=0, description="Estimated gas in nanotons")
    slippage_bps: int = Field(ge=0, le=5_000, description="Slippage tolerance")
    created_at: datetime = Field(description="Creation time")
    expires_at: datetime = Field(description="Expiry time")

    @model_validator(mode="after")
    def _check_invariants(self) -> "Quote":
        if self.amount_out_min > self.amount_out:
            raise ValueError("amount_out_min cannot be greater than amount_out")
        if self.amount_in_max < self.amount_in:
            raise ValueError("amount_in_max cannot be less than amount_in")
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be after created_at")
        return self

    @property
    def price_impact_pct(self) -> Decimal:
        return Decimal(self.price_impact_bps) / 100


class LiquidityQuote(BaseModel):
    """Expected outcome of depositing into or withdrawing from a pool."""

    model_config = ConfigDict(frozen=True)

    pool_address: Address = Field(description="Pool contract address")
    operation: LiquidityOperation = Field(description="add or remove")
    base_asset: Asset = Field(description="Base asset of the request")
    quote_asset: Asset = Field(description="Quote asset of the request")
    base_amount: int = Field(ge=0, description="Base required (add) or received (remove)")
    quote_amount: int = Field(
        ge=0, description="Quote required (add) or received (remove)"
    )
    lp_token_delta: int = Field(ge=0, description="LP tokens minted or burned")
    price_impact_bps: int = Field(ge=0, le=MAX_PRICE_IMPACT_BPS)
    pool_share_percent: Decimal = Field(
        ge=0, le=100, description="Share of the pool after the operation"
    )
    fee_bps: int = Field(ge=0, description="Pool trade fee in basis points")
    variant: PoolVariant = Field(description="Pool variant")
    base_limited: bool = Field(
        default=True, description="Whether the base amount bound the deposit"
    )


class ClaimableFees(BaseModel):
    """Fees accrued to a position, per side."""

    model_config = ConfigDict(frozen=True)

    base_amount: int = Field(default=0, ge=0)
    quote_amount: int = Field(default=0, ge=0)

    def is_collectable(self, minimum: int = 0) -> bool:
        return self.base_amount + self.quote_amount > minimum


class LiquidityPosition(BaseModel):
    """Projection of an owner's LP balance onto current reserves."""

    model_config = ConfigDict(frozen=True)

    owner: Address = Field(description="Position owner wallet")
    pool_address: Address = Field(description="Pool contract address")
    lp_token_balance: int = Field(ge=0, description="LP tokens held")
    implied_base_amount: int = Field(ge=0)
    implied_quote_amount: int = Field(ge=0)
    pool_share_percent: Decimal = Field(ge=0, le=100)
    claimable_fees: ClaimableFees = Field(default_factory=ClaimableFees)
    created_at: datetime = Field(description="When the projection was first made")
    last_updated: datetime = Field(description="When the projection was refreshed")

    @property
    def is_active(self) -> bool:
        return self.lp_token_balance > 0
