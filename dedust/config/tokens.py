"""Token list and human-friendly token resolution."""

from decimal import ROUND_DOWN, Decimal, InvalidOperation

from pydantic import BaseModel, Field

from ..core.address import Address
from ..core.errors import InvalidAmount, InvalidAsset
from ..core.types import Asset

# Address the TON ecosystem uses as a stand-in for the native coin
ZERO_ADDRESS = "EQAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAM9c"
NATIVE_ALIASES = {"TON", "NATIVE"}


class TokenInfo(BaseModel):
    """Token metadata from configuration."""

    symbol: str = Field(description="Ticker symbol")
    name: str = Field(default="", description="Display name")
    address: str | None = Field(
        default=None, description="Jetton master address (None for native TON)"
    )
    decimals: int = Field(ge=0, le=255, description="Decimal places of the smallest unit")

    @property
    def is_native(self) -> bool:
        return self.address is None

    def asset(self) -> Asset:
        if self.address is None:
            return Asset.native()
        return Asset.jetton(self.address)


TON = TokenInfo(symbol="TON", name="Toncoin", address=None, decimals=9)


class TokenRegistry:
    """Resolves symbols and addresses to configured tokens."""

    def __init__(self, tokens: list[TokenInfo] | None = None) -> None:
        self._by_symbol: dict[str, TokenInfo] = {"TON": TON}
        self._by_asset: dict[Asset, TokenInfo] = {Asset.native(): TON}
        for token in tokens or []:
            self.add(token)

    def add(self, token: TokenInfo) -> None:
        """Register a token; a native entry replaces the built-in TON."""
        asset = token.asset()
        self._by_symbol[token.symbol.upper()] = token
        self._by_asset[asset] = token

    def resolve(self, identifier: str) -> TokenInfo:
        """Look a token up by symbol, native alias, or address.

        Raises:
            InvalidAsset: If the identifier names no configured token
        """
        key = identifier.strip()
        if not key:
            raise InvalidAsset("Token identifier is empty")
        if key.upper() in NATIVE_ALIASES:
            return self._by_asset[Asset.native()]

        token = self._by_symbol.get(key.upper())
        if token is not None:
            return token

        try:
            address = Address.parse(key)
        except ValueError as e:
            raise InvalidAsset(f"Unknown token: {identifier}") from e

        if address.is_zero():
            return self._by_asset[Asset.native()]
        token = self._by_asset.get(Asset.jetton(address))
        if token is None:
            raise InvalidAsset(f"Token {identifier} is not in the token list")
        return token

    def asset(self, identifier: str) -> Asset:
        return self.resolve(identifier).asset()

    def by_asset(self, asset: Asset) -> TokenInfo | None:
        return self._by_asset.get(asset)

    def symbol_for(self, asset: Asset) -> str:
        token = self._by_asset.get(asset)
        return token.symbol if token else str(asset)

    @staticmethod
    def to_units(amount: Decimal | str | int, token: TokenInfo) -> int:
        """Convert a decimal amount to smallest units, truncating extra precision.

        Raises:
            InvalidAmount: If the amount is not a positive finite number
        """
        try:
            value = Decimal(str(amount))
        except InvalidOperation as e:
            raise InvalidAmount(f"Amount must be a number, got {amount!r}") from e
        if not value.is_finite() or value <= 0:
            raise InvalidAmount(f"Amount must be positive, got {amount}")
        units = int(value.scaleb(token.decimals).to_integral_value(rounding=ROUND_DOWN))
        if units <= 0:
            raise InvalidAmount(
                f"Amount {amount} is below the smallest unit of {token.symbol}"
            )
        return units

    @staticmethod
    def from_units(units: int, token: TokenInfo) -> Decimal:
        return Decimal(units).scaleb(-token.decimals)

    def __len__(self) -> int:
        return len(self._by_symbol)

    def __contains__(self, identifier: str) -> bool:
        try:
            self.resolve(identifier)
        except InvalidAsset:
            return False
        return True
