"""Core interfaces for the DeDust connector."""

from typing import Protocol, runtime_checkable

from .address import Address
from .types import Asset, PoolSnapshot, PoolVariant, Quote


@runtime_checkable
class PoolSnapshotProvider(Protocol):
    """Source of live pool state."""

    async def get_pool_snapshot(
        self, asset_a: Asset, asset_b: Asset, variant: PoolVariant
    ) -> PoolSnapshot | None:
        """Read a pool's current state.

        Returns:
            Snapshot in canonical asset order, or None if no pool is deployed

        Raises:
            ProviderError: On transient infrastructure failures
        """
        ...


@runtime_checkable
class LpBalanceSource(Protocol):
    """Source of LP token balances."""

    async def get_lp_balance(self, pool_address: Address, owner: Address) -> int:
        """Return the LP tokens ``owner`` holds for ``pool_address``."""
        ...


@runtime_checkable
class Signer(Protocol):
    """Builds and signs the external message for a quote."""

    async def sign_swap(self, quote: Quote, wallet_address: Address) -> bytes:
        """Return a serialized, signed external message (bag of cells)."""
        ...


@runtime_checkable
class Sender(Protocol):
    """Submits signed messages to the network."""

    async def send_boc(self, boc: bytes) -> str:
        """Submit a signed message and return its hash."""
        ...
