"""Deterministic pool and vault address derivation.

DeDust deploys every pool and vault from the same blank code cell; only the
data cell differs (factory address, contract type and parameters). The
address is the representation hash of the resulting state-init, so it can be
computed offline.
"""

from ..core.address import Address
from ..core.cells import Builder, Cell, begin_cell
from ..core.types import Asset, PoolVariant, canonical_pair

BLANK_CODE = Cell.from_boc(
    "te6ccgEBBAEAlgABFP8A9KQT9LzyyAsBAgJwAwIACb8pMvg8APXeA6DprkP0gGBB2onai9qPHDK3"
    "AgFA4LEAIZGWCgOeLAP0BQDXnoGSA/YB2s/ay9rI4v/aIxx72omh9IGmDqJljgvlwgcIHgmmPgME"
    "ITZ1R/V0K+XoB6Z+AmGpph4CA6hD9ghDodo92qYgjCCLBAHKTdqHsdqD2+ID5f8="
)

TYPE_VAULT = 1
TYPE_POOL = 2


def asset_cell(asset: Asset) -> Cell:
    """Serialize an asset the way the factory stores it."""
    builder = begin_cell()
    if asset.address is None:
        builder.store_uint(0, 4)
    else:
        builder.store_uint(1, 4)
        builder.store_int(asset.address.workchain, 8)
        builder.store_bytes(asset.address.hash_part)
    return builder.end_cell()


def _state_init_address(factory: Address, contract_type: int, params: Builder) -> Address:
    data = (
        begin_cell()
        .store_address(factory)
        .store_uint(contract_type, 8)
        .store_builder(params)
        .end_cell()
    )
    state_init = (
        begin_cell()
        .store_uint(0, 2)  # no split_depth, no special
        .store_maybe_ref(BLANK_CODE)
        .store_maybe_ref(data)
        .store_uint(0, 1)  # empty library dict
        .end_cell()
    )
    return Address(workchain=0, hash_part=state_init.hash())


def derive_vault_address(factory: Address, asset: Asset) -> Address:
    params = begin_cell().store_slice(asset_cell(asset))
    return _state_init_address(factory, TYPE_VAULT, params)


def derive_pool_address(
    factory: Address,
    asset_a: Asset,
    asset_b: Asset,
    variant: PoolVariant = PoolVariant.VOLATILE,
) -> Address:
    """Address of the pool for an unordered asset pair."""
    if asset_a == asset_b:
        raise ValueError("A pool needs two distinct assets")
    asset0, asset1 = canonical_pair(asset_a, asset_b)
    params = (
        begin_cell()
        .store_bit(variant is PoolVariant.STABLE)
        .store_slice(asset_cell(asset0))
        .store_slice(asset_cell(asset1))
    )
    return _state_init_address(factory, TYPE_POOL, params)
