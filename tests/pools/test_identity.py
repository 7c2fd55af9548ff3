"""Tests for pool and vault address derivation."""

import pytest

from dedust.core.types import Asset, PoolVariant
from dedust.pools.identity import asset_cell, derive_pool_address, derive_vault_address

from conftest import FACTORY, TON, USDC, USDT


class TestDerivePoolAddress:
    """Test deterministic pool addresses."""

    def test_mainnet_ton_usdt_pool(self):
        """Test the well-known TON/USDT volatile pool address."""
        address = derive_pool_address(FACTORY, TON, USDT)
        assert str(address) == "EQA-X_yo3fzzbDbJ_0bzFWKqtRuZFIRa1sJsveZJ1YpViO3r"

    def test_order_independent(self):
        assert derive_pool_address(FACTORY, TON, USDT) == derive_pool_address(FACTORY, USDT, TON)
        assert derive_pool_address(FACTORY, USDC, USDT) == derive_pool_address(FACTORY, USDT, USDC)

    def test_variant_changes_address(self):
        volatile = derive_pool_address(FACTORY, TON, USDT, PoolVariant.VOLATILE)
        stable = derive_pool_address(FACTORY, TON, USDT, PoolVariant.STABLE)

        assert volatile != stable
        assert stable.to_raw() == (
            "0:f76d04b28f1ea3858e6a770a5b9f8d4a19520ac344d06021fd9a93b543e06e0c"
        )

    def test_pair_changes_address(self):
        assert derive_pool_address(FACTORY, TON, USDT) != derive_pool_address(FACTORY, TON, USDC)

    def test_factory_changes_address(self):
        other_factory = USDC.address
        assert derive_pool_address(FACTORY, TON, USDT) != derive_pool_address(
            other_factory, TON, USDT
        )

    def test_basechain(self):
        assert derive_pool_address(FACTORY, TON, USDT).workchain == 0

    def test_identical_assets_rejected(self):
        with pytest.raises(ValueError):
            derive_pool_address(FACTORY, USDT, USDT)


class TestDeriveVaultAddress:
    """Test vault addresses."""

    def test_native_vault(self):
        assert str(derive_vault_address(FACTORY, TON)) == (
            "EQDa4VOnTYlLvDJ0gZjNYm5PXfSmmtL6Vs6A_CZEtXCNICq_"
        )

    def test_jetton_vault(self):
        assert derive_vault_address(FACTORY, USDT).to_raw() == (
            "0:18aa8e2eed51747dae033c079b93883d941cad8f65459f2ee9cd7474b6b8ed5d"
        )

    def test_vault_differs_from_pool(self):
        assert derive_vault_address(FACTORY, TON) != derive_pool_address(FACTORY, TON, USDT)


class TestAssetCell:
    def test_native_layout(self):
        cell = asset_cell(Asset.native())
        assert cell.bit_length == 4
        assert cell.bits == 0

    def test_jetton_layout(self):
        cell = asset_cell(USDT)
        assert cell.bit_length == 4 + 8 + 256
        assert cell.bits >> 264 == 1
        assert cell.bits & ((1 << 256) - 1) == int.from_bytes(USDT.address.hash_part, "big")
