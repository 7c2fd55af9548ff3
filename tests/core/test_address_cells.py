"""Tests for TON addresses and the cell codec."""

import pytest

from dedust.core.address import Address
from dedust.core.cells import Cell, CellError, begin_cell
from dedust.pools.identity import BLANK_CODE

ZERO_FRIENDLY = "EQAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAM9c"
FACTORY_FRIENDLY = "EQBfBWT7X2BHg9tXAxzhz2aKiNTU1tpt5NsiK0uSDW_YAJ67"
USDT_FRIENDLY = "EQCxE6mUtQJKFnGfaROTKOt1lZbDiiX1kCixRv7Nw2Id_sDs"
USDT_RAW = "0:b113a994b5024a16719f69139328eb759596c38a25f59028b146fecdc3621dfe"


class TestAddress:
    """Test address parsing and formatting."""

    def test_parse_zero_address(self):
        address = Address.parse(ZERO_FRIENDLY)

        assert address.workchain == 0
        assert address.hash_part == bytes(32)
        assert address.is_zero()

    def test_friendly_and_raw_agree(self):
        assert Address.parse(USDT_FRIENDLY) == Address.parse(USDT_RAW)

    def test_format_round_trip(self):
        address = Address.parse(USDT_RAW)

        assert address.to_raw() == USDT_RAW
        assert address.to_friendly() == USDT_FRIENDLY
        assert str(address) == USDT_FRIENDLY

    def test_standard_base64_accepted(self):
        standard = FACTORY_FRIENDLY.replace("-", "+").replace("_", "/")
        assert Address.parse(standard) == Address.parse(FACTORY_FRIENDLY)

    def test_non_bounceable_form(self):
        address = Address.parse(USDT_RAW)
        non_bounceable = address.to_friendly(bounceable=False)

        assert non_bounceable.startswith("UQ")
        assert Address.parse(non_bounceable) == address

    def test_masterchain_raw(self):
        address = Address.parse("-1:" + "ab" * 32)
        assert address.workchain == -1
        assert Address.parse(address.to_friendly()) == address

    def test_bad_checksum_rejected(self):
        broken = USDT_FRIENDLY[:-1] + ("t" if USDT_FRIENDLY[-1] != "t" else "u")
        with pytest.raises(ValueError, match="checksum"):
            Address.parse(broken)

    def test_bad_length_rejected(self):
        with pytest.raises(ValueError):
            Address.parse("EQAAAA")
        with pytest.raises(ValueError):
            Address.parse("0:abcd")

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            Address.parse("not-an-address")

    def test_string_validation_and_serialization(self):
        """Test models accept and emit user-friendly strings."""
        address = Address.model_validate(USDT_RAW)

        assert address == Address.parse(USDT_FRIENDLY)
        assert address.model_dump() == USDT_FRIENDLY

    def test_hashable(self):
        assert len({Address.parse(USDT_RAW), Address.parse(USDT_FRIENDLY)}) == 1


class TestCell:
    """Test cell hashing against known representation hashes."""

    def test_empty_cell_hash(self):
        assert begin_cell().end_cell().hash().hex() == (
            "96a296d224f285c67bee93c30f8a309157f0daa35dc5b87e410b78630a09cfc7"
        )

    def test_byte_cell_hash(self):
        cell = begin_cell().store_uint(1, 8).end_cell()
        assert cell.hash().hex() == (
            "8d9fe7317f066deaca4fdb6c313194e5bb5d2269ecf672f1af9fc790a2205991"
        )

    def test_cell_with_ref_hash(self):
        cell = begin_cell().store_ref(begin_cell().end_cell()).end_cell()

        assert cell.depth() == 1
        assert cell.hash().hex() == (
            "6c64b3153333f7af728149b88cd7b27f5ded7cd17ac88893ee47fc208a15e640"
        )

    def test_builder_overflow(self):
        builder = begin_cell().store_uint(0, 1000)
        with pytest.raises(CellError):
            builder.store_uint(0, 24)

    def test_ref_overflow(self):
        builder = begin_cell()
        for _ in range(4):
            builder.store_ref(begin_cell().end_cell())
        with pytest.raises(CellError):
            builder.store_ref(begin_cell().end_cell())

    def test_uint_range_checked(self):
        with pytest.raises(CellError):
            begin_cell().store_uint(256, 8)
        with pytest.raises(CellError):
            begin_cell().store_int(128, 8)

    def test_store_int_negative(self):
        cell = begin_cell().store_int(-1, 8).end_cell()
        assert cell.bits == 0xFF
        assert cell.bit_length == 8

    def test_store_address(self):
        cell = begin_cell().store_address(Address.parse(ZERO_FRIENDLY)).end_cell()
        assert cell.bit_length == 267
        assert cell.bits == 0b100 << 264

    def test_store_slice_concatenates(self):
        first = begin_cell().store_uint(0b101, 3).end_cell()
        combined = begin_cell().store_bit(True).store_slice(first).end_cell()

        assert combined.bit_length == 4
        assert combined.bits == 0b1101

    def test_equality_by_hash(self):
        a = begin_cell().store_uint(7, 16).end_cell()
        b = begin_cell().store_uint(7, 16).end_cell()
        assert a == b
        assert hash(a) == hash(b)


class TestBagOfCells:
    """Test bag-of-cells decoding."""

    def test_blank_code_decodes(self):
        assert BLANK_CODE.depth() == 2
        assert BLANK_CODE.hash().hex() == (
            "b0c7b8d5323cc9ba90fef98f9220fd86bee9382a8910b84f2926c4c9c986ebaf"
        )

    def test_bad_magic_rejected(self):
        with pytest.raises(CellError):
            Cell.from_boc(b"\x00\x01\x02\x03\x04")
