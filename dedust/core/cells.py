"""Minimal TVM cell builder and bag-of-cells reader.

Only ordinary (level 0) cells are supported, which is all that state-init
address derivation needs.
"""

import base64
import hashlib

from .address import Address

MAX_BITS = 1023
MAX_REFS = 4
_BOC_MAGIC = bytes.fromhex("b5ee9c72")


class CellError(ValueError):
    """Raised on malformed cells or bag-of-cells payloads."""


class Cell:
    """Immutable ordinary cell: up to 1023 data bits and 4 references."""

    __slots__ = ("bits", "bit_length", "refs", "_hash", "_depth")

    def __init__(
        self, bits: int = 0, bit_length: int = 0, refs: tuple["Cell", ...] = ()
    ) -> None:
        if bit_length > MAX_BITS:
            raise CellError(f"Cell overflow: {bit_length} bits")
        if len(refs) > MAX_REFS:
            raise CellError(f"Cell overflow: {len(refs)} refs")
        self.bits = bits
        self.bit_length = bit_length
        self.refs = tuple(refs)
        self._hash: bytes | None = None
        self._depth: int | None = None

    def _padded_data(self) -> bytes:
        n_bytes = (self.bit_length + 7) // 8
        pad = n_bytes * 8 - self.bit_length
        if pad == 0:
            return self.bits.to_bytes(n_bytes, "big")
        # completion tag: a single 1 bit followed by zeros
        value = (self.bits << pad) | (1 << (pad - 1))
        return value.to_bytes(n_bytes, "big")

    def _descriptors(self) -> bytes:
        d1 = len(self.refs)
        d2 = self.bit_length // 8 + (self.bit_length + 7) // 8
        return bytes([d1, d2])

    def depth(self) -> int:
        if self._depth is None:
            self._depth = (
                1 + max(ref.depth() for ref in self.refs) if self.refs else 0
            )
        return self._depth

    def hash(self) -> bytes:
        """Representation hash (sha256) of the cell."""
        if self._hash is None:
            repr_bytes = self._descriptors() + self._padded_data()
            for ref in self.refs:
                repr_bytes += ref.depth().to_bytes(2, "big")
            for ref in self.refs:
                repr_bytes += ref.hash()
            self._hash = hashlib.sha256(repr_bytes).digest()
        return self._hash

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Cell) and self.hash() == other.hash()

    def __hash__(self) -> int:
        return hash(self.hash())

    def __repr__(self) -> str:
        return f"Cell(bits={self.bit_length}, refs={len(self.refs)})"

    @classmethod
    def from_boc(cls, boc: bytes | str) -> "Cell":
        """Decode a single-root bag of cells (raw bytes or base64)."""
        if isinstance(boc, str):
            boc = base64.b64decode(boc)
        roots = _deserialize_boc(boc)
        if len(roots) != 1:
            raise CellError(f"Expected a single root cell, got {len(roots)}")
        return roots[0]


class Builder:
    """Append-only bit/ref accumulator producing a :class:`Cell`."""

    def __init__(self) -> None:
        self._bits = 0
        self._length = 0
        self._refs: list[Cell] = []

    @property
    def bit_length(self) -> int:
        return self._length

    def _append(self, value: int, bits: int) -> "Builder":
        if self._length + bits > MAX_BITS:
            raise CellError("Builder overflow: more than 1023 bits")
        self._bits = (self._bits << bits) | value
        self._length += bits
        return self

    def store_uint(self, value: int, bits: int) -> "Builder":
        if value < 0 or value >= (1 << bits):
            raise CellError(f"Value {value} does not fit in uint{bits}")
        return self._append(value, bits)

    def store_int(self, value: int, bits: int) -> "Builder":
        bound = 1 << (bits - 1)
        if value < -bound or value >= bound:
            raise CellError(f"Value {value} does not fit in int{bits}")
        return self._append(value & ((1 << bits) - 1), bits)

    def store_bit(self, value: bool) -> "Builder":
        return self._append(1 if value else 0, 1)

    def store_bytes(self, data: bytes) -> "Builder":
        return self._append(int.from_bytes(data, "big"), len(data) * 8)

    def store_coins(self, amount: int) -> "Builder":
        if amount < 0:
            raise CellError("Coins amount cannot be negative")
        n_bytes = (amount.bit_length() + 7) // 8
        self.store_uint(n_bytes, 4)
        return self._append(amount, n_bytes * 8)

    def store_address(self, address: Address | None) -> "Builder":
        if address is None:
            return self.store_uint(0, 2)  # addr_none
        # addr_std$10 anycast:nothing workchain_id:int8 address:bits256
        self.store_uint(0b10, 2)
        self.store_bit(False)
        self.store_int(address.workchain, 8)
        return self.store_bytes(address.hash_part)

    def store_ref(self, cell: Cell) -> "Builder":
        if len(self._refs) >= MAX_REFS:
            raise CellError("Builder overflow: more than 4 refs")
        self._refs.append(cell)
        return self

    def store_maybe_ref(self, cell: Cell | None) -> "Builder":
        if cell is None:
            return self.store_bit(False)
        self.store_bit(True)
        return self.store_ref(cell)

    def store_slice(self, cell: Cell) -> "Builder":
        """Append all bits and references of ``cell``."""
        self._append(cell.bits, cell.bit_length)
        for ref in cell.refs:
            self.store_ref(ref)
        return self

    def store_builder(self, other: "Builder") -> "Builder":
        return self.store_slice(other.end_cell())

    def end_cell(self) -> Cell:
        return Cell(self._bits, self._length, tuple(self._refs))


def begin_cell() -> Builder:
    return Builder()


def _read_uint(data: bytes, offset: int, size: int) -> tuple[int, int]:
    if offset + size > len(data):
        raise CellError("Unexpected end of bag of cells")
    return int.from_bytes(data[offset : offset + size], "big"), offset + size


def _deserialize_boc(data: bytes) -> list[Cell]:
    if data[:4] != _BOC_MAGIC:
        raise CellError("Unsupported bag of cells magic")
    offset = 4

    flags, offset = _read_uint(data, offset, 1)
    has_idx = bool(flags & 0x80)
    size_bytes = flags & 0x07
    if size_bytes == 0 or size_bytes > 4:
        raise CellError(f"Invalid ref size: {size_bytes}")

    off_bytes, offset = _read_uint(data, offset, 1)
    cells_count, offset = _read_uint(data, offset, size_bytes)
    roots_count, offset = _read_uint(data, offset, size_bytes)
    _absent, offset = _read_uint(data, offset, size_bytes)
    _total_size, offset = _read_uint(data, offset, off_bytes)

    root_indexes = []
    for _ in range(roots_count):
        index, offset = _read_uint(data, offset, size_bytes)
        root_indexes.append(index)

    if has_idx:
        offset += cells_count * off_bytes

    raw_cells: list[tuple[int, int, list[int]]] = []
    for _ in range(cells_count):
        d1, offset = _read_uint(data, offset, 1)
        d2, offset = _read_uint(data, offset, 1)

        refs_count = d1 & 0x07
        if d1 & 0x08:
            raise CellError("Exotic cells are not supported")
        if d1 >> 5:
            raise CellError("Cells with non-zero level are not supported")
        if d1 & 0x10:
            # stored hashes and depths for a level 0 cell
            offset += 32 + 2

        data_len = (d2 + 1) // 2
        payload, offset = _read_uint(data, offset, data_len)
        bit_length = data_len * 8
        if d2 % 2 == 1:
            if payload == 0:
                raise CellError("Missing completion tag")
            while payload & 1 == 0:
                payload >>= 1
                bit_length -= 1
            payload >>= 1
            bit_length -= 1

        refs = []
        for _ in range(refs_count):
            ref_index, offset = _read_uint(data, offset, size_bytes)
            refs.append(ref_index)
        raw_cells.append((payload, bit_length, refs))

    # references always point forward, so build from the last cell back
    built: list[Cell | None] = [None] * cells_count
    for index in range(cells_count - 1, -1, -1):
        payload, bit_length, refs = raw_cells[index]
        children = []
        for ref_index in refs:
            if ref_index <= index or built[ref_index] is None:
                raise CellError("Invalid cell reference order")
            children.append(built[ref_index])
        built[index] = Cell(payload, bit_length, tuple(children))

    return [built[i] for i in root_indexes]
