"""TON account addresses."""

import base64
import binascii
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator

_TAG_BOUNCEABLE = 0x11
_TAG_NON_BOUNCEABLE = 0x51
_TAG_TESTNET = 0x80


def _crc16(data: bytes) -> bytes:
    # CRC16-XMODEM: polynomial 0x1021, initial value 0
    return binascii.crc_hqx(data, 0).to_bytes(2, "big")


class Address(BaseModel):
    """Account address on a TON workchain."""

    model_config = ConfigDict(frozen=True)

    workchain: int = Field(ge=-128, le=127, description="Workchain id")
    hash_part: bytes = Field(
        min_length=32, max_length=32, description="32-byte account id"
    )

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            address = cls.parse(value)
            return {"workchain": address.workchain, "hash_part": address.hash_part}
        return value

    @model_serializer
    def _to_string(self) -> str:
        return self.to_friendly()

    @classmethod
    def parse(cls, value: str) -> "Address":
        """Parse a raw (``wc:hex``) or user-friendly (base64) address.

        Raises:
            ValueError: If the string is not a well-formed address
        """
        value = value.strip()
        if ":" in value:
            return cls._parse_raw(value)
        return cls._parse_friendly(value)

    @classmethod
    def _parse_raw(cls, value: str) -> "Address":
        wc, _, hex_part = value.partition(":")
        try:
            workchain = int(wc)
            hash_part = bytes.fromhex(hex_part)
        except ValueError as e:
            raise ValueError(f"Invalid raw address: {value}") from e
        if len(hash_part) != 32:
            raise ValueError(f"Invalid raw address: {value}")
        return cls(workchain=workchain, hash_part=hash_part)

    @classmethod
    def _parse_friendly(cls, value: str) -> "Address":
        if len(value) != 48:
            raise ValueError(f"Invalid address length: {value}")
        try:
            data = base64.b64decode(value.replace("-", "+").replace("_", "/"))
        except binascii.Error as e:
            raise ValueError(f"Invalid address encoding: {value}") from e
        if len(data) != 36:
            raise ValueError(f"Invalid address length: {value}")

        if _crc16(data[:34]) != data[34:]:
            raise ValueError(f"Invalid address checksum: {value}")

        tag = data[0] & ~_TAG_TESTNET
        if tag not in (_TAG_BOUNCEABLE, _TAG_NON_BOUNCEABLE):
            raise ValueError(f"Unknown address tag: {value}")

        workchain = int.from_bytes(data[1:2], "big", signed=True)
        return cls(workchain=workchain, hash_part=data[2:34])

    def to_raw(self) -> str:
        return f"{self.workchain}:{self.hash_part.hex()}"

    def to_friendly(
        self, bounceable: bool = True, testnet: bool = False, url_safe: bool = True
    ) -> str:
        tag = _TAG_BOUNCEABLE if bounceable else _TAG_NON_BOUNCEABLE
        if testnet:
            tag |= _TAG_TESTNET
        body = (
            bytes([tag])
            + self.workchain.to_bytes(1, "big", signed=True)
            + self.hash_part
        )
        encoded = base64.b64encode(body + _crc16(body)).decode("ascii")
        if url_safe:
            encoded = encoded.replace("+", "-").replace("/", "_")
        return encoded

    def is_zero(self) -> bool:
        return self.workchain == 0 and not any(self.hash_part)

    def __str__(self) -> str:
        return self.to_friendly()
