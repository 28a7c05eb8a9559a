"""Universally unique lexicographically sortable identifiers (ULIDs)."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass

_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_DECODE = {ch: index for index, ch in enumerate(_ALPHABET)}
_DECODE.update({ch.lower(): index for ch, index in list(_DECODE.items()) if ch.isalpha()})

ENCODED_LEN = 26
BYTE_LEN = 16
_MAX = (1 << 128) - 1
_RANDOM_BITS = 80
_TIMESTAMP_MASK = (1 << 48) - 1


@dataclass(frozen=True, order=True, repr=False)
class Ulid:
    """A 128-bit identifier: 48 bits of milliseconds followed by 80 random bits."""

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError("Ulid value must be an integer")
        if not 0 <= self.value <= _MAX:
            raise ValueError("Ulid value must fit in 128 bits")

    @classmethod
    def new(cls) -> Ulid:
        """Generate a fresh ULID stamped with the current time."""
        millis = (time.time_ns() // 1_000_000) & _TIMESTAMP_MASK
        return cls((millis << _RANDOM_BITS) | secrets.randbits(_RANDOM_BITS))

    @classmethod
    def from_str(cls, text: str) -> Ulid:
        """Parse the 26-character Crockford base32 form (case-insensitive)."""
        if not isinstance(text, str):
            raise TypeError("ULID text must be a string")
        if len(text) != ENCODED_LEN:
            raise ValueError(f"invalid ULID length {len(text)}, expected {ENCODED_LEN}")
        value = 0
        for ch in text:
            try:
                digit = _DECODE[ch]
            except KeyError:
                raise ValueError(f"invalid ULID character {ch!r}") from None
            value = (value << 5) | digit
        if value > _MAX:
            raise ValueError("ULID text overflows 128 bits")
        return cls(value)

    @classmethod
    def from_bytes(cls, data: bytes) -> Ulid:
        """Build a ULID from its 16-byte big-endian form."""
        if len(data) != BYTE_LEN:
            raise ValueError(f"ULID needs {BYTE_LEN} bytes, got {len(data)}")
        return cls(int.from_bytes(bytes(data), "big"))

    def to_bytes(self) -> bytes:
        """Return the 16-byte big-endian form."""
        return self.value.to_bytes(BYTE_LEN, "big")

    @property
    def timestamp_ms(self) -> int:
        """Milliseconds since the Unix epoch encoded in this ULID."""
        return self.value >> _RANDOM_BITS

    def __str__(self) -> str:
        return "".join(_ALPHABET[(self.value >> shift) & 0x1F] for shift in range(125, -5, -5))

    def __repr__(self) -> str:
        return f"Ulid('{self}')"