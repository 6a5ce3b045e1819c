"""
Overlay address space.

Addresses are fixed-length byte strings; proximity between two addresses is
their bytewise XOR read as a big-endian unsigned integer.

XOR metric properties:
- d(x,x) = 0
- d(x,y) > 0 for x != y
- d(x,y) = d(y,x)
"""

from typing import Union

from swarmcheck.core.errors import LengthMismatch


ADDRESS_LENGTH = 32  # Bytes, Swarm overlay / chunk addresses


class Address:
    """Immutable overlay or chunk address."""

    __slots__ = ("_value",)

    def __init__(self, value: Union[bytes, bytearray, "Address"]):
        if isinstance(value, Address):
            value = value.bytes
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError(f"address must be bytes, got {type(value).__name__}")
        object.__setattr__(self, "_value", bytes(value))

    def __setattr__(self, name, value):
        raise AttributeError("Address is immutable")

    @classmethod
    def from_hex(cls, text: str) -> "Address":
        """Parse a hex string (optional 0x prefix)."""
        if text.startswith(("0x", "0X")):
            text = text[2:]
        return cls(bytes.fromhex(text))

    @property
    def bytes(self) -> bytes:
        return self._value

    @property
    def hex(self) -> str:
        return self._value.hex()

    def prefix(self, chars: int = 2) -> str:
        """Leading hex characters of the address."""
        return self.hex[:chars]

    def __len__(self) -> int:
        return len(self._value)

    def __eq__(self, other) -> bool:
        if isinstance(other, Address):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __str__(self) -> str:
        return self.hex

    def __repr__(self) -> str:
        return f"Address({self.hex[:16]}{'...' if len(self._value) > 8 else ''})"


def _raw(value: Union[bytes, Address]) -> bytes:
    return value.bytes if isinstance(value, Address) else bytes(value)


def distance(x: Union[bytes, Address], y: Union[bytes, Address]) -> int:
    """
    XOR distance between two equal-length addresses.

    Raises:
        LengthMismatch: if the addresses differ in length
    """
    a, b = _raw(x), _raw(y)
    if len(a) != len(b):
        raise LengthMismatch(len(a), len(b))
    return int.from_bytes(bytes(i ^ j for i, j in zip(a, b)), "big")
