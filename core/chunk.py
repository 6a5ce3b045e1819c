"""
Content-addressed chunks.

A chunk is an 8-byte little-endian span followed by up to 4096 bytes of
payload. Its address is derived from content alone: a binary Merkle tree over
32-byte segments of the zero-padded payload, hashed once more with the span.
"""

import hashlib
import random
from typing import Callable, Dict
import logging

from Crypto.Hash import keccak

from swarmcheck.core.address import Address

logger = logging.getLogger(__name__)


SPAN_SIZE = 8
SEGMENT_SIZE = 32
CHUNK_SIZE = 4096  # Max payload bytes
DEFAULT_HASH = "keccak256"  # Bee chunk addressing

HASH_FUNCTIONS: Dict[str, Callable] = {
    "keccak256": lambda data=b"": keccak.new(digest_bits=256, data=data),
    "sha256": hashlib.sha256,
    "sha3_256": hashlib.sha3_256,
    "blake2b": lambda data=b"": hashlib.blake2b(data, digest_size=32),
}


def _hash_function(hash_algorithm: str) -> Callable:
    try:
        return HASH_FUNCTIONS[hash_algorithm]
    except KeyError:
        raise ValueError(f"Unsupported hash algorithm: {hash_algorithm}") from None


def bmt_address(span: bytes, payload: bytes, hash_algorithm: str = DEFAULT_HASH) -> Address:
    """
    Compute the chunk address of span + payload.

    Args:
        span: 8-byte little-endian length prefix
        payload: Chunk payload (at most CHUNK_SIZE bytes)
        hash_algorithm: Name from HASH_FUNCTIONS

    Returns:
        32-byte chunk address
    """
    hash_func = _hash_function(hash_algorithm)
    if len(payload) > CHUNK_SIZE:
        raise ValueError(f"payload of {len(payload)} bytes exceeds chunk size {CHUNK_SIZE}")

    padded = payload.ljust(CHUNK_SIZE, b"\x00")
    level = [padded[i:i + SEGMENT_SIZE] for i in range(0, CHUNK_SIZE, SEGMENT_SIZE)]

    # Build tree bottom-up; segment count is a power of two
    while len(level) > 1:
        level = [
            hash_func(level[i] + level[i + 1]).digest()
            for i in range(0, len(level), 2)
        ]

    return Address(hash_func(span + level[0]).digest())


class Chunk:
    """Immutable chunk with its address computed on construction."""

    __slots__ = ("_data", "_address")

    def __init__(self, data: bytes, hash_algorithm: str = DEFAULT_HASH):
        if len(data) < SPAN_SIZE:
            raise ValueError(f"chunk data must start with a {SPAN_SIZE}-byte span")
        self._data = bytes(data)
        self._address = bmt_address(
            self._data[:SPAN_SIZE], self._data[SPAN_SIZE:], hash_algorithm
        )

    @classmethod
    def from_payload(cls, payload: bytes, hash_algorithm: str = DEFAULT_HASH) -> "Chunk":
        span = len(payload).to_bytes(SPAN_SIZE, "little")
        return cls(span + payload, hash_algorithm)

    @property
    def data(self) -> bytes:
        """Span followed by payload, as uploaded."""
        return self._data

    @property
    def payload(self) -> bytes:
        return self._data[SPAN_SIZE:]

    @property
    def address(self) -> Address:
        return self._address

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other) -> bool:
        if isinstance(other, Chunk):
            return self._data == other._data
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._data)

    def __repr__(self) -> str:
        return f"Chunk({self._address.hex[:16]}..., {len(self.payload)} bytes)"


def random_bytes(rnd: random.Random, size: int) -> bytes:
    """Draw size bytes from a seeded stream."""
    if size <= 0:
        return b""
    return rnd.getrandbits(size * 8).to_bytes(size, "little")


def random_chunk(
    rnd: random.Random,
    max_payload: int = CHUNK_SIZE,
    hash_algorithm: str = DEFAULT_HASH,
) -> Chunk:
    """Random chunk with payload length in [1, max_payload]."""
    size = rnd.randint(1, max_payload)
    chunk = Chunk.from_payload(random_bytes(rnd, size), hash_algorithm)
    logger.debug(f"Generated chunk {chunk.address.hex[:16]}... ({size} bytes)")
    return chunk


def verify_chunk(data: bytes, address: Address, hash_algorithm: str = DEFAULT_HASH) -> bool:
    """Check that data hashes to address."""
    try:
        return Chunk(data, hash_algorithm).address == address
    except ValueError:
        return False
