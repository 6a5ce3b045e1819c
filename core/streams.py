"""
Seeded pseudorandom streams.

One run seed fans out into independent generators; stream i depends only on
(seed, i), never on how many draws other streams made or in what order.
"""

import hashlib
import random
import time
from typing import List


def stream_seed(seed: int, index: int) -> int:
    """Derive the seed of stream index from the run seed."""
    material = f"{seed}:{index}".encode()
    return int.from_bytes(hashlib.sha256(material).digest()[:8], "big")


def derive_stream(seed: int, index: int) -> random.Random:
    return random.Random(stream_seed(seed, index))


def derive(seed: int, count: int) -> List[random.Random]:
    """
    Derive count independent generators from one seed.

    Args:
        seed: Run seed
        count: Number of streams

    Returns:
        List of random.Random, stream i seeded from (seed, i)
    """
    if count < 0:
        raise ValueError(f"stream count must be non-negative, got {count}")
    return [derive_stream(seed, i) for i in range(count)]


def default_seed() -> int:
    """Time-based seed for runs that do not pin one."""
    return time.time_ns() & 0x7FFFFFFFFFFFFFFF
