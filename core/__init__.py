"""
SwarmCheck Core Module

Topology-aware building blocks for cluster verification:
- Address space (fixed-length addresses, XOR distance)
- Topology snapshots (closest node, farthest pair)
- Content-addressed chunks
- Seeded streams for reproducible runs
- Run context (deadline, clock, cancellation) and retry policy
"""

from swarmcheck.core.address import Address, distance, ADDRESS_LENGTH
from swarmcheck.core.chunk import Chunk, random_chunk, random_bytes, verify_chunk
from swarmcheck.core.errors import (
    SwarmCheckError,
    ConfigurationError,
    InsufficientTopologyError,
    LengthMismatch,
    EmptyCandidateSet,
    TransientNetworkError,
    NodeAPIError,
    IntegrityError,
    PollExhaustedError,
    ReplicationError,
    RecoveryNotTriggeredError,
    RecoveryPending,
    RunCancelled,
)
from swarmcheck.core.retry import RetryPolicy, RetryOutcome, RetryStatus, DelayMode
from swarmcheck.core.runtime import Clock, RunContext, SystemClock
from swarmcheck.core.streams import derive, derive_stream, default_seed
from swarmcheck.core.topology import Topology, closest, farthest_pair, by_proximity

__all__ = [
    "Address",
    "distance",
    "ADDRESS_LENGTH",
    "Chunk",
    "random_chunk",
    "random_bytes",
    "verify_chunk",
    "SwarmCheckError",
    "ConfigurationError",
    "InsufficientTopologyError",
    "LengthMismatch",
    "EmptyCandidateSet",
    "TransientNetworkError",
    "NodeAPIError",
    "IntegrityError",
    "PollExhaustedError",
    "ReplicationError",
    "RecoveryNotTriggeredError",
    "RecoveryPending",
    "RunCancelled",
    "RetryPolicy",
    "RetryOutcome",
    "RetryStatus",
    "DelayMode",
    "RunContext",
    "Clock",
    "SystemClock",
    "derive",
    "derive_stream",
    "default_seed",
    "Topology",
    "closest",
    "farthest_pair",
    "by_proximity",
]
