"""
Shared fixtures: an in-memory cluster and a clock that advances instantly.

FakeCluster stores chunks the way a healthy network would: an upload lands on
the node closest to the chunk address and, with replication on, on the second
closest too. Switches on the cluster and on each node inject the failures the
checks must detect.
"""

import hashlib
from types import MappingProxyType
from typing import Dict, List, Optional

import pytest

from swarmcheck.cluster.client import NodeClient
from swarmcheck.core.address import Address
from swarmcheck.core.chunk import DEFAULT_HASH, Chunk
from swarmcheck.core.errors import NodeAPIError, RecoveryPending
from swarmcheck.core.runtime import Clock, RunContext
from swarmcheck.core.topology import Topology


class FakeClock(Clock):
    """Clock whose sleeps advance time immediately."""

    def __init__(self, start: float = 1000.0):
        self.time = start
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self.time

    def sleep(self, seconds, interrupt):
        self.sleeps.append(seconds)
        self.time += seconds


class FakeNode(NodeClient):
    """One node of a FakeCluster."""

    def __init__(self, name: str, overlay: Address, cluster: "FakeCluster"):
        self.name = name
        self.overlay = overlay
        self.cluster = cluster
        self.store: Dict[Address, bytes] = {}
        self.batches: List[str] = []
        self.pinned = set()
        self.failures: Dict[str, int] = {}  # operation -> failures left
        self.corrupt_downloads = False
        self.stale: Dict[Address, bytes] = {}  # served to hinted downloads only

    def _call(self, operation: str):
        self.cluster.calls.append((self.name, operation))
        left = self.failures.get(operation, 0)
        if left:
            self.failures[operation] = left - 1
            raise NodeAPIError("500: induced failure", node=self.name, operation=operation, status_code=500)

    def _deliver(self, data: bytes) -> bytes:
        if self.corrupt_downloads and data:
            return bytes([data[0] ^ 0x01]) + data[1:]
        return data

    def _not_found(self, operation: str):
        return NodeAPIError("404: Not Found", node=self.name, operation=operation, status_code=404)

    def overlay_address(self) -> Address:
        self._call("overlay address")
        return self.overlay

    def create_batch(self, amount, depth, gas_price="", label=""):
        self._call("create batch")
        batch_id = f"batch-{self.name}-{len(self.batches)}"
        self.batches.append(batch_id)
        return batch_id

    def get_or_create_batch(self, amount, depth, gas_price="", label=""):
        self._call("get or create batch")
        if self.batches:
            return self.batches[0]
        return self.create_batch(amount, depth, gas_price, label)

    def upload_chunk(self, data, batch_id, pin=False):
        self._call("upload chunk")
        chunk = Chunk(data, self.cluster.hash_algorithm)
        self.cluster.push(chunk.address, chunk.data)
        if pin:
            self.store[chunk.address] = chunk.data
            self.pinned.add(chunk.address)
        return chunk.address

    def upload_bytes(self, data, batch_id, pin=False):
        self._call("upload bytes")
        reference = Address(hashlib.sha256(data).digest())
        self.cluster.blobs[reference] = bytes(data)
        return reference

    def has_chunk(self, address):
        self._call("has chunk")
        return address in self.store

    def download_chunk(self, address, origin_hint=""):
        self._call("download chunk")
        cluster = self.cluster
        if origin_hint:
            if address in self.stale:
                return self.stale[address]
            data = cluster.find(address)
            if data is not None:
                return self._deliver(data)
            if not cluster.recoverable:
                raise self._not_found("download chunk")
            cluster.recovery_requests.append((self.name, address, origin_hint))
            cluster.pending[address] = cluster.recovery_delay
            raise RecoveryPending(address.hex, node=self.name)

        if address in cluster.pending:
            left = cluster.pending[address]
            if left is None or left > 0:
                if left is not None:
                    cluster.pending[address] = left - 1
                raise self._not_found("download chunk")
            del cluster.pending[address]

        data = cluster.find(address)
        if data is None:
            raise self._not_found("download chunk")
        return self._deliver(data)

    def download_bytes(self, address):
        self._call("download bytes")
        data = self.cluster.blobs.get(address)
        if data is None:
            raise self._not_found("download bytes")
        return self._deliver(data)

    def remove_chunk(self, address):
        self._call("remove chunk")
        self.store.pop(address, None)
        self.pinned.discard(address)

    def pin_root_hash(self, address):
        self._call("pin root hash")
        data = self.cluster.find(address)
        if data is None:
            raise self._not_found("pin root hash")
        self.store[address] = data
        self.pinned.add(address)

    def __repr__(self):
        return f"FakeNode({self.name})"


class FakeCluster:
    """
    In-memory cluster acting as topology source.

    Switches:
        replicate: store uploads on the second closest node too
        sync_closest: store uploads on the closest node at all
        recoverable: targeted downloads of missing chunks start recovery
        recovery_delay: downloads that still miss after recovery starts
            (None never recovers)
        hash_algorithm: how nodes address uploaded chunks
    """

    def __init__(self, overlays: Dict[str, Address]):
        self.topology = Topology(overlays)
        self.nodes = {name: FakeNode(name, overlays[name], self) for name in sorted(overlays)}
        self.blobs: Dict[Address, bytes] = {}
        self.calls: List = []
        self.recovery_requests: List = []
        self.pending: Dict[Address, Optional[int]] = {}
        self.replicate = True
        self.sync_closest = True
        self.recoverable = True
        self.recovery_delay: Optional[int] = 0
        self.hash_algorithm = DEFAULT_HASH
        self.closed = False

    def push(self, address: Address, data: bytes):
        ranked = self.topology.by_proximity(address)
        targets = ranked[:2] if self.replicate else ranked[:1]
        if not self.sync_closest:
            targets = [name for name in targets if name != ranked[0]]
        for name in targets:
            self.nodes[name].store[address] = data

    def find(self, address: Address) -> Optional[bytes]:
        for node in self.nodes.values():
            if address in node.store:
                return node.store[address]
        return None

    def holders(self, address: Address) -> List[str]:
        return [name for name, node in self.nodes.items() if address in node.store]

    def count_calls(self, operation: str, node: Optional[str] = None) -> int:
        return sum(
            1 for name, op in self.calls
            if op == operation and (node is None or name == node)
        )

    def node_clients(self):
        return MappingProxyType(self.nodes)

    def overlays(self):
        return {name: node.overlay_address() for name, node in self.nodes.items()}

    def size(self):
        return len(self.nodes)

    def close(self):
        self.closed = True


def overlay_for(name: str) -> Address:
    return Address(hashlib.sha256(name.encode()).digest())


# ===== FIXTURES =====

@pytest.fixture
def fake_clock():
    """Provide a clock that advances instantly."""
    return FakeClock()


@pytest.fixture
def make_cluster():
    """Factory for in-memory clusters of bee-0..bee-{n-1}."""
    def _make(count: int = 3) -> FakeCluster:
        return FakeCluster({f"bee-{i}": overlay_for(f"bee-{i}") for i in range(count)})
    return _make


@pytest.fixture
def cluster(make_cluster):
    """Provide a three-node in-memory cluster."""
    return make_cluster(3)


@pytest.fixture
def make_ctx(fake_clock):
    """Factory for run contexts on the fake clock."""
    def _make(seed: int = 42, duration=None) -> RunContext:
        return RunContext(seed, duration=duration, clock=fake_clock)
    return _make


@pytest.fixture
def ctx(make_ctx):
    """Provide a run context with seed 42 and no deadline."""
    return make_ctx()
