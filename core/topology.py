"""
Topology snapshots and proximity queries.

A snapshot maps node names to overlay addresses and is captured once per
check iteration. All queries walk node names in ascending lexicographic
order, so ties resolve to the first name in that order and repeated runs
over the same snapshot make the same choices.
"""

from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple
from types import MappingProxyType
import logging

from swarmcheck.core.address import Address, distance
from swarmcheck.core.errors import EmptyCandidateSet, LengthMismatch

logger = logging.getLogger(__name__)


class Topology:
    """Immutable snapshot {node name -> overlay address}."""

    def __init__(self, overlays: Mapping[str, Address]):
        ordered: Dict[str, Address] = {}
        length: Optional[int] = None
        for name in sorted(overlays):
            address = Address(overlays[name])
            if length is None:
                length = len(address)
            elif len(address) != length:
                raise LengthMismatch(length, len(address))
            ordered[name] = address
        self._overlays = MappingProxyType(ordered)

    @classmethod
    def capture(cls, cluster) -> "Topology":
        """Snapshot the current overlays of a topology source."""
        snapshot = cls(cluster.overlays())
        logger.debug(f"Captured topology of {len(snapshot)} nodes")
        return snapshot

    @property
    def overlays(self) -> Mapping[str, Address]:
        return self._overlays

    @property
    def names(self) -> List[str]:
        return list(self._overlays)

    def address_of(self, name: str) -> Address:
        return self._overlays[name]

    def __len__(self) -> int:
        return len(self._overlays)

    def __contains__(self, name: str) -> bool:
        return name in self._overlays

    def __iter__(self) -> Iterator[str]:
        return iter(self._overlays)

    def closest(
        self,
        target: Address,
        excluded: Iterable[str] = (),
    ) -> Tuple[str, Address]:
        return closest(self, target, excluded)

    def farthest_pair(self) -> Tuple[str, str]:
        return farthest_pair(self)

    def by_proximity(
        self,
        target: Address,
        excluded: Iterable[str] = (),
    ) -> List[str]:
        return by_proximity(self, target, excluded)

    def __repr__(self) -> str:
        return f"Topology({len(self)} nodes)"


def closest(
    snapshot: Topology,
    target: Address,
    excluded: Iterable[str] = (),
) -> Tuple[str, Address]:
    """
    Find the node closest to target, skipping excluded names.

    Args:
        snapshot: Topology snapshot
        target: Address to measure against
        excluded: Node names that must not be returned

    Returns:
        (name, overlay) of the closest node

    Raises:
        EmptyCandidateSet: if every node is excluded
    """
    skip = set(excluded)
    best: Optional[Tuple[str, Address]] = None
    best_distance = -1

    for name, overlay in snapshot.overlays.items():
        if name in skip:
            continue
        d = distance(overlay, target)
        if best is None or d < best_distance:
            best = (name, overlay)
            best_distance = d

    if best is None:
        raise EmptyCandidateSet(
            f"no candidate nodes left ({len(skip)} excluded of {len(snapshot)})"
        )
    return best


def farthest_pair(snapshot: Topology) -> Tuple[str, str]:
    """
    Find the two nodes with the greatest distance between them.

    Full pair scan; cluster sizes are tens of nodes.

    Raises:
        EmptyCandidateSet: if the snapshot has fewer than two nodes
    """
    items = list(snapshot.overlays.items())
    if len(items) < 2:
        raise EmptyCandidateSet(f"need two nodes for a pair, snapshot has {len(items)}")

    pair = (items[0][0], items[1][0])
    best = -1
    for i, (name_a, overlay_a) in enumerate(items):
        for name_c, overlay_c in items[i + 1:]:
            d = distance(overlay_a, overlay_c)
            if d > best:
                best = d
                pair = (name_a, name_c)
    return pair


def by_proximity(
    snapshot: Topology,
    target: Address,
    excluded: Iterable[str] = (),
) -> List[str]:
    """Node names ordered by ascending distance to target, excluded names dropped."""
    skip = set(excluded)
    candidates = [
        (distance(overlay, target), index, name)
        for index, (name, overlay) in enumerate(snapshot.overlays.items())
        if name not in skip
    ]
    candidates.sort()
    return [name for _, _, name in candidates]
