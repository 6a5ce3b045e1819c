"""
Static cluster: a fixed set of named node clients.

Acts as the topology source for checks. Overlay addresses are fetched from
the nodes on every overlays() call so each snapshot reflects the cluster at
capture time.
"""

from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple
import logging

from swarmcheck.cluster.client import BeeClient, NodeClient
from swarmcheck.core.address import Address

logger = logging.getLogger(__name__)


class StaticCluster:
    """Topology source over a fixed mapping of node clients."""

    def __init__(self, clients: Mapping[str, NodeClient]):
        self._clients = MappingProxyType({name: clients[name] for name in sorted(clients)})

    @classmethod
    def from_endpoints(
        cls,
        endpoints: Mapping[str, Tuple[str, Optional[str]]],
        timeout: float = 60.0,
    ) -> "StaticCluster":
        """
        Build a cluster of Bee nodes.

        Args:
            endpoints: {name: (api_url, debug_api_url or None)}
            timeout: HTTP timeout per request
        """
        clients = {
            name: BeeClient(name, api, debug, timeout=timeout)
            for name, (api, debug) in endpoints.items()
        }
        return cls(clients)

    def node_names(self) -> List[str]:
        return list(self._clients)

    def node_clients(self) -> Mapping[str, NodeClient]:
        """Read-only view of the node handles."""
        return self._clients

    def overlays(self) -> Dict[str, Address]:
        overlays = {}
        for name, client in self._clients.items():
            overlays[name] = client.overlay_address()
        logger.debug(f"Fetched overlays of {len(overlays)} nodes")
        return overlays

    def size(self) -> int:
        return len(self._clients)

    def close(self):
        for client in self._clients.values():
            close = getattr(client, "close", None)
            if close is not None:
                close()
