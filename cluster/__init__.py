"""
SwarmCheck Cluster Access

Node clients and the topology source checks run against.
"""

from swarmcheck.cluster.client import NodeClient, BeeClient
from swarmcheck.cluster.static import StaticCluster

__all__ = ["NodeClient", "BeeClient", "StaticCluster"]
