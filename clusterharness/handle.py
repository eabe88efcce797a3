"""
Cluster manager handle returned to code that joins a running test cluster.
"""

from __future__ import annotations

from typing import List

import structlog

from clusterharness.instance.base import ClusterInstance
from clusterharness.types import Endpoint, Node, NodeId

logger = structlog.get_logger(__name__)


class ClusterManagerHandle:
    """Thin wrapper around a started cluster instance."""

    def __init__(self, instance: ClusterInstance) -> None:
        self._instance = instance

    @property
    def instance(self) -> ClusterInstance:
        return self._instance

    @property
    def node(self) -> Node:
        return self._instance.node

    @property
    def node_id(self) -> NodeId:
        return self._instance.node_id

    @property
    def endpoint(self) -> Endpoint:
        return self._instance.endpoint

    @property
    def cluster_name(self) -> str:
        return self._instance.cluster_name

    @property
    def is_active(self) -> bool:
        return self._instance.is_running

    def get_nodes(self) -> List[str]:
        """Names of the known members: the bootstrap set plus this node."""
        names = [node.name for node in self._instance.topology.bootstrap_nodes]
        if self.node.name not in names:
            names.append(self.node.name)
        return names

    async def leave(self) -> None:
        """Stop the wrapped instance; failures are logged, not raised."""
        try:
            await self._instance.stop()
        except Exception:
            logger.warning("cluster_handle.leave_failed", node_id=self.node_id, exc_info=True)

    def __repr__(self) -> str:
        return f"ClusterManagerHandle(node_id={self.node_id}, active={self.is_active})"
