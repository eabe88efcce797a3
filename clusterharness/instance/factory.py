"""
Instance Factory

Turns a ``ClusterTopology`` into a concrete, not-yet-started cluster
instance.  Construction only computes configuration; no socket is opened and
nothing is written to disk until the instance is started.
"""

from __future__ import annotations

from typing import Optional

import structlog

from clusterharness.config import HarnessConfig
from clusterharness.endpoints import EndpointAllocator
from clusterharness.instance.base import ClusterInstance, InstanceBuilderFactory
from clusterharness.instance.local import LocalClusterInstance
from clusterharness.topology import TopologyBuilder, TopologyPolicy
from clusterharness.types import ClusterTopology

logger = structlog.get_logger(__name__)


class InstanceFactory:
    """
    Builds cluster instances from topologies.

    Args:
        allocator: Shared endpoint allocator, read when topologies are built.
        config: Harness configuration (cluster name, data root, sizing).
        policy: Partition group layout; the default control, coordination and
            data groups when omitted.
        builder_factory: Zero-argument callable returning an
            ``InstanceBuilder``; selects the runtime backing each instance.
    """

    def __init__(
        self,
        allocator: EndpointAllocator,
        config: Optional[HarnessConfig] = None,
        policy: Optional[TopologyPolicy] = None,
        builder_factory: Optional[InstanceBuilderFactory] = None,
    ) -> None:
        self._config = config or HarnessConfig()
        self._topologies = TopologyBuilder(allocator, self._config, policy)
        self._builder_factory = builder_factory or LocalClusterInstance.builder

    @property
    def topologies(self) -> TopologyBuilder:
        return self._topologies

    @property
    def config(self) -> HarnessConfig:
        return self._config

    def create(self, topology: ClusterTopology) -> ClusterInstance:
        """Wire *topology* into a single builder step and return the instance."""
        topology = self._topologies.ensure_partition_groups(topology)

        instance = (
            self._builder_factory()
            .with_cluster_name(self._config.cluster_name)
            .with_data_directory(topology.data_directory)
            .with_local_node(topology.local_node)
            .with_bootstrap_nodes(topology.bootstrap_nodes)
            .with_partition_groups(topology.partition_groups)
            .build()
        )

        logger.debug(
            "instance_factory.created",
            node_id=topology.local_node.node_id,
            cluster=self._config.cluster_name,
            data_directory=str(topology.data_directory),
        )
        return instance
