"""
Cluster Harness Topology Builder

Turns a node id, its bootstrap set and the desired partition counts into a
``ClusterTopology``:

- **Nodes**: one per identifier, endpoints resolved through the shared
  ``EndpointAllocator`` so every member of a cluster sees the same peers.
- **Control group** (``core``): single-partition consensus group for
  cluster-wide metadata.
- **Coordination group**: consensus group sized to the bootstrap set unless
  an explicit partition count is given.
- **Data group**: primary-backup group sized independently.

Group construction is delegated to a ``TopologyPolicy`` so callers can swap
the layout strategy without subclassing anything.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import structlog

from clusterharness.config import HarnessConfig
from clusterharness.endpoints import EndpointAllocator
from clusterharness.errors import ConfigurationError
from clusterharness.types import (
    CONTROL_GROUP_NAME,
    COORDINATION_GROUP_NAME,
    DATA_GROUP_NAME,
    ClusterTopology,
    Node,
    NodeId,
    NodeRole,
    PartitionGroupSpec,
    PartitionProtocol,
    StorageLevel,
)

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GroupRequest:
    """Inputs a policy needs to lay out the partition groups of one node."""
    node_directory: Path
    bootstrap_size: int
    coordination_partitions: int
    data_partitions: int
    coordination_partition_size: Optional[int] = None
    storage_level: StorageLevel = StorageLevel.MEMORY


ControlGroupBuilder = Callable[[GroupRequest], PartitionGroupSpec]
PartitionGroupsBuilder = Callable[[GroupRequest], Sequence[PartitionGroupSpec]]


def default_control_group(request: GroupRequest) -> PartitionGroupSpec:
    """Single-partition consensus group holding cluster metadata."""
    return PartitionGroupSpec(
        name=CONTROL_GROUP_NAME,
        protocol=PartitionProtocol.CONSENSUS,
        partition_count=1,
        storage_level=request.storage_level,
        data_directory=request.node_directory / CONTROL_GROUP_NAME,
    )


def default_partition_groups(request: GroupRequest) -> List[PartitionGroupSpec]:
    """Coordination group plus primary-backup data group."""
    coordination_count = (
        request.coordination_partitions
        if request.coordination_partitions > 0
        else request.bootstrap_size
    )
    return [
        PartitionGroupSpec(
            name=COORDINATION_GROUP_NAME,
            protocol=PartitionProtocol.CONSENSUS,
            partition_count=coordination_count,
            partition_size=request.coordination_partition_size,
            storage_level=request.storage_level,
            data_directory=request.node_directory / COORDINATION_GROUP_NAME,
        ),
        # Replication factor belongs to the primary-backup service, not here
        PartitionGroupSpec(
            name=DATA_GROUP_NAME,
            protocol=PartitionProtocol.PRIMARY_BACKUP,
            partition_count=request.data_partitions,
            storage_level=StorageLevel.MEMORY,
            data_directory=request.node_directory / DATA_GROUP_NAME,
        ),
    ]


@dataclass(frozen=True)
class TopologyPolicy:
    """
    Pluggable partition-group layout.

    ``build_control_group`` must return a single-partition consensus group;
    ``build_partition_groups`` returns the remaining groups in order.
    """
    build_control_group: ControlGroupBuilder = default_control_group
    build_partition_groups: PartitionGroupsBuilder = default_partition_groups


def default_policy() -> TopologyPolicy:
    """Control, coordination and data groups as used by the harness."""
    return TopologyPolicy()


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class TopologyBuilder:
    """
    Builds ``ClusterTopology`` values for the nodes of one session.

    The builder only reads and populates the allocator; it never opens
    sockets of its own or touches the filesystem.
    """

    def __init__(
        self,
        allocator: EndpointAllocator,
        config: Optional[HarnessConfig] = None,
        policy: Optional[TopologyPolicy] = None,
    ) -> None:
        self._allocator = allocator
        self._config = config or HarnessConfig()
        self._policy = policy or default_policy()

    @property
    def policy(self) -> TopologyPolicy:
        return self._policy

    def build(
        self,
        role: NodeRole,
        node_id: NodeId,
        bootstrap_ids: Iterable[NodeId],
        coordination_partitions: Optional[int] = None,
        data_partitions: Optional[int] = None,
    ) -> ClusterTopology:
        """
        Build the topology of *node_id* joining the cluster formed by
        *bootstrap_ids*.

        Args:
            role: Role of the local node.
            node_id: Identifier of the local node.
            bootstrap_ids: Identifiers every member contacts to form the cluster.
            coordination_partitions: Coordination partition count; ``0`` sizes
                the group to the bootstrap set.  Defaults to the configured value.
            data_partitions: Data partition count.  Defaults to the configured value.

        Raises:
            ConfigurationError: On an empty bootstrap set or invalid counts.
        """
        partitions = self._config.partitions
        if coordination_partitions is None:
            coordination_partitions = partitions.coordination_partitions
        if data_partitions is None:
            data_partitions = partitions.data_partitions

        ids = _unique(bootstrap_ids)
        if not ids:
            raise ConfigurationError(
                f"Node {node_id} has an empty bootstrap set; a cluster needs at least one member"
            )
        if coordination_partitions < 0:
            raise ConfigurationError(
                f"Coordination partitions must be >= 0, got {coordination_partitions}"
            )
        if data_partitions < 1:
            raise ConfigurationError(f"Data partitions must be >= 1, got {data_partitions}")

        local_node = Node(node_id, self._allocator.resolve(node_id), role)
        bootstrap_nodes = tuple(
            Node(bootstrap_id, self._allocator.resolve(bootstrap_id), NodeRole.DATA)
            for bootstrap_id in ids
        )

        topology = ClusterTopology(
            local_node=local_node,
            bootstrap_nodes=bootstrap_nodes,
            data_directory=self._config.node_directory(node_id),
        )
        topology = self.ensure_partition_groups(
            topology,
            coordination_partitions=coordination_partitions,
            data_partitions=data_partitions,
        )

        logger.debug(
            "topology_builder.built",
            node_id=node_id,
            role=role.value,
            bootstrap=list(ids),
            groups=[g.name for g in topology.partition_groups],
        )
        return topology

    def ensure_partition_groups(
        self,
        topology: ClusterTopology,
        coordination_partitions: Optional[int] = None,
        data_partitions: Optional[int] = None,
    ) -> ClusterTopology:
        """
        Return *topology* with its partition groups in place.

        A topology that already carries groups is returned unchanged, so the
        same logical cluster never ends up with duplicated groups.
        """
        if topology.has_partition_groups:
            return topology
        if not topology.bootstrap_nodes:
            raise ConfigurationError(
                f"Node {topology.local_node.node_id} has an empty bootstrap set"
            )

        partitions = self._config.partitions
        request = GroupRequest(
            node_directory=topology.data_directory,
            bootstrap_size=len(topology.bootstrap_nodes),
            coordination_partitions=(
                partitions.coordination_partitions
                if coordination_partitions is None
                else coordination_partitions
            ),
            data_partitions=(
                partitions.data_partitions if data_partitions is None else data_partitions
            ),
            coordination_partition_size=partitions.coordination_partition_size,
            storage_level=StorageLevel(partitions.storage_level),
        )

        control = self._policy.build_control_group(request)
        if control.protocol != PartitionProtocol.CONSENSUS or control.partition_count != 1:
            raise ConfigurationError(
                f"Control group {control.name!r} must be a single-partition consensus group"
            )
        groups: Tuple[PartitionGroupSpec, ...] = (control,) + tuple(
            self._policy.build_partition_groups(request)
        )

        names = [g.name for g in groups]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate partition group names: {names}")

        return dataclasses.replace(topology, partition_groups=groups)


def _unique(node_ids: Iterable[NodeId]) -> Tuple[NodeId, ...]:
    seen = {}
    for node_id in node_ids:
        seen.setdefault(node_id, None)
    return tuple(seen)
