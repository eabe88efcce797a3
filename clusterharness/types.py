"""
Cluster Harness Types

Value types describing a test cluster: endpoints, nodes, partition group
definitions and the assembled topology of one instance.  Everything here
is immutable; builders produce new values instead of mutating shared ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from clusterharness.errors import ConfigurationError


NodeId = int

CONTROL_GROUP_NAME = "core"
COORDINATION_GROUP_NAME = "coordination"
DATA_GROUP_NAME = "data"


# =============================================================================
# Enumerations
# =============================================================================


class NodeRole(str, Enum):
    """Role of a node in the cluster."""
    CONTROL = "control"
    DATA = "data"           # Member of the control, coordination and data groups
    CLIENT = "client"       # Consumes the groups, hosts no partitions


class PartitionProtocol(str, Enum):
    """Replication protocol backing a partition group."""
    CONSENSUS = "consensus"
    PRIMARY_BACKUP = "primary_backup"


class StorageLevel(str, Enum):
    """Where a partition group keeps its state."""
    DURABLE = "durable"
    MEMORY = "memory"


class InstanceState(str, Enum):
    """Lifecycle state of a cluster instance."""
    CREATED = "created"
    STARTING = "starting"
    STARTED = "started"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


# =============================================================================
# Network identity
# =============================================================================


@dataclass(frozen=True)
class Endpoint:
    """A resolvable (host, port) address of one node's listening socket."""
    host: str
    port: int

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def to_dict(self) -> Dict[str, Any]:
        return {"host": self.host, "port": self.port}

    def __str__(self) -> str:
        return self.address


@dataclass(frozen=True)
class Node:
    """A cluster member: identity, role and endpoint."""
    node_id: NodeId
    endpoint: Endpoint
    role: NodeRole = NodeRole.DATA

    @property
    def name(self) -> str:
        return str(self.node_id)

    @property
    def is_client(self) -> bool:
        return self.role == NodeRole.CLIENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "name": self.name,
            "role": self.role.value,
            "endpoint": self.endpoint.to_dict(),
        }


# =============================================================================
# Partition groups
# =============================================================================


@dataclass(frozen=True)
class PartitionGroupSpec:
    """
    Specification of one partition group.

    The underlying runtime owns what a partition is; the harness only decides
    how many there are, which protocol replicates them and where they live.
    """
    name: str
    protocol: PartitionProtocol
    partition_count: int
    partition_size: Optional[int] = None
    storage_level: StorageLevel = StorageLevel.MEMORY
    data_directory: Optional[Path] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Partition group name must not be empty")
        if self.partition_count < 1:
            raise ConfigurationError(
                f"Partition group {self.name!r} needs at least one partition, "
                f"got {self.partition_count}"
            )
        if self.partition_size is not None and self.partition_size < 1:
            raise ConfigurationError(
                f"Partition group {self.name!r} has invalid partition size "
                f"{self.partition_size}"
            )

    @property
    def is_durable(self) -> bool:
        return self.storage_level == StorageLevel.DURABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "protocol": self.protocol.value,
            "partition_count": self.partition_count,
            "partition_size": self.partition_size,
            "storage_level": self.storage_level.value,
            "data_directory": str(self.data_directory) if self.data_directory else None,
        }


# =============================================================================
# Topology
# =============================================================================


@dataclass(frozen=True)
class ClusterTopology:
    """
    Everything needed to construct one cluster instance.

    The local node need not be part of ``bootstrap_nodes`` (client nodes are
    not).  ``partition_groups`` is empty until groups have been ensured.
    """
    local_node: Node
    bootstrap_nodes: Tuple[Node, ...] = ()
    partition_groups: Tuple[PartitionGroupSpec, ...] = ()
    data_directory: Path = field(default_factory=lambda: Path("."))

    @property
    def has_partition_groups(self) -> bool:
        return bool(self.partition_groups)

    @property
    def bootstrap_ids(self) -> Tuple[NodeId, ...]:
        return tuple(node.node_id for node in self.bootstrap_nodes)

    @property
    def control_group(self) -> Optional[PartitionGroupSpec]:
        return self.group(CONTROL_GROUP_NAME)

    def group(self, name: str) -> Optional[PartitionGroupSpec]:
        """Return the partition group called *name*, if present."""
        for spec in self.partition_groups:
            if spec.name == name:
                return spec
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "local_node": self.local_node.to_dict(),
            "bootstrap_nodes": [n.to_dict() for n in self.bootstrap_nodes],
            "partition_groups": [g.to_dict() for g in self.partition_groups],
            "data_directory": str(self.data_directory),
        }
