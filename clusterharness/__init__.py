"""
Cluster Harness

Bootstrap and lifecycle orchestration for ephemeral multi-node coordination
clusters used in tests:

- **Endpoint allocation**: node ids mapped to probed loopback ports, memoised
  per session
- **Topology building**: control (``core``), coordination and data partition
  groups composed for every node
- **Instance construction**: builder-style wiring of a topology into a
  not-yet-started instance
- **Orchestration**: concurrent start behind a deadline-bounded barrier,
  client nodes joined to a running cluster
- **Lifecycle & cleanup**: best-effort concurrent stop, post-order purge of
  persisted state
"""

__version__ = "1.0.0"

from clusterharness.config import (
    HarnessConfig,
    NetworkConfig,
    PartitionConfig,
    get_default_config,
)
from clusterharness.endpoints import EndpointAllocator
from clusterharness.errors import (
    AllocationError,
    CleanupError,
    ConfigurationError,
    HarnessError,
    InstanceStateError,
    StartupFailure,
    StartupTimeoutError,
)
from clusterharness.handle import ClusterManagerHandle
from clusterharness.instance import (
    ClusterInstance,
    InstanceBuilder,
    InstanceFactory,
    LocalClusterInstance,
)
from clusterharness.lifecycle import LifecycleManager, purge_directory
from clusterharness.logs import setup_logging
from clusterharness.orchestrator import ClusterOrchestrator
from clusterharness.session import ClusterSession
from clusterharness.topology import (
    GroupRequest,
    TopologyBuilder,
    TopologyPolicy,
    default_policy,
)
from clusterharness.types import (
    CONTROL_GROUP_NAME,
    COORDINATION_GROUP_NAME,
    DATA_GROUP_NAME,
    ClusterTopology,
    Endpoint,
    InstanceState,
    Node,
    NodeId,
    NodeRole,
    PartitionGroupSpec,
    PartitionProtocol,
    StorageLevel,
)

__all__ = [
    # Types
    "CONTROL_GROUP_NAME",
    "COORDINATION_GROUP_NAME",
    "DATA_GROUP_NAME",
    "ClusterTopology",
    "Endpoint",
    "InstanceState",
    "Node",
    "NodeId",
    "NodeRole",
    "PartitionGroupSpec",
    "PartitionProtocol",
    "StorageLevel",
    # Configuration
    "HarnessConfig",
    "NetworkConfig",
    "PartitionConfig",
    "get_default_config",
    # Errors
    "AllocationError",
    "CleanupError",
    "ConfigurationError",
    "HarnessError",
    "InstanceStateError",
    "StartupFailure",
    "StartupTimeoutError",
    # Components
    "EndpointAllocator",
    "TopologyBuilder",
    "TopologyPolicy",
    "GroupRequest",
    "default_policy",
    "ClusterInstance",
    "InstanceBuilder",
    "InstanceFactory",
    "LocalClusterInstance",
    "ClusterOrchestrator",
    "ClusterManagerHandle",
    "LifecycleManager",
    "purge_directory",
    "ClusterSession",
    "setup_logging",
    "__version__",
]
