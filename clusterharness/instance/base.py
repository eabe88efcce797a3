"""
Cluster Instance Contract

Construction and lifecycle contract for one member of a test cluster:

- ``InstanceBuilder`` collects cluster name, data directory, local node,
  bootstrap nodes and partition groups, and produces an instance without
  performing any I/O.
- ``ClusterInstance`` drives the lifecycle state machine::

      created -> starting -> {started | failed}
      started -> stopping -> {stopped | failed}
      starting -> stopping  (stop waits for the start to settle)

  Concrete runtimes implement ``_do_start`` / ``_do_stop``.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Tuple, Type, TypeVar

import structlog

from clusterharness.errors import ConfigurationError, InstanceStateError
from clusterharness.types import (
    ClusterTopology,
    Endpoint,
    InstanceState,
    Node,
    NodeId,
    PartitionGroupSpec,
)

logger = structlog.get_logger(__name__)

I = TypeVar("I", bound="ClusterInstance")


class ClusterInstance(ABC):
    """
    One not-necessarily-started member of a cluster.

    ``start()`` and ``stop()`` are coroutines that resolve once the transition
    finished.  A failed transition moves the instance to ``failed`` and
    re-raises; it never affects sibling instances.
    """

    def __init__(self, cluster_name: str, topology: ClusterTopology) -> None:
        self._cluster_name = cluster_name
        self._topology = topology
        self._state = InstanceState.CREATED
        self._error: Optional[BaseException] = None
        self._start_done: Optional[asyncio.Event] = None

    @classmethod
    def builder(cls: Type[I]) -> "InstanceBuilder[I]":
        """Return a builder producing instances of this class."""
        return InstanceBuilder(cls)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def cluster_name(self) -> str:
        return self._cluster_name

    @property
    def topology(self) -> ClusterTopology:
        return self._topology

    @property
    def node(self) -> Node:
        return self._topology.local_node

    @property
    def node_id(self) -> NodeId:
        return self._topology.local_node.node_id

    @property
    def endpoint(self) -> Endpoint:
        return self._topology.local_node.endpoint

    @property
    def data_directory(self) -> Path:
        return self._topology.data_directory

    @property
    def partition_groups(self) -> Tuple[PartitionGroupSpec, ...]:
        return self._topology.partition_groups

    @property
    def state(self) -> InstanceState:
        return self._state

    @property
    def error(self) -> Optional[BaseException]:
        """The exception that moved this instance to ``failed``, if any."""
        return self._error

    @property
    def is_running(self) -> bool:
        return self._state == InstanceState.STARTED

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self: I) -> I:
        """Start the instance and return it once started."""
        if self._state == InstanceState.STARTED:
            logger.warning("instance.already_started", node_id=self.node_id)
            return self
        if self._state != InstanceState.CREATED:
            raise InstanceStateError(
                f"Cannot start node {self.node_id} in state {self._state.value}"
            )

        self._state = InstanceState.STARTING
        self._start_done = asyncio.Event()
        logger.info(
            "instance.starting",
            node_id=self.node_id,
            role=self.node.role.value,
            address=self.endpoint.address,
        )

        try:
            await self._do_start()
        except Exception as exc:
            self._fail(exc)
            logger.error(
                "instance.start_failed",
                node_id=self.node_id,
                error=repr(exc),
            )
            raise
        finally:
            self._start_done.set()

        # A stop issued while the start was in flight wins
        if self._state == InstanceState.STARTING:
            self._state = InstanceState.STARTED
            logger.info("instance.started", node_id=self.node_id)
        return self

    async def stop(self) -> None:
        """
        Stop the instance; a no-op when it never started or already stopped.

        Stopping an instance that is still starting waits for the in-flight
        start to settle, then releases whatever it acquired.
        """
        if self._state == InstanceState.CREATED:
            self._state = InstanceState.STOPPED
            return
        if self._state in (InstanceState.STOPPED, InstanceState.FAILED):
            return
        if self._state == InstanceState.STOPPING:
            raise InstanceStateError(f"Node {self.node_id} is already stopping")

        logger.info("instance.stopping", node_id=self.node_id, state=self._state.value)
        interrupted = self._state == InstanceState.STARTING
        self._state = InstanceState.STOPPING

        if interrupted and self._start_done is not None:
            await self._start_done.wait()
            if self._state == InstanceState.FAILED:
                # The start failed and already released its resources
                return

        try:
            await self._do_stop()
        except Exception as exc:
            self._fail(exc)
            logger.error(
                "instance.stop_failed",
                node_id=self.node_id,
                error=repr(exc),
            )
            raise

        self._state = InstanceState.STOPPED
        logger.info("instance.stopped", node_id=self.node_id)

    @abstractmethod
    async def _do_start(self) -> None:
        """Bring the runtime up."""

    @abstractmethod
    async def _do_stop(self) -> None:
        """Bring the runtime down."""

    def _fail(self, exc: BaseException) -> None:
        self._state = InstanceState.FAILED
        self._error = exc

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cluster_name": self._cluster_name,
            "state": self._state.value,
            "node": self.node.to_dict(),
            "bootstrap_nodes": [n.to_dict() for n in self._topology.bootstrap_nodes],
            "partition_groups": [g.to_dict() for g in self.partition_groups],
            "data_directory": str(self.data_directory),
            "error": repr(self._error) if self._error else None,
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(node_id={self.node_id}, "
            f"address={self.endpoint.address!r}, state={self._state.value!r})"
        )


class InstanceBuilder(Generic[I]):
    """
    Fluent builder for a cluster instance.

    Usage::

        instance = (
            LocalClusterInstance.builder()
            .with_cluster_name("test")
            .with_data_directory(Path("target/test-logs/1"))
            .with_local_node(node)
            .with_bootstrap_nodes(nodes)
            .with_partition_groups(groups)
            .build()
        )
    """

    def __init__(self, instance_type: Callable[[str, ClusterTopology], I]) -> None:
        self._instance_type = instance_type
        self._cluster_name: Optional[str] = None
        self._data_directory: Optional[Path] = None
        self._local_node: Optional[Node] = None
        self._bootstrap_nodes: List[Node] = []
        self._partition_groups: List[PartitionGroupSpec] = []

    def with_cluster_name(self, name: str) -> "InstanceBuilder[I]":
        self._cluster_name = name
        return self

    def with_data_directory(self, directory: Path) -> "InstanceBuilder[I]":
        self._data_directory = Path(directory)
        return self

    def with_local_node(self, node: Node) -> "InstanceBuilder[I]":
        self._local_node = node
        return self

    def with_bootstrap_nodes(self, nodes: Iterable[Node]) -> "InstanceBuilder[I]":
        self._bootstrap_nodes = list(nodes)
        return self

    def with_partition_groups(self, groups: Iterable[PartitionGroupSpec]) -> "InstanceBuilder[I]":
        self._partition_groups = list(groups)
        return self

    def build(self) -> I:
        if not self._cluster_name:
            raise ConfigurationError("Cluster name is required")
        if self._local_node is None:
            raise ConfigurationError("Local node is required")
        if self._data_directory is None:
            raise ConfigurationError(f"Node {self._local_node.node_id} has no data directory")
        if not self._bootstrap_nodes:
            raise ConfigurationError(
                f"Node {self._local_node.node_id} has an empty bootstrap set"
            )
        if not self._partition_groups:
            raise ConfigurationError(
                f"Node {self._local_node.node_id} has no partition groups"
            )

        topology = ClusterTopology(
            local_node=self._local_node,
            bootstrap_nodes=tuple(self._bootstrap_nodes),
            partition_groups=tuple(self._partition_groups),
            data_directory=self._data_directory,
        )
        return self._instance_type(self._cluster_name, topology)


InstanceBuilderFactory = Callable[[], InstanceBuilder[Any]]
