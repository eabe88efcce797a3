"""
Cluster Harness Orchestrator

Builds batches of cluster instances, starts them concurrently and waits on a
single all-complete barrier bounded by a deadline.

- No ordering between instances is enforced; the coordination runtime
  resolves bootstrap ordering itself.
- On timeout the still-starting instances are left running (no rollback, no
  cancellation).  Callers that want them gone call ``stop_all``.
- A failed start is reported after every sibling finished; it never aborts
  starts already in flight.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import structlog

from clusterharness.config import HarnessConfig
from clusterharness.endpoints import EndpointAllocator
from clusterharness.errors import StartupFailure, StartupTimeoutError
from clusterharness.handle import ClusterManagerHandle
from clusterharness.instance.base import ClusterInstance, InstanceBuilderFactory
from clusterharness.instance.factory import InstanceFactory
from clusterharness.lifecycle import LifecycleManager
from clusterharness.topology import TopologyPolicy
from clusterharness.types import NodeId, NodeRole

logger = structlog.get_logger(__name__)


class ClusterOrchestrator:
    """
    Owns the instances of one harness session and drives their lifecycle.

    Usage::

        orchestrator = ClusterOrchestrator(config, allocator)
        instances = [
            orchestrator.create_instance(NodeRole.DATA, node_id, [1, 2, 3])
            for node_id in (1, 2, 3)
        ]
        await orchestrator.start_all(instances)
        handle = await orchestrator.add_client_node()
        await orchestrator.stop_all()
    """

    def __init__(
        self,
        config: Optional[HarnessConfig] = None,
        allocator: Optional[EndpointAllocator] = None,
        *,
        policy: Optional[TopologyPolicy] = None,
        builder_factory: Optional[InstanceBuilderFactory] = None,
        lifecycle: Optional[LifecycleManager] = None,
    ) -> None:
        self._config = config or HarnessConfig()
        self._allocator = allocator or EndpointAllocator(
            host=self._config.network.host,
            base_port=self._config.network.base_port,
        )
        self._factory = InstanceFactory(
            self._allocator,
            self._config,
            policy=policy,
            builder_factory=builder_factory,
        )
        self._lifecycle = lifecycle or LifecycleManager(self._allocator, self._config.data_root)

        self._instances: List[ClusterInstance] = []
        self._client_ids = itertools.count(self._config.first_client_id)
        # Strong references to starts that outlived their batch deadline
        self._orphaned_starts: Set[asyncio.Task[ClusterInstance]] = set()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> HarnessConfig:
        return self._config

    @property
    def allocator(self) -> EndpointAllocator:
        return self._allocator

    @property
    def factory(self) -> InstanceFactory:
        return self._factory

    @property
    def lifecycle(self) -> LifecycleManager:
        return self._lifecycle

    @property
    def instances(self) -> Tuple[ClusterInstance, ...]:
        return tuple(self._instances)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def create_instance(
        self,
        role: NodeRole,
        node_id: NodeId,
        bootstrap_ids: Iterable[NodeId],
        coordination_partitions: Optional[int] = None,
        data_partitions: Optional[int] = None,
    ) -> ClusterInstance:
        """Build a topology for *node_id*, turn it into an instance and track it."""
        topology = self._factory.topologies.build(
            role,
            node_id,
            bootstrap_ids,
            coordination_partitions=coordination_partitions,
            data_partitions=data_partitions,
        )
        instance = self._factory.create(topology)
        self._instances.append(instance)
        return instance

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start_all(
        self,
        instances: Sequence[ClusterInstance],
        timeout: Optional[float] = None,
    ) -> List[ClusterInstance]:
        """
        Start *instances* concurrently and wait for all of them.

        Args:
            instances: Instances to start.
            timeout: Deadline in seconds; the configured startup timeout when
                omitted.

        Returns:
            The started instances, in the order given.

        Raises:
            StartupTimeoutError: If any start is still pending at the deadline.
            StartupFailure: If every start finished but at least one failed.
        """
        if timeout is None:
            timeout = self._config.startup_timeout_seconds
        if not instances:
            return []

        logger.info(
            "orchestrator.starting",
            nodes=[instance.node_id for instance in instances],
            timeout=timeout,
        )

        tasks: Dict[asyncio.Task[ClusterInstance], ClusterInstance] = {
            asyncio.ensure_future(instance.start()): instance for instance in instances
        }
        done, pending = await asyncio.wait(tasks, timeout=timeout)

        failures: Dict[NodeId, BaseException] = {}
        for task in done:
            exc = task.exception()
            if exc is not None:
                failures[tasks[task].node_id] = exc

        if pending:
            for task in pending:
                self._orphaned_starts.add(task)
                task.add_done_callback(self._release_orphan)
            pending_ids = [tasks[task].node_id for task in pending]
            logger.error(
                "orchestrator.start_timeout",
                timeout=timeout,
                pending=sorted(pending_ids),
                failed=sorted(failures),
            )
            raise StartupTimeoutError(timeout, pending_ids)

        if failures:
            logger.error(
                "orchestrator.start_failed",
                failed=sorted(failures),
                started=len(instances) - len(failures),
            )
            raise StartupFailure(failures)

        logger.info("orchestrator.started", count=len(instances))
        return list(instances)

    async def add_client_node(
        self,
        node_id: Optional[NodeId] = None,
        bootstrap_ids: Optional[Iterable[NodeId]] = None,
    ) -> ClusterManagerHandle:
        """
        Join a client node to the already running bootstrap set.

        The start is awaited without a batch deadline.

        Args:
            node_id: Client node id; the next id from ``first_client_id`` on
                when omitted.
            bootstrap_ids: Running members to join; the configured bootstrap
                set when omitted.
        """
        if node_id is None:
            node_id = next(self._client_ids)
        if bootstrap_ids is None:
            bootstrap_ids = self._config.bootstrap_ids

        instance = self.create_instance(NodeRole.CLIENT, node_id, bootstrap_ids)
        await instance.start()

        logger.info(
            "orchestrator.client_joined",
            node_id=node_id,
            address=instance.endpoint.address,
        )
        return ClusterManagerHandle(instance)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def stop_all(self) -> List[ClusterInstance]:
        """Stop every tracked instance, best-effort, and forget them."""
        instances, self._instances = self._instances, []
        return await self._lifecycle.stop_all(instances)

    def _release_orphan(self, task: "asyncio.Task[ClusterInstance]") -> None:
        self._orphaned_starts.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("orchestrator.late_start_failed", error=repr(task.exception()))
