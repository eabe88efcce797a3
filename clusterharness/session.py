"""
Cluster Harness Session

One complete test-cluster session: purge stale state, bring up the bootstrap
members, hand out client nodes, then tear everything down and reclaim disk.

Usage::

    async with ClusterSession() as session:
        manager = await session.create_cluster_manager()
        ...
"""

from __future__ import annotations

from types import TracebackType
from typing import List, Optional, Type

import structlog

from clusterharness.config import HarnessConfig
from clusterharness.endpoints import EndpointAllocator
from clusterharness.handle import ClusterManagerHandle
from clusterharness.instance.base import ClusterInstance, InstanceBuilderFactory
from clusterharness.orchestrator import ClusterOrchestrator
from clusterharness.topology import TopologyPolicy
from clusterharness.types import NodeRole

logger = structlog.get_logger(__name__)


class ClusterSession:
    """Session-scoped owner of the allocator, orchestrator and cleanup."""

    def __init__(
        self,
        config: Optional[HarnessConfig] = None,
        *,
        policy: Optional[TopologyPolicy] = None,
        builder_factory: Optional[InstanceBuilderFactory] = None,
    ) -> None:
        self._config = config or HarnessConfig()
        self._allocator = EndpointAllocator(
            host=self._config.network.host,
            base_port=self._config.network.base_port,
        )
        self._orchestrator = ClusterOrchestrator(
            self._config,
            self._allocator,
            policy=policy,
            builder_factory=builder_factory,
        )

    @property
    def config(self) -> HarnessConfig:
        return self._config

    @property
    def allocator(self) -> EndpointAllocator:
        return self._allocator

    @property
    def orchestrator(self) -> ClusterOrchestrator:
        return self._orchestrator

    @property
    def instances(self) -> List[ClusterInstance]:
        return list(self._orchestrator.instances)

    async def set_up(self, timeout: Optional[float] = None) -> List[ClusterInstance]:
        """Purge old data and start one data node per bootstrap id."""
        await self._orchestrator.lifecycle.purge_data()

        bootstrap_ids = list(self._config.bootstrap_ids)
        instances = [
            self._orchestrator.create_instance(NodeRole.DATA, node_id, bootstrap_ids)
            for node_id in bootstrap_ids
        ]
        started = await self._orchestrator.start_all(instances, timeout=timeout)

        logger.info(
            "session.ready",
            cluster=self._config.cluster_name,
            nodes={i.node_id: i.endpoint.address for i in started},
        )
        return started

    async def create_cluster_manager(self) -> ClusterManagerHandle:
        """Join the next client node to the running cluster."""
        return await self._orchestrator.add_client_node()

    async def tear_down(self) -> None:
        """Stop everything best-effort, then purge data and reset endpoints."""
        await self._orchestrator.stop_all()
        await self._orchestrator.lifecycle.purge_data()
        logger.info("session.torn_down", cluster=self._config.cluster_name)

    async def __aenter__(self) -> "ClusterSession":
        try:
            await self.set_up()
        except BaseException:
            await self.tear_down()
            raise
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.tear_down()
