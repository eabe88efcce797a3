"""
Shared fixtures for cluster harness tests.

``ScriptedInstance`` is a runtime stand-in whose start/stop behaviour is
controlled per node id, so orchestration paths (success, failure, hang) can
be exercised deterministically without binding sockets.
"""

from __future__ import annotations

import asyncio
from typing import Callable, List, Set

import pytest

from clusterharness.config import HarnessConfig
from clusterharness.endpoints import EndpointAllocator
from clusterharness.instance.base import ClusterInstance, InstanceBuilder
from clusterharness.types import ClusterTopology


class InstanceScript:
    """Per-node behaviour of scripted instances."""

    def __init__(self) -> None:
        self.hang_on_start: Set[int] = set()
        self.fail_on_start: Set[int] = set()
        self.fail_on_stop: Set[int] = set()
        self.start_delay: float = 0.0
        self.started: List[int] = []
        self.stopped: List[int] = []


class ScriptedInstance(ClusterInstance):
    """Instance whose lifecycle follows an ``InstanceScript``."""

    def __init__(self, cluster_name: str, topology: ClusterTopology, script: InstanceScript) -> None:
        super().__init__(cluster_name, topology)
        self._script = script
        self._release = asyncio.Event()

    async def _do_start(self) -> None:
        if self._script.start_delay:
            await asyncio.sleep(self._script.start_delay)
        if self.node_id in self._script.fail_on_start:
            raise RuntimeError(f"node {self.node_id} refused to start")
        if self.node_id in self._script.hang_on_start:
            await self._release.wait()
        self._script.started.append(self.node_id)

    async def stop(self) -> None:
        # Unblock a hung start so the stop can wait for it to settle
        self._release.set()
        await super().stop()

    async def _do_stop(self) -> None:
        if self.node_id in self._script.fail_on_stop:
            raise RuntimeError(f"node {self.node_id} refused to stop")
        self._script.stopped.append(self.node_id)


@pytest.fixture
def script() -> InstanceScript:
    return InstanceScript()


@pytest.fixture
def scripted_builder(script: InstanceScript) -> Callable[[], InstanceBuilder]:
    return lambda: InstanceBuilder(
        lambda name, topology: ScriptedInstance(name, topology, script)
    )


@pytest.fixture
def config(tmp_path) -> HarnessConfig:
    return HarnessConfig(data_root=tmp_path / "test-logs")


@pytest.fixture
def allocator() -> EndpointAllocator:
    return EndpointAllocator()
