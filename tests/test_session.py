"""
End-to-end session tests: a three-node cluster brought up with the local
runtime, a client node joined to it, and teardown after a startup timeout.
"""

from __future__ import annotations

import asyncio
import socket
import time
from unittest.mock import patch

import aiohttp
import pytest

from clusterharness.config import HarnessConfig
from clusterharness.errors import StartupTimeoutError
from clusterharness.instance import LocalClusterInstance
from clusterharness.session import ClusterSession
from clusterharness.types import (
    CONTROL_GROUP_NAME,
    COORDINATION_GROUP_NAME,
    DATA_GROUP_NAME,
    InstanceState,
    NodeRole,
)


class TestThreeNodeCluster:
    """Bootstrap set {1, 2, 3} with three coordination and data partitions."""

    @pytest.mark.asyncio
    async def test_set_up_starts_three_data_nodes(self, config):
        session = ClusterSession(config)
        try:
            instances = await session.set_up(timeout=30)

            assert [i.node_id for i in instances] == [1, 2, 3]
            assert all(i.node.role == NodeRole.DATA for i in instances)
            assert all(i.state == InstanceState.STARTED for i in instances)
            assert len({i.endpoint for i in instances}) == 3

            groups = {g.name: g for g in instances[0].partition_groups}
            assert list(groups) == [CONTROL_GROUP_NAME, COORDINATION_GROUP_NAME, DATA_GROUP_NAME]
            assert groups[CONTROL_GROUP_NAME].partition_count == 1
            assert groups[COORDINATION_GROUP_NAME].partition_count == 3
            assert groups[DATA_GROUP_NAME].partition_count == 3

            async with aiohttp.ClientSession() as http:
                for instance in instances:
                    url = f"http://127.0.0.1:{instance.endpoint.port}/health"
                    async with http.get(url) as resp:
                        assert (await resp.json())["node_id"] == instance.node_id
        finally:
            await session.tear_down()

    @pytest.mark.asyncio
    async def test_client_node_joins_running_cluster(self, config):
        async with ClusterSession(config) as session:
            bootstrap_endpoints = {i.endpoint for i in session.instances}

            manager = await session.create_cluster_manager()

            assert manager.node_id == 10
            assert manager.is_active
            assert manager.instance.state == InstanceState.STARTED
            assert manager.endpoint not in bootstrap_endpoints
            assert manager.get_nodes() == ["1", "2", "3", "10"]
            assert (await session.create_cluster_manager()).node_id == 11

    @pytest.mark.asyncio
    async def test_tear_down_stops_and_purges(self, tmp_path):
        config = HarnessConfig(data_root=tmp_path / "logs")
        config.partitions.storage_level = "durable"

        session = ClusterSession(config)
        instances = await session.set_up()
        assert (config.data_root / "1" / "core").is_dir()

        await session.tear_down()

        assert all(i.state == InstanceState.STOPPED for i in instances)
        assert not config.data_root.exists()
        assert len(session.allocator) == 0
        assert session.instances == []

    @pytest.mark.asyncio
    async def test_set_up_purges_stale_data(self, config):
        stale = config.data_root / "1" / "core" / "old.log"
        stale.parent.mkdir(parents=True)
        stale.write_text("stale")

        async with ClusterSession(config):
            assert not stale.exists()

    @pytest.mark.asyncio
    async def test_next_session_probes_fresh_endpoints(self, config):
        session = ClusterSession(config)
        await session.set_up()
        first = session.allocator.snapshot()
        await session.tear_down()

        assert len(session.allocator) == 0
        await session.set_up()
        try:
            assert set(session.allocator.snapshot()) == set(first)
        finally:
            await session.tear_down()


class TestStartupTimeout:
    """Teardown still succeeds after a batch start timed out."""

    @pytest.mark.asyncio
    async def test_timeout_then_teardown(self, config, scripted_builder, script):
        script.hang_on_start.update({1, 2, 3})
        session = ClusterSession(config, builder_factory=scripted_builder)

        with pytest.raises(StartupTimeoutError) as exc_info:
            await session.set_up(timeout=0.1)
        assert exc_info.value.pending == [1, 2, 3]

        await session.tear_down()

        assert sorted(script.stopped) == [1, 2, 3]
        assert not config.data_root.exists()

    @pytest.mark.asyncio
    async def test_context_manager_tears_down_on_failed_set_up(
        self, config, scripted_builder, script
    ):
        config.startup_timeout_seconds = 0.1
        script.hang_on_start.add(2)
        script.fail_on_stop.add(2)
        session = ClusterSession(config, builder_factory=scripted_builder)

        with pytest.raises(StartupTimeoutError):
            async with session:
                pytest.fail("body must not run")

        assert session.instances == []
        assert sorted(script.stopped) == [1, 3]

    @pytest.mark.asyncio
    async def test_late_local_starts_are_torn_down(self, tmp_path):
        config = HarnessConfig(data_root=tmp_path / "logs")
        config.partitions.storage_level = "durable"
        prepare = LocalClusterInstance._prepare_storage

        def slow_prepare(instance):
            prepare(instance)
            time.sleep(0.2)

        session = ClusterSession(config)
        with patch.object(LocalClusterInstance, "_prepare_storage", slow_prepare):
            with pytest.raises(StartupTimeoutError) as exc_info:
                await session.set_up(timeout=0.05)
            assert exc_info.value.pending == [1, 2, 3]
            instances = session.instances

            await session.tear_down()
            await asyncio.sleep(0.3)

        assert all(i.state == InstanceState.STOPPED for i in instances)
        assert not config.data_root.exists()
        for instance in instances:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                assert sock.connect_ex(("127.0.0.1", instance.endpoint.port)) != 0
