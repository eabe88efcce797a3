"""
Configuration, type and logging setup tests.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import structlog
from pydantic import ValidationError

from clusterharness import setup_logging
from clusterharness.config import HarnessConfig, PartitionConfig, get_default_config
from clusterharness.errors import StartupFailure, StartupTimeoutError
from clusterharness.types import Endpoint, Node, NodeRole


class TestHarnessConfig:
    """Test HarnessConfig defaults and validation."""

    def test_defaults(self):
        config = get_default_config()
        assert config.cluster_name == "test"
        assert config.data_root == Path("target/test-logs")
        assert config.bootstrap_ids == [1, 2, 3]
        assert config.first_client_id == 10
        assert config.startup_timeout_seconds == 30.0
        assert config.network.host == "localhost"
        assert config.network.base_port == 5000
        assert config.partitions.coordination_partitions == 3
        assert config.partitions.data_partitions == 3
        assert config.partitions.storage_level == "memory"

    def test_node_directory(self):
        config = HarnessConfig(data_root="/tmp/cluster")
        assert config.node_directory(4) == Path("/tmp/cluster/4")

    @pytest.mark.parametrize("ids", [[], [0, 1], [1, 1], [-2]])
    def test_invalid_bootstrap_ids(self, ids):
        with pytest.raises(ValidationError):
            HarnessConfig(bootstrap_ids=ids)

    def test_invalid_partition_counts(self):
        with pytest.raises(ValidationError):
            PartitionConfig(data_partitions=0)
        with pytest.raises(ValidationError):
            PartitionConfig(coordination_partitions=-1)
        with pytest.raises(ValidationError):
            PartitionConfig(storage_level="disk")

    def test_invalid_timeout(self):
        with pytest.raises(ValidationError):
            HarnessConfig(startup_timeout_seconds=0)


class TestTypes:
    """Test value types."""

    def test_endpoint_address(self):
        endpoint = Endpoint("localhost", 5001)
        assert endpoint.address == "localhost:5001"
        assert str(endpoint) == "localhost:5001"

    def test_node_name_and_dict(self):
        node = Node(3, Endpoint("localhost", 5003), NodeRole.CLIENT)
        assert node.name == "3"
        assert node.is_client
        assert node.to_dict()["endpoint"] == {"host": "localhost", "port": 5003}

    def test_error_messages(self):
        timeout = StartupTimeoutError(1.5, [3, 1])
        assert timeout.pending == [1, 3]
        assert "1.5" in str(timeout)

        failure = StartupFailure({2: RuntimeError("boom")})
        assert "boom" in str(failure)


class TestLogging:
    """Test structlog setup."""

    def test_setup_logging_json(self, caplog):
        setup_logging("DEBUG")
        try:
            processors = structlog.get_config()["processors"]
            assert isinstance(processors[-1], structlog.processors.JSONRenderer)

            with caplog.at_level(logging.INFO):
                structlog.get_logger("clusterharness.test").info("config.test_event", node_id=1)
            assert "config.test_event" in caplog.text
            assert "\"node_id\": 1" in caplog.text
        finally:
            structlog.reset_defaults()

    def test_setup_logging_console(self):
        setup_logging("warning", json=False)
        try:
            processors = structlog.get_config()["processors"]
            assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
        finally:
            structlog.reset_defaults()
