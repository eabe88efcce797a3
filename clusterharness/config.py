"""
Cluster Harness Configuration

Pydantic models describing how a test cluster is laid out: its name, where
it persists state, which node ids bootstrap it, and how its partition groups
are sized.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class NetworkConfig(BaseModel):
    """Network configuration."""
    host: str = Field(default="localhost", min_length=1, description="Loopback host for every node")
    base_port: int = Field(
        default=5000,
        ge=1024,
        le=65535,
        description="Fallback port base used when the OS port probe fails",
    )


class PartitionConfig(BaseModel):
    """Partition group sizing."""
    coordination_partitions: int = Field(
        default=3,
        ge=0,
        description="Coordination partitions; 0 sizes the group to the bootstrap set",
    )
    coordination_partition_size: Optional[int] = Field(default=None, ge=1)
    data_partitions: int = Field(default=3, ge=1)
    storage_level: Literal["durable", "memory"] = "memory"


class HarnessConfig(BaseModel):
    """
    Master configuration for a harness session.

    Defaults reproduce a three-node in-memory cluster named ``test`` that
    keeps its data under ``target/test-logs``.
    """
    cluster_name: str = Field(default="test", min_length=1)
    data_root: Path = Field(default=Path("target/test-logs"))

    bootstrap_ids: List[int] = Field(default_factory=lambda: [1, 2, 3], min_length=1)
    first_client_id: int = Field(default=10, ge=1)

    startup_timeout_seconds: float = Field(default=30.0, gt=0)

    network: NetworkConfig = Field(default_factory=NetworkConfig)
    partitions: PartitionConfig = Field(default_factory=PartitionConfig)

    @field_validator("bootstrap_ids")
    @classmethod
    def validate_bootstrap_ids(cls, v: List[int]) -> List[int]:
        if any(node_id < 1 for node_id in v):
            raise ValueError("bootstrap ids must be positive")
        if len(set(v)) != len(v):
            raise ValueError("bootstrap ids must be unique")
        return v

    def node_directory(self, node_id: int) -> Path:
        """Data directory owned by a single node."""
        return self.data_root / str(node_id)


def get_default_config() -> HarnessConfig:
    """Get default harness configuration."""
    return HarnessConfig()
