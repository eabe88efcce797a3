"""
Cluster instances

- :class:`ClusterInstance`      -- lifecycle state machine over a runtime
- :class:`InstanceBuilder`      -- builder-style construction contract
- :class:`LocalClusterInstance` -- in-process runtime bound to its endpoint
- :class:`InstanceFactory`      -- topology to not-yet-started instance
"""

from __future__ import annotations

from clusterharness.instance.base import ClusterInstance, InstanceBuilder, InstanceBuilderFactory
from clusterharness.instance.factory import InstanceFactory
from clusterharness.instance.local import LocalClusterInstance

__all__ = [
    "ClusterInstance",
    "InstanceBuilder",
    "InstanceBuilderFactory",
    "InstanceFactory",
    "LocalClusterInstance",
]
