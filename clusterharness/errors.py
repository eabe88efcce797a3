"""
Cluster Harness Errors

Exception hierarchy shared by every harness component.  Errors are raised
where the harness can no longer guarantee a usable cluster (bad
configuration, startup deadline, dirty data directory) and absorbed where
teardown must stay best-effort.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, Iterable, Optional, Union


class HarnessError(Exception):
    """Base class for all harness errors."""


class ConfigurationError(HarnessError, ValueError):
    """Raised when a topology or configuration is invalid."""


class AllocationError(HarnessError):
    """Raised when the OS refuses to hand out an ephemeral port."""

    def __init__(self, node_id: int, reason: str) -> None:
        self.node_id = node_id
        self.reason = reason
        super().__init__(f"Failed to probe a port for node {node_id}: {reason}")


class InstanceStateError(HarnessError):
    """Raised on an illegal instance lifecycle transition."""


class StartupTimeoutError(HarnessError, asyncio.TimeoutError):
    """Raised when a batch start does not complete within its deadline."""

    def __init__(self, timeout: float, pending: Iterable[int]) -> None:
        self.timeout = timeout
        self.pending = sorted(pending)
        super().__init__(
            f"Cluster startup timed out after {timeout}s; "
            f"nodes still starting: {self.pending}"
        )


class StartupFailure(HarnessError):
    """Raised when one or more instances of a batch failed to start."""

    def __init__(self, failures: Dict[int, BaseException]) -> None:
        self.failures = dict(failures)
        details = ", ".join(
            f"{node_id}: {exc!r}" for node_id, exc in sorted(self.failures.items())
        )
        super().__init__(f"{len(self.failures)} instance(s) failed to start ({details})")


class CleanupError(HarnessError):
    """Raised when persisted cluster state cannot be removed."""

    def __init__(self, path: Union[str, Path], reason: Optional[str] = None) -> None:
        self.path = Path(path)
        message = f"Failed to purge {self.path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
