"""
Cluster Harness Lifecycle & Cleanup

Teardown side of a harness session:

- ``stop_all`` stops every tracked instance concurrently.  Teardown is
  best-effort: individual failures are logged and absorbed.  A stop that
  never completes still blocks the caller; no deadline is applied here.
- ``purge_data`` erases the persisted state of a session, files before the
  directories containing them, and resets the endpoint map so the next
  session probes fresh ports for the same node ids.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Iterable, List, Optional, Union

import structlog

from clusterharness.endpoints import EndpointAllocator
from clusterharness.errors import CleanupError
from clusterharness.instance.base import ClusterInstance

logger = structlog.get_logger(__name__)


def purge_directory(path: Union[str, Path]) -> int:
    """
    Recursively delete *path*, post-order.

    A missing path is a no-op.  Returns the number of removed entries.

    Raises:
        CleanupError: If any file or directory cannot be removed.
    """
    root = Path(path)
    if not root.exists() and not root.is_symlink():
        return 0

    removed = 0
    try:
        if not root.is_dir() or root.is_symlink():
            root.unlink()
            return 1

        for dirpath, dirnames, filenames in os.walk(root, topdown=False):
            current = Path(dirpath)
            for name in filenames:
                (current / name).unlink()
                removed += 1
            for name in dirnames:
                child = current / name
                # os.walk lists symlinked directories without descending into them
                if child.is_symlink():
                    child.unlink()
                else:
                    child.rmdir()
                removed += 1
        root.rmdir()
        removed += 1
    except OSError as exc:
        raise CleanupError(getattr(exc, "filename", None) or root, exc.strerror or str(exc)) from exc

    return removed


class LifecycleManager:
    """Stops instances and reclaims on-disk state between sessions."""

    def __init__(
        self,
        allocator: EndpointAllocator,
        data_root: Union[str, Path] = Path("target/test-logs"),
    ) -> None:
        self._allocator = allocator
        self._data_root = Path(data_root)

    @property
    def data_root(self) -> Path:
        return self._data_root

    async def stop_all(self, instances: Iterable[ClusterInstance]) -> List[ClusterInstance]:
        """
        Stop every instance concurrently and wait for all of them.

        Returns the instances whose stop failed; never raises for them.
        """
        targets = list(instances)
        if not targets:
            return []

        logger.info("lifecycle.stopping_all", count=len(targets))
        results = await asyncio.gather(
            *(instance.stop() for instance in targets),
            return_exceptions=True,
        )

        failed: List[ClusterInstance] = []
        for instance, result in zip(targets, results):
            if isinstance(result, BaseException):
                failed.append(instance)
                logger.warning(
                    "lifecycle.stop_failed",
                    node_id=instance.node_id,
                    error=repr(result),
                )

        logger.info(
            "lifecycle.stopped_all",
            count=len(targets),
            failed=[instance.node_id for instance in failed],
        )
        return failed

    async def purge_data(self, root: Optional[Union[str, Path]] = None) -> None:
        """
        Delete all persisted state under *root* (the data root by default)
        and reset the endpoint map.

        Raises:
            CleanupError: If the directory cannot be fully removed.
        """
        target = Path(root) if root is not None else self._data_root
        try:
            removed = await asyncio.to_thread(purge_directory, target)
        finally:
            self._allocator.reset()
        logger.info("lifecycle.purged", path=str(target), removed=removed)
