"""
Cluster Harness Endpoint Allocator

Maps logical node ids to network endpoints.  The first resolution of an id
asks the OS for a free ephemeral port; every later resolution returns the
same endpoint, so all nodes of a cluster agree on where their peers listen.
"""

from __future__ import annotations

import socket
import threading
from typing import Dict, Iterable, List, Optional

import structlog

from clusterharness.errors import AllocationError, ConfigurationError
from clusterharness.types import Endpoint, NodeId

logger = structlog.get_logger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_BASE_PORT = 5000


class EndpointAllocator:
    """
    Session-scoped node id to endpoint map.

    Resolution is an atomic insert-if-absent: concurrent first-time calls for
    the same id, from threads or tasks, probe exactly one port.

    When the OS probe fails the allocator falls back to ``base_port + node_id``.
    That keeps startup alive but can collide with other sessions running on
    the same host, so the fallback is logged as a degraded-mode event.

    Usage::

        allocator = EndpointAllocator()
        endpoint = allocator.resolve(1)
        assert allocator.resolve(1) is endpoint
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        base_port: int = DEFAULT_BASE_PORT,
    ) -> None:
        self._host = host
        self._base_port = base_port
        self._endpoints: Dict[NodeId, Endpoint] = {}
        self._lock = threading.Lock()
        self._fallbacks = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def host(self) -> str:
        return self._host

    @property
    def base_port(self) -> int:
        return self._base_port

    @property
    def fallback_count(self) -> int:
        """Number of endpoints that were assigned the deterministic fallback port."""
        return self._fallbacks

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, node_id: NodeId) -> Endpoint:
        """Return the endpoint of *node_id*, allocating one on first use."""
        if isinstance(node_id, bool) or not isinstance(node_id, int) or node_id < 1:
            raise ConfigurationError(f"Node id must be a positive integer, got {node_id!r}")

        with self._lock:
            endpoint = self._endpoints.get(node_id)
            if endpoint is not None:
                return endpoint

            try:
                port = self._probe_port(node_id)
            except AllocationError as exc:
                port = self._base_port + node_id
                self._fallbacks += 1
                logger.warning(
                    "endpoint_allocator.probe_failed",
                    node_id=node_id,
                    reason=exc.reason,
                    fallback_port=port,
                    degraded=True,
                )

            endpoint = Endpoint(self._host, port)
            self._endpoints[node_id] = endpoint

        logger.debug(
            "endpoint_allocator.allocated",
            node_id=node_id,
            address=endpoint.address,
        )
        return endpoint

    def resolve_many(self, node_ids: Iterable[NodeId]) -> List[Endpoint]:
        """Resolve several ids, preserving order."""
        return [self.resolve(node_id) for node_id in node_ids]

    def get(self, node_id: NodeId) -> Optional[Endpoint]:
        """Return an already allocated endpoint without allocating."""
        with self._lock:
            return self._endpoints.get(node_id)

    def snapshot(self) -> Dict[NodeId, Endpoint]:
        """Copy of the current map."""
        with self._lock:
            return dict(self._endpoints)

    def reset(self) -> None:
        """Forget every allocation so the next session probes fresh ports."""
        with self._lock:
            cleared = len(self._endpoints)
            self._endpoints.clear()
            self._fallbacks = 0
        logger.debug("endpoint_allocator.reset", cleared=cleared)

    def __contains__(self, node_id: object) -> bool:
        with self._lock:
            return node_id in self._endpoints

    def __len__(self) -> int:
        with self._lock:
            return len(self._endpoints)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _probe_port(self, node_id: NodeId) -> int:
        """Bind to port 0, read back the assigned port and release it."""
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind((self._host, 0))
                return sock.getsockname()[1]
        except OSError as exc:
            raise AllocationError(node_id, str(exc)) from exc
