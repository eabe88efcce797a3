"""
Local Cluster Instance

In-process stand-in for a coordination runtime member.  It implements the
instance contract without any replication: starting binds the node's single
endpoint with a small ``aiohttp`` status server and materialises the
directories of its durable partition groups; stopping releases the socket.

Routes:
- ``GET /health``  -- node id, state and address
- ``GET /cluster`` -- full instance description (bootstrap set, groups)
"""

from __future__ import annotations

import asyncio
import socket
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from aiohttp import web

from clusterharness.instance.base import ClusterInstance
from clusterharness.types import ClusterTopology

logger = structlog.get_logger(__name__)


class LocalClusterInstance(ClusterInstance):
    """Cluster member served from the current event loop."""

    def __init__(self, cluster_name: str, topology: ClusterTopology) -> None:
        super().__init__(cluster_name, topology)
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.SockSite] = None
        self._started_at: Optional[datetime] = None

    @property
    def started_at(self) -> Optional[datetime]:
        return self._started_at

    async def _do_start(self) -> None:
        await asyncio.to_thread(self._prepare_storage)

        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/cluster", self._handle_cluster)

        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        sock: Optional[socket.socket] = None
        try:
            sock = self._bind()
            site = web.SockSite(runner, sock)
            await site.start()
        except Exception:
            if sock is not None:
                sock.close()
            await runner.cleanup()
            raise

        self._runner = runner
        self._site = site
        self._started_at = datetime.now()
        logger.debug(
            "local_instance.listening",
            node_id=self.node_id,
            address=self.endpoint.address,
        )

    async def _do_stop(self) -> None:
        runner, self._runner, self._site = self._runner, None, None
        if runner is not None:
            await runner.cleanup()
        logger.debug("local_instance.closed", node_id=self.node_id)

    def _bind(self) -> socket.socket:
        """Bind the node endpoint over IPv4, the same way ports are probed."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.endpoint.host, self.endpoint.port))
        except OSError:
            sock.close()
            raise
        return sock

    def _prepare_storage(self) -> None:
        for group in self.partition_groups:
            if group.is_durable and group.data_directory is not None:
                group.data_directory.mkdir(parents=True, exist_ok=True)

    # -- Handlers ------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(self._health())

    async def _handle_cluster(self, request: web.Request) -> web.Response:
        return web.json_response(self.to_dict())

    def _health(self) -> Dict[str, Any]:
        return {
            "cluster_name": self.cluster_name,
            "node_id": self.node_id,
            "role": self.node.role.value,
            "state": self.state.value,
            "address": self.endpoint.address,
            "started_at": self._started_at.isoformat() if self._started_at else None,
        }
