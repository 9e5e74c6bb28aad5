"""Admin plane: health, registry stats and Prometheus metrics over HTTP."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from aiohttp import web

from proxyrelay.core.config import parse_bind
from proxyrelay.observability.metrics import ACTIVE_SESSIONS, generate_metrics, get_content_type

if TYPE_CHECKING:
    from proxyrelay.server.acceptor import ProxyServer

logger = structlog.get_logger()


class AdminServer:
    def __init__(self, proxy: ProxyServer, bind: str) -> None:
        self.proxy = proxy
        self.host, self.port = parse_bind(bind)
        self._runner: web.AppRunner | None = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._handle_health_check)
        app.router.add_get("/stats", self._handle_stats)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Admin plane started", host=self.host, port=self.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    async def _handle_health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint. Status only."""
        return web.json_response({"status": "healthy"})

    async def _handle_stats(self, request: web.Request) -> web.Response:
        return web.json_response(self.proxy.get_stats())

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        ACTIVE_SESSIONS.set(self.proxy.session_count)
        return web.Response(
            body=generate_metrics(),
            headers={"Content-Type": get_content_type()},
        )
