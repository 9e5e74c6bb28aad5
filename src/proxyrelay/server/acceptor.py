"""Connection acceptor and session registry."""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import structlog

from proxyrelay.core.config import ADDRESS_ANY, DEFAULT_PORT, ProxyConfig, listen_host
from proxyrelay.observability.metrics import ACCEPT_FAILURES, ACTIVE_SESSIONS, SESSIONS
from proxyrelay.proxy.connector import Connector
from proxyrelay.proxy.pump import RelayEndpoint, Side
from proxyrelay.proxy.session import Session, SessionState
from proxyrelay.server.admin import AdminServer

logger = structlog.get_logger()


class ProxyServer:
    """Accepts client connections and tracks one Session per connection.

    The registry is only touched from the event loop thread: sessions are
    inserted in ``accept()`` and removed in ``on_terminate()``.
    """

    def __init__(
        self,
        config: ProxyConfig,
        address: str = ADDRESS_ANY,
        port: int = DEFAULT_PORT,
        connector: Connector | None = None,
    ) -> None:
        self.config = config
        self.address = address
        self.port = port
        self._connector = connector or Connector(config.connect_timeout)
        self._sessions: dict[int, Session] = {}
        self._ids = itertools.count(1)
        self._server: asyncio.Server | None = None
        self._admin: AdminServer | None = None

    async def start(self) -> None:
        """Bind the listener. Raises OSError if the address cannot be bound."""
        loop = asyncio.get_running_loop()
        self._server = await loop.create_server(
            self._create_protocol,
            listen_host(self.address),
            self.port,
        )
        logger.info("Start listening on", address=self.address, port=self.bound_port)

        if self.config.admin_bind:
            self._admin = AdminServer(self, self.config.admin_bind)
            await self._admin.start()

    async def stop(self) -> None:
        logger.info("Stopping proxy server...")
        if self._admin is not None:
            await self._admin.stop()
            self._admin = None

        if self._server is not None:
            self._server.close()

        for session in list(self._sessions.values()):
            session.terminate()

        if self._server is not None:
            await self._server.wait_closed()
            self._server = None
        logger.info("Proxy server stopped")

    @property
    def bound_port(self) -> int:
        """Actual listening port (differs from ``port`` when binding port 0)."""
        if self._server is None or not self._server.sockets:
            return self.port
        return self._server.sockets[0].getsockname()[1]

    def _create_protocol(self) -> RelayEndpoint:
        return RelayEndpoint(Side.DOWNSTREAM, on_connected=self.accept)

    def accept(self, endpoint: RelayEndpoint) -> Session | None:
        """Adopt a freshly accepted connection into a new Session."""
        try:
            endpoint.configure()
        except OSError as e:
            ACCEPT_FAILURES.inc()
            logger.warning("Failed to adopt connection", peer=endpoint.peername, error=str(e))
            endpoint.close()
            return None

        session_id = next(self._ids)
        session = Session(session_id, endpoint, self.config, self._connector)
        session.add_termination_listener(self.on_terminate)
        self._sessions[session_id] = session

        SESSIONS.inc()
        ACTIVE_SESSIONS.set(len(self._sessions))
        logger.info("Active connections", count=len(self._sessions), session=session_id)
        return session

    def on_terminate(self, session_id: int) -> None:
        """Forget a terminated session. Unknown or repeated ids are ignored."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return

        session.detach()
        ACTIVE_SESSIONS.set(len(self._sessions))
        logger.info("Active connections", count=len(self._sessions))

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def get_stats(self) -> dict[str, Any]:
        by_state = {state.value: 0 for state in SessionState if state is not SessionState.TERMINATED}
        for session in self._sessions.values():
            by_state[session.state.value] = by_state.get(session.state.value, 0) + 1
        return {
            "address": self.address,
            "port": self.bound_port,
            "active_sessions": len(self._sessions),
            "sessions_by_state": by_state,
            "sessions": [session.to_dict() for session in self._sessions.values()],
        }
