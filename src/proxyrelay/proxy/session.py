"""Per-connection proxy session.

A session owns the client socket (downstream) and the destination socket
(upstream) and walks one way through its states::

    AWAITING_REQUEST -> RESOLVING -> CONNECTING -> TUNNELING | RELAYING -> TERMINATED

Every failure, from a bad request line to a peer hanging up mid-relay,
ends in ``terminate()``, which releases both sockets and tells the
registered listeners exactly once.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

import structlog

from proxyrelay.core.config import ProxyConfig
from proxyrelay.core.exceptions import (
    ConnectError,
    InvalidTransition,
    PeerClosed,
    ProxyError,
    ResolutionError,
)
from proxyrelay.observability.metrics import SESSION_FAILURES, SESSIONS_ESTABLISHED
from proxyrelay.proxy.connector import Connector, ResolvedAddress
from proxyrelay.proxy.pump import RelayEndpoint, RelayPump, Side
from proxyrelay.proxy.request import (
    Destination,
    Intent,
    classify,
    connect_established_reply,
)

logger = structlog.get_logger()

TerminationListener = Callable[[int], Any]


class SessionState(Enum):
    AWAITING_REQUEST = "awaiting_request"
    RESOLVING = "resolving"
    CONNECTING = "connecting"
    TUNNELING = "tunneling"
    RELAYING = "relaying"
    TERMINATED = "terminated"


# TUNNELING and RELAYING are alternatives, so they share a rank.
_RANK = {
    SessionState.AWAITING_REQUEST: 0,
    SessionState.RESOLVING: 1,
    SessionState.CONNECTING: 2,
    SessionState.TUNNELING: 3,
    SessionState.RELAYING: 3,
    SessionState.TERMINATED: 4,
}


class Session:
    """State machine for one accepted client connection."""

    def __init__(
        self,
        session_id: int,
        downstream: RelayEndpoint,
        config: ProxyConfig,
        connector: Connector | None = None,
    ) -> None:
        self.id = session_id
        self.config = config
        self.state = SessionState.AWAITING_REQUEST
        self.destination: Destination | None = None
        self.address: ResolvedAddress | None = None
        self.created_at = time.monotonic()
        self.downstream = downstream
        # Unconnected until resolution succeeds; the connector attaches a transport.
        self.upstream = RelayEndpoint(Side.UPSTREAM, on_connected=self._on_upstream_connected)
        self._connector = connector or Connector(config.connect_timeout)
        self._pump: RelayPump | None = None
        self._task: asyncio.Task[None] | None = None
        # Client bytes read while the upstream is being opened.
        self._pending = bytearray()
        self._listeners: list[TerminationListener] = []
        self._log = logger.bind(session=session_id, peer=downstream.peername)

        self.downstream.subscribe(on_data=self._on_request_data, on_closed=self._on_peer_closed)
        self.upstream.subscribe(on_closed=self._on_peer_closed)

    @property
    def alive(self) -> bool:
        return self.state is not SessionState.TERMINATED

    @property
    def intent(self) -> Intent | None:
        return self.destination.intent if self.destination else None

    @property
    def established(self) -> bool:
        return self.state in (SessionState.TUNNELING, SessionState.RELAYING)

    def add_termination_listener(self, listener: TerminationListener) -> None:
        self._listeners.append(listener)

    def detach(self) -> None:
        """Drop every event subscription and listener. Safe to call repeatedly."""
        self.downstream.unsubscribe()
        self.upstream.unsubscribe()
        self._listeners.clear()

    def _advance(self, state: SessionState) -> None:
        if _RANK[state] <= _RANK[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {state.value}")
        self._log.debug("Session state", state=state.value, previous=self.state.value)
        self.state = state

    # AWAITING_REQUEST

    def _on_request_data(self, data: bytes) -> None:
        if self.state is not SessionState.AWAITING_REQUEST:
            self._pending += data
            return

        try:
            destination = classify(data)
        except ProxyError as e:
            self._log.warning("Rejected request", reason=e.reason, error=e.message)
            self.terminate(e)
            return

        self.destination = destination
        self._log = self._log.bind(target=destination.address, intent=destination.intent.value)
        self._advance(SessionState.RESOLVING)
        self._task = asyncio.get_running_loop().create_task(self._open_upstream(destination))

    # RESOLVING / CONNECTING

    async def _open_upstream(self, destination: Destination) -> None:
        try:
            address = await self._connector.resolve(destination.host, destination.port)
            if not self.alive:
                return

            self.address = address
            self._advance(SessionState.CONNECTING)
            await self._connector.connect(self.upstream, address)
        except ProxyError as e:
            if self.alive:
                self._log.warning("Upstream unavailable", reason=e.reason, error=e.message)
                self.terminate(e)
            return
        except Exception as e:
            if self.alive:
                self._log.exception("Unexpected upstream failure", state=self.state.value)
                if self.state is SessionState.RESOLVING:
                    self.terminate(ResolutionError(destination.host, str(e)))
                else:
                    self.terminate(ConnectError(destination.address, str(e)))
            return

        if not self.alive:
            # Connected after termination; the endpoint is already detached.
            self.upstream.close()

    def _on_upstream_connected(self, endpoint: RelayEndpoint) -> None:
        if not self.alive or self.destination is None:
            endpoint.close()
            return

        destination = self.destination
        if destination.intent is Intent.TUNNEL:
            self.downstream.write(
                connect_established_reply(
                    destination.version,
                    self.config.agent_name,
                    self.config.agent_version,
                )
            )
            self._advance(SessionState.TUNNELING)
        else:
            # The consumed request head is not replayed upstream.
            self._advance(SessionState.RELAYING)

        self._pump = RelayPump(
            self.downstream,
            self.upstream,
            flow_control=self.config.flow_control_enabled,
        )
        pending, self._pending = bytes(self._pending), bytearray()
        self._pump.start(pending)
        SESSIONS_ESTABLISHED.labels(intent=destination.intent.value).inc()
        self._log.info("Relay established", upstream=str(self.address), state=self.state.value)

    # TUNNELING / RELAYING

    def _on_peer_closed(self, endpoint: RelayEndpoint, exc: Exception | None) -> None:
        if exc is not None:
            self._log.warning(f"{endpoint.side.value.capitalize()} error", error=str(exc))
            self.terminate(PeerClosed(str(exc)))
        elif not self.established:
            self.terminate(PeerClosed(f"{endpoint.side.value} closed before relay"))
        else:
            self.terminate()

    # TERMINATED

    def terminate(self, error: ProxyError | None = None) -> None:
        """Release both sockets and notify listeners. Later calls are no-ops."""
        if not self.alive:
            return

        previous = self.state
        self._advance(SessionState.TERMINATED)
        self.downstream.unsubscribe()
        self.upstream.unsubscribe()

        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        self.downstream.close()
        self.upstream.close()
        self._pending.clear()

        if error is not None:
            SESSION_FAILURES.labels(reason=error.reason).inc()
        self._log.info(
            "Session terminated",
            previous=previous.value,
            reason=error.reason if error else "closed",
            bytes_up=self.bytes_upstream,
            bytes_down=self.bytes_downstream,
        )

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(self.id)

    @property
    def bytes_upstream(self) -> int:
        return self._pump.bytes_upstream if self._pump else 0

    @property
    def bytes_downstream(self) -> int:
        return self._pump.bytes_downstream if self._pump else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state.value,
            "intent": self.intent.value if self.intent else None,
            "target": self.destination.address if self.destination else None,
            "upstream": str(self.address) if self.address else None,
            "age_seconds": round(time.monotonic() - self.created_at, 3),
            "bytes_upstream": self.bytes_upstream,
            "bytes_downstream": self.bytes_downstream,
        }
