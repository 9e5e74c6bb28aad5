"""Socket endpoints and the byte pump that joins them."""

from __future__ import annotations

import asyncio
import socket
from collections.abc import Callable
from enum import Enum
from typing import Any

from proxyrelay.observability.metrics import BYTES_TRANSFERRED

DataHandler = Callable[[bytes], None]
CloseHandler = Callable[["RelayEndpoint", Exception | None], None]


class Side(Enum):
    DOWNSTREAM = "downstream"
    UPSTREAM = "upstream"


class RelayEndpoint(asyncio.Protocol):
    """asyncio protocol for one socket of a session.

    Transport events are forwarded to whatever handlers are currently
    subscribed. ``unsubscribe()`` drops them all, after which the endpoint
    swallows every late event.
    """

    def __init__(
        self,
        side: Side,
        on_connected: Callable[[RelayEndpoint], Any] | None = None,
    ) -> None:
        self.side = side
        self.transport: asyncio.Transport | None = None
        self.closed = False
        self._on_connected = on_connected
        self._data_handler: DataHandler | None = None
        self._close_handler: CloseHandler | None = None
        self._pause_handler: Callable[[], None] | None = None
        self._resume_handler: Callable[[], None] | None = None

    def subscribe(
        self,
        *,
        on_data: DataHandler | None = None,
        on_closed: CloseHandler | None = None,
    ) -> None:
        if on_data is not None:
            self._data_handler = on_data
        if on_closed is not None:
            self._close_handler = on_closed

    def subscribe_flow(self, on_pause: Callable[[], None], on_resume: Callable[[], None]) -> None:
        self._pause_handler = on_pause
        self._resume_handler = on_resume

    def unsubscribe(self) -> None:
        self._on_connected = None
        self._data_handler = None
        self._close_handler = None
        self._pause_handler = None
        self._resume_handler = None

    @property
    def subscribed(self) -> bool:
        return self._data_handler is not None or self._close_handler is not None

    # asyncio.Protocol

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]
        if self._on_connected is not None:
            self._on_connected(self)

    def data_received(self, data: bytes) -> None:
        if self._data_handler is not None:
            self._data_handler(data)

    def connection_lost(self, exc: Exception | None) -> None:
        self.closed = True
        if self._close_handler is not None:
            self._close_handler(self, exc)

    def pause_writing(self) -> None:
        if self._pause_handler is not None:
            self._pause_handler()

    def resume_writing(self) -> None:
        if self._resume_handler is not None:
            self._resume_handler()

    # Transport helpers

    @property
    def connected(self) -> bool:
        return self.transport is not None and not self.closed

    @property
    def peername(self) -> str | None:
        if self.transport is None:
            return None
        peer = self.transport.get_extra_info("peername")
        if not peer:
            return None
        return f"{peer[0]}:{peer[1]}"

    def configure(self) -> None:
        """Apply socket options. Raises OSError if the socket is unusable."""
        if self.transport is None:
            raise OSError("Endpoint has no transport")
        sock = self.transport.get_extra_info("socket")
        if sock is None:
            raise OSError("Transport exposes no socket")
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

    def write(self, data: bytes) -> None:
        if self.transport is not None and not self.transport.is_closing():
            self.transport.write(data)

    def pause_reading(self) -> None:
        if self.transport is not None and not self.transport.is_closing():
            self.transport.pause_reading()

    def resume_reading(self) -> None:
        if self.transport is not None and not self.transport.is_closing():
            self.transport.resume_reading()

    def close(self) -> None:
        """Close the socket after pending writes drain. Safe to call repeatedly."""
        if self.transport is not None and not self.transport.is_closing():
            self.transport.close()


class RelayPump:
    """Copies bytes verbatim between two connected endpoints.

    Every read is written to the opposite side immediately, in arrival
    order. With ``flow_control`` the pump pauses reading from a side while
    the opposite transport reports a full write buffer; without it writes
    are never held back.
    """

    def __init__(
        self,
        downstream: RelayEndpoint,
        upstream: RelayEndpoint,
        *,
        flow_control: bool = False,
    ) -> None:
        self.downstream = downstream
        self.upstream = upstream
        self.flow_control = flow_control
        self.bytes_upstream = 0
        self.bytes_downstream = 0

    def start(self, pending: bytes = b"") -> None:
        """Subscribe both sides. ``pending`` client bytes go upstream first."""
        self.downstream.subscribe(on_data=self._to_upstream)
        self.upstream.subscribe(on_data=self._to_downstream)
        if self.flow_control:
            self.upstream.subscribe_flow(self.downstream.pause_reading, self.downstream.resume_reading)
            self.downstream.subscribe_flow(self.upstream.pause_reading, self.upstream.resume_reading)
        if pending:
            self._to_upstream(pending)

    def _to_upstream(self, data: bytes) -> None:
        self.upstream.write(data)
        self.bytes_upstream += len(data)
        BYTES_TRANSFERRED.labels(direction="upstream").inc(len(data))

    def _to_downstream(self, data: bytes) -> None:
        self.downstream.write(data)
        self.bytes_downstream += len(data)
        BYTES_TRANSFERRED.labels(direction="downstream").inc(len(data))
