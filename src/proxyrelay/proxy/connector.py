"""Host resolution and the single upstream connect attempt."""

from __future__ import annotations

import asyncio
import socket
from dataclasses import dataclass
from typing import Any

import structlog

from proxyrelay.core.exceptions import ConnectError, ResolutionError
from proxyrelay.proxy.pump import RelayEndpoint

logger = structlog.get_logger()


@dataclass(frozen=True)
class ResolvedAddress:
    family: int
    host: str
    port: int

    def __str__(self) -> str:
        if self.family == socket.AF_INET6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


class Connector:
    """Resolves a host and connects an endpoint to its first address.

    There is exactly one attempt per call: no fallback to later addresses,
    no retry, no backoff.
    """

    def __init__(self, connect_timeout: float | None = None) -> None:
        self.connect_timeout = connect_timeout

    async def resolve(self, host: str, port: int) -> ResolvedAddress:
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        except (socket.gaierror, UnicodeError) as e:
            raise ResolutionError(host, str(e)) from e

        if not infos:
            raise ResolutionError(host, "no addresses")

        family, _, _, _, sockaddr = infos[0]
        logger.debug("Host resolved", host=host, address=sockaddr[0], candidates=len(infos))
        return ResolvedAddress(family=family, host=sockaddr[0], port=sockaddr[1])

    async def connect(self, endpoint: RelayEndpoint, address: ResolvedAddress) -> Any:
        """Open a TCP connection to ``address`` with ``endpoint`` as its protocol."""
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await asyncio.wait_for(
                loop.create_connection(
                    lambda: endpoint,
                    address.host,
                    address.port,
                    family=address.family,
                ),
                timeout=self.connect_timeout,
            )
        except TimeoutError as e:
            raise ConnectError(str(address), "timed out") from e
        except OSError as e:
            raise ConnectError(str(address), e.strerror or str(e)) from e
        return transport
