"""Error taxonomy for proxy sessions.

Every failure a session can hit maps onto one of these types. They never
leave the session: the session logs them, counts them by ``reason`` and
terminates. The acceptor only ever sees the session id.
"""

from __future__ import annotations


class ProxyError(Exception):
    """Base class for all proxyrelay errors."""

    reason = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.reason)
        self.message = message or self.reason


class RequestError(ProxyError):
    """The first inbound chunk could not be turned into a destination."""

    reason = "bad_request"


class ParseError(RequestError):
    """Request line or header block is malformed or incomplete."""

    reason = "parse_error"


class UnsupportedMethodError(RequestError):
    """Method is not one of CONNECT, GET, PUT, POST, HEAD, DELETE."""

    reason = "unsupported_method"

    def __init__(self, method: str) -> None:
        super().__init__(f"Unsupported method: {method}")
        self.method = method


class TargetFormatError(RequestError):
    """Request target is not a bare ``host:port`` pair."""

    reason = "bad_target"

    def __init__(self, target: str) -> None:
        super().__init__(f"Invalid target: {target!r}")
        self.target = target


class ResolutionError(ProxyError):
    """Host lookup failed or returned no addresses."""

    reason = "resolution_failed"

    def __init__(self, host: str, detail: str | None = None) -> None:
        message = f"Host lookup failed for {host}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.host = host


class ConnectError(ProxyError):
    """The single upstream connect attempt failed or timed out."""

    reason = "connect_failed"

    def __init__(self, address: str, detail: str | None = None) -> None:
        message = f"Connect to {address} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.address = address


class PeerClosed(ProxyError):
    """Either socket disconnected or errored."""

    reason = "peer_closed"


class InvalidTransition(ProxyError, RuntimeError):
    """A session tried to move to a state it has already passed."""

    reason = "invalid_transition"


__all__ = [
    "ConnectError",
    "InvalidTransition",
    "ParseError",
    "PeerClosed",
    "ProxyError",
    "RequestError",
    "ResolutionError",
    "TargetFormatError",
    "UnsupportedMethodError",
]
