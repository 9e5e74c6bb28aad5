"""Request classification for the first chunk a client sends.

The proxy only looks at one request per connection: the request line and
header block that arrive in the first read. From it we take the method,
the target and the protocol version, then decide where to connect and
whether the client expects a CONNECT handshake.

Targets must be bare authorities::

    CONNECT example.com:443 HTTP/1.1    -> tunnel to example.com:443
    GET example.com:80 HTTP/1.1         -> passthrough to example.com:80
    GET http://example.com/ HTTP/1.1    -> rejected (scheme/path present)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from proxyrelay.core.exceptions import ParseError, TargetFormatError, UnsupportedMethodError

CONNECT = "CONNECT"
SUPPORTED_METHODS = frozenset({CONNECT, "GET", "PUT", "POST", "HEAD", "DELETE"})

_HEADER_END = b"\r\n\r\n"
_REQUEST_LINE = re.compile(r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+) (\S+) HTTP/(\d)\.(\d)$")
_HEADER_LINE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+:")
# Anchored host:port, digits-only port. Brackets only around IPv6 literals.
_TARGET = re.compile(r"^(\[[0-9A-Fa-f:.]+\]|[^\s/?#@\[\]:]+):(\d+)$")


class Intent(Enum):
    """What the client expects once the upstream connection is open."""

    TUNNEL = "tunnel"
    PASSTHROUGH = "passthrough"


@dataclass
class ParsedRequest:
    method: str
    target: str
    version: tuple[int, int]


@dataclass(frozen=True)
class Destination:
    """Where a session connects and how it behaves afterwards."""

    host: str
    port: int
    intent: Intent
    version: tuple[int, int] = (1, 1)

    @property
    def address(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def parse_request(data: bytes) -> ParsedRequest:
    """Tokenize a complete request line plus header block.

    Raises:
        ParseError: if the header block is unterminated, the request line is
            malformed or a header line has no name.
    """
    head, sep, _ = data.partition(_HEADER_END)
    if not sep:
        raise ParseError("Incomplete request header block")

    text = head.decode("iso-8859-1")
    request_line, *header_lines = text.split("\r\n")
    match = _REQUEST_LINE.match(request_line)
    if match is None:
        raise ParseError(f"Malformed request line: {request_line[:80]!r}")

    method, target, major, minor = match.groups()
    # Header lines are validated only.
    for line in header_lines:
        if _HEADER_LINE.match(line) is None:
            raise ParseError(f"Malformed header line: {line[:80]!r}")

    return ParsedRequest(
        method=method,
        target=target,
        version=(int(major), int(minor)),
    )


def parse_target(target: str) -> tuple[str, int]:
    """Split a bare ``host:port`` target.

    Anything with a scheme, path or query fails, as does a port outside
    1-65535.
    """
    match = _TARGET.match(target)
    if match is None:
        raise TargetFormatError(target)

    host, port_str = match.groups()
    port = int(port_str)
    if not 0 < port < 65536:
        raise TargetFormatError(target)
    if host.startswith("["):
        host = host[1:-1]
    return host, port


def classify(data: bytes) -> Destination:
    """Turn the first inbound chunk into a destination.

    Raises:
        ParseError: the chunk is not a complete HTTP request head.
        UnsupportedMethodError: method outside SUPPORTED_METHODS.
        TargetFormatError: target is not ``host:port``.
    """
    request = parse_request(data)
    if request.method not in SUPPORTED_METHODS:
        raise UnsupportedMethodError(request.method)

    host, port = parse_target(request.target)
    intent = Intent.TUNNEL if request.method == CONNECT else Intent.PASSTHROUGH
    return Destination(host=host, port=port, intent=intent, version=request.version)


def connect_established_reply(
    version: tuple[int, int], agent_name: str, agent_version: str
) -> bytes:
    """Build the synthetic reply sent once a CONNECT tunnel is open."""
    major, minor = version
    return (
        f"HTTP/{major}.{minor} 200 Connection established\r\n"
        f"Proxy-agent: {agent_name}/{agent_version}\r\n\r\n"
    ).encode("latin-1")
