"""Proxy session machinery."""

from .connector import Connector, ResolvedAddress
from .pump import RelayEndpoint, RelayPump, Side
from .request import (
    SUPPORTED_METHODS,
    Destination,
    Intent,
    ParsedRequest,
    classify,
    connect_established_reply,
    parse_request,
    parse_target,
)
from .session import Session, SessionState

__all__ = [
    # Classifier
    "SUPPORTED_METHODS",
    "Destination",
    "Intent",
    "ParsedRequest",
    "classify",
    "connect_established_reply",
    "parse_request",
    "parse_target",
    # Resolver/Connector
    "Connector",
    "ResolvedAddress",
    # Relay
    "RelayEndpoint",
    "RelayPump",
    "Side",
    # Session
    "Session",
    "SessionState",
]
