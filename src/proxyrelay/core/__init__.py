"""Core."""

from .config import ProxyConfig, clear_config, get_config
from .exceptions import (
    ConnectError,
    InvalidTransition,
    ParseError,
    PeerClosed,
    ProxyError,
    RequestError,
    ResolutionError,
    TargetFormatError,
    UnsupportedMethodError,
)
from .settings import SettingsStore

__all__ = [
    # Config
    "ProxyConfig",
    "SettingsStore",
    "clear_config",
    "get_config",
    # Errors
    "ProxyError",
    "RequestError",
    "ParseError",
    "UnsupportedMethodError",
    "TargetFormatError",
    "ResolutionError",
    "ConnectError",
    "PeerClosed",
    "InvalidTransition",
]
