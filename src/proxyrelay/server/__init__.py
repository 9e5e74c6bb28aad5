"""Server."""

from .acceptor import ProxyServer
from .admin import AdminServer

__all__ = ["AdminServer", "ProxyServer"]
