"""proxyrelay - forward proxy relay for CONNECT tunnels and raw passthrough."""

from __future__ import annotations

__version__ = "1.0.0"

AGENT_NAME = "proxyrelay"


def start() -> None:
    """Blocking entry point for hosts that load proxyrelay as a library.

    Reads the settings store and environment exactly like the ``proxyrelay``
    console script, then serves until the process is interrupted.
    """
    from proxyrelay.cli import bootstrap

    bootstrap()


__all__ = ["AGENT_NAME", "__version__", "start"]
