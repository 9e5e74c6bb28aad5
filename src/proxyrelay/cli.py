"""proxyrelay CLI - Command line interface."""

from __future__ import annotations

import asyncio
import logging
import sys

import click
import structlog
from pydantic import ValidationError
from rich.console import Console

from proxyrelay.core.config import ProxyConfig, get_config
from proxyrelay.core.settings import SettingsStore
from proxyrelay.server.acceptor import ProxyServer

console = Console()

BANNER = """
┌─┐┬─┐┌─┐─┐ ┬┬ ┬┬─┐┌─┐┬  ┌─┐┬ ┬
├─┘├┬┘│ │┌┴┬┘└┬┘├┬┘├┤ │  ├─┤└┬┘
┴  ┴└─└─┘┴ └─ ┴ ┴└─└─┘┴─┘┴ ┴ ┴
   Forward proxy relay for CONNECT tunnels
"""


def configure_logging(level: str) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
    )


async def run_server(config: ProxyConfig, address: str, port: int) -> None:
    """Run the proxy until cancelled."""
    server = ProxyServer(config, address, port)

    try:
        await server.start()
        console.print(f"Listening on {address}:{server.bound_port}, press Ctrl+C to stop", style="green")
        if config.admin_bind:
            console.print(f"Admin: http://{config.admin_bind}/stats", style="dim")

        await asyncio.Event().wait()
    finally:
        await server.stop()


def bootstrap(
    config: ProxyConfig | None = None,
    address: str | None = None,
    port: int | None = None,
) -> None:
    """Read settings, configure logging and serve until interrupted.

    Used by the console script and by hosts that start the proxy in-process.
    ``address``/``port`` override the settings store for this run only.

    Raises:
        ValueError: if the settings file is unreadable.
        OSError: if the listen address cannot be bound.
    """
    config = config or get_config()
    configure_logging(config.log_level)

    store = SettingsStore(config.settings_file)
    stored_address, stored_port = store.read_listen_address()
    address = address or stored_address
    port = stored_port if port is None else port

    try:
        asyncio.run(run_server(config, address, port))
    except KeyboardInterrupt:
        console.print("\nShutting down...", style="yellow")


@click.group(invoke_without_command=True)
@click.option(
    "--settings",
    "settings_file",
    envvar="PROXYRELAY_SETTINGS_FILE",
    help="Settings file holding Address and Port (default: proxy-settings.yaml)",
)
@click.option("--address", "-a", help="Bind address for this run (not persisted)")
@click.option("--port", "-p", type=int, help="Listen port for this run (not persisted)")
@click.option(
    "--connect-timeout",
    type=float,
    help="Upstream connect timeout in seconds (0 to wait for the OS). Default: 30s",
)
@click.option(
    "--flow-control/--no-flow-control",
    default=None,
    help="Pause reads while the opposite socket is congested",
)
@click.option("--admin-bind", help="host:port for /health, /stats and /metrics")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    help="Log level (default: info)",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output (same as --log-level debug)")
@click.pass_context
def main(
    ctx: click.Context,
    settings_file: str | None,
    address: str | None,
    port: int | None,
    connect_timeout: float | None,
    flow_control: bool | None,
    admin_bind: str | None,
    log_level: str | None,
    verbose: bool,
):
    """proxyrelay - forward proxy relay.

    Accepts HTTP proxy clients, opens CONNECT tunnels and relays raw bytes.

    Examples:

        proxyrelay

        proxyrelay --port 3128 --admin-bind 127.0.0.1:9888
    """
    if ctx.invoked_subcommand is not None:
        return

    overrides = {
        "settings_file": settings_file,
        "connect_timeout": connect_timeout,
        "flow_control_enabled": flow_control,
        "admin_bind": admin_bind,
        "log_level": "debug" if verbose else log_level,
    }
    try:
        config = ProxyConfig(**{key: value for key, value in overrides.items() if value is not None})
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        sys.exit(2)

    console.print(BANNER, style="cyan")
    for key, value in config.to_display_dict().items():
        console.print(f"{key}: {value}", style="dim")

    try:
        bootstrap(config, address, port)
    except (ValueError, OSError) as e:
        console.print(f"[red]Failed to start proxy:[/red] {e}")
        sys.exit(1)


@main.command()
def version():
    """Show version information."""
    from proxyrelay import __version__

    console.print(BANNER, style="cyan")
    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


if __name__ == "__main__":
    main()
