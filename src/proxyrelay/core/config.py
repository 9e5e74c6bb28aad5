"""Runtime configuration with environment variable support.

All settings can be configured via environment variables with the PROXYRELAY_ prefix.
Example: PROXYRELAY_CONNECT_TIMEOUT=5 gives upstream connects five seconds.

The listen ``Address``/``Port`` pair is not configured here: it lives in the
persistent settings store (see ``proxyrelay.core.settings``).
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from proxyrelay import AGENT_NAME, __version__

ADDRESS_ANY = "any"
DEFAULT_PORT = 8888
DEFAULT_SETTINGS_FILE = "proxy-settings.yaml"


class ProxyConfig(BaseSettings):
    """Proxy runtime configuration.

    All settings can be overridden via environment variables:
    - PROXYRELAY_SETTINGS_FILE: Path of the Address/Port settings store
    - PROXYRELAY_CONNECT_TIMEOUT: Upstream connect timeout (seconds)
    - PROXYRELAY_FLOW_CONTROL_ENABLED: Pause reads while the peer is congested
    - PROXYRELAY_ADMIN_BIND: host:port for the health/stats/metrics endpoints
    - etc.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROXYRELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    settings_file: str = Field(
        default=DEFAULT_SETTINGS_FILE,
        description="YAML file holding the persisted Address and Port keys.",
    )
    agent_name: str = Field(
        default=AGENT_NAME,
        description="Name reported in the Proxy-agent header of CONNECT replies.",
    )
    agent_version: str = Field(
        default=__version__,
        description="Version reported in the Proxy-agent header of CONNECT replies.",
    )
    connect_timeout: float | None = Field(
        default=30.0,
        description="Upstream connect timeout (seconds). None or 0 waits for the OS.",
    )
    flow_control_enabled: bool = Field(
        default=False,
        description="Pause reading from a peer while the opposite socket's write buffer is full.",
    )
    admin_bind: str | None = Field(
        default=None,
        description="host:port for the admin plane (/health, /stats, /metrics). Unset disables it.",
    )
    log_level: str = Field(
        default="info",
        description="Log level (debug, info, warning, error).",
    )

    @field_validator("connect_timeout")
    @classmethod
    def _zero_means_no_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.lower()
        if value not in ("debug", "info", "warning", "error", "critical"):
            raise ValueError(f"Unknown log level: {value}")
        return value

    def to_display_dict(self) -> dict[str, Any]:
        """Export current configuration as a flat dictionary for display."""
        return {
            "settings_file": self.settings_file,
            "agent": f"{self.agent_name}/{self.agent_version}",
            "connect_timeout": self.connect_timeout,
            "flow_control_enabled": self.flow_control_enabled,
            "admin_bind": self.admin_bind,
            "log_level": self.log_level,
        }


def parse_bind(bind: str, default_host: str = "127.0.0.1") -> tuple[str, int]:
    """Parse a ``host:port`` bind string into host and port."""
    if ":" in bind:
        host, port = bind.rsplit(":", 1)
        return host.strip("[]") or default_host, int(port)
    return default_host, int(bind)


def listen_host(address: str) -> str | None:
    """Map a settings-store address onto an asyncio bind host.

    ``"any"`` (and an empty string) bind every interface.
    """
    if not address or address.lower() == ADDRESS_ANY:
        return None
    return address


_config: ProxyConfig | None = None


def get_config() -> ProxyConfig:
    """Get the global configuration instance.

    Returns a cached instance of ProxyConfig that reads from environment variables.
    To reload config (e.g., in tests), call clear_config() first.
    """
    global _config
    if _config is None:
        _config = ProxyConfig()
    return _config


def clear_config() -> None:
    """Clear the cached configuration.

    Call this to force reloading of environment variables on next get_config() call.
    """
    global _config
    _config = None
