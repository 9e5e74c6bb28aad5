"""Persistent key/value settings store.

Holds the handful of deployment keys (``Address``, ``Port``) that operators
edit by hand. Reads are read-or-default: a key missing from the file is
written back with its default so the file documents every key in use.

Storage file format (proxy-settings.yaml):
    Address: any
    Port: 8888
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml

from proxyrelay.core.config import ADDRESS_ANY, DEFAULT_PORT

logger = structlog.get_logger()

ADDRESS_KEY = "Address"
PORT_KEY = "Port"


class SettingsStore:
    """YAML file-backed settings with write-back of missing defaults."""

    def __init__(self, storage_path: str | Path) -> None:
        self.storage_path = Path(storage_path)
        self._cache: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._cache is not None:
            return self._cache

        if not self.storage_path.exists():
            self._cache = {}
            return self._cache

        try:
            content = self.storage_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise ValueError(f"Settings file encoding error in {self.storage_path}: {e}") from e

        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {self.storage_path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Settings file {self.storage_path} must contain a mapping")

        self._cache = data
        return self._cache

    def _save(self, data: dict[str, Any]) -> None:
        if self.storage_path.parent != Path("."):
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        self.storage_path.write_text(
            yaml.safe_dump(data, default_flow_style=False, sort_keys=False),
            encoding="utf-8",
        )
        self._cache = data

    def read(self, key: str, default: Any) -> Any:
        """Return the stored value for ``key``.

        If the key is absent, ``default`` is persisted under it and returned.
        """
        data = self._load()
        if key in data:
            return data[key]

        updated = dict(data)
        updated[key] = default
        self._save(updated)
        logger.debug("Persisted default setting", key=key, value=default, path=str(self.storage_path))
        return default

    def read_listen_address(self) -> tuple[str, int]:
        """Read the ``Address``/``Port`` pair, persisting defaults for missing keys."""
        address = str(self.read(ADDRESS_KEY, ADDRESS_ANY))
        port = self.read(PORT_KEY, DEFAULT_PORT)
        try:
            port = int(port)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid {PORT_KEY} in {self.storage_path}: {port!r}") from e
        return address, port
