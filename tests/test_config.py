"""Tests for configuration loading and the persistent settings store."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
import yaml
from pydantic import ValidationError

from proxyrelay import AGENT_NAME, __version__
from proxyrelay.core.config import (
    ProxyConfig,
    clear_config,
    get_config,
    listen_host,
    parse_bind,
)
from proxyrelay.core.settings import ADDRESS_KEY, PORT_KEY, SettingsStore


class TestProxyConfig:
    """Test ProxyConfig settings."""

    def test_default_values(self) -> None:
        """Test default values."""
        config = ProxyConfig()
        assert config.settings_file == "proxy-settings.yaml"
        assert config.agent_name == AGENT_NAME
        assert config.agent_version == __version__
        assert config.connect_timeout == 30.0
        assert config.flow_control_enabled is False
        assert config.admin_bind is None
        assert config.log_level == "info"

    def test_env_override_connect_timeout(self) -> None:
        """Test PROXYRELAY_CONNECT_TIMEOUT env var."""
        with patch.dict(os.environ, {"PROXYRELAY_CONNECT_TIMEOUT": "2.5"}):
            config = ProxyConfig()
            assert config.connect_timeout == 2.5

    def test_zero_timeout_disables_it(self) -> None:
        with patch.dict(os.environ, {"PROXYRELAY_CONNECT_TIMEOUT": "0"}):
            assert ProxyConfig().connect_timeout is None

    def test_env_override_flow_control(self) -> None:
        """Test PROXYRELAY_FLOW_CONTROL_ENABLED env var."""
        with patch.dict(os.environ, {"PROXYRELAY_FLOW_CONTROL_ENABLED": "true"}):
            assert ProxyConfig().flow_control_enabled is True

    def test_env_override_agent(self) -> None:
        env = {"PROXYRELAY_AGENT_NAME": "edge", "PROXYRELAY_AGENT_VERSION": "2.0"}
        with patch.dict(os.environ, env):
            config = ProxyConfig()
            assert config.to_display_dict()["agent"] == "edge/2.0"

    def test_log_level_is_normalized(self) -> None:
        assert ProxyConfig(log_level="DEBUG").log_level == "debug"

    def test_unknown_log_level(self) -> None:
        with pytest.raises(ValidationError):
            ProxyConfig(log_level="chatty")

    def test_to_display_dict(self) -> None:
        """Test to_display_dict method."""
        display = ProxyConfig(admin_bind="127.0.0.1:9888").to_display_dict()
        assert display["admin_bind"] == "127.0.0.1:9888"
        assert display["connect_timeout"] == 30.0
        assert "settings_file" in display


class TestGetConfig:
    """Test get_config function."""

    def test_get_config_caches_instance(self) -> None:
        clear_config()
        assert get_config() is get_config()

    def test_clear_config_resets_cache(self) -> None:
        """Test clear_config resets the cached instance."""
        clear_config()
        first = get_config()
        clear_config()
        assert get_config() is not first

    def test_get_config_with_env_override(self) -> None:
        clear_config()
        with patch.dict(os.environ, {"PROXYRELAY_LOG_LEVEL": "warning"}):
            clear_config()
            assert get_config().log_level == "warning"
        clear_config()


class TestBindHelpers:
    """Test bind string helpers."""

    def test_parse_bind(self) -> None:
        assert parse_bind("0.0.0.0:9888") == ("0.0.0.0", 9888)
        assert parse_bind(":9888") == ("127.0.0.1", 9888)
        assert parse_bind("9888") == ("127.0.0.1", 9888)
        assert parse_bind("[::1]:9888") == ("::1", 9888)

    def test_listen_host(self) -> None:
        assert listen_host("any") is None
        assert listen_host("ANY") is None
        assert listen_host("") is None
        assert listen_host("127.0.0.1") == "127.0.0.1"


class TestSettingsStore:
    """Test the YAML settings store."""

    def test_missing_file_persists_defaults(self, tmp_path) -> None:
        """Test that defaults are written back when the file is absent."""
        path = tmp_path / "proxy-settings.yaml"
        store = SettingsStore(path)

        assert store.read_listen_address() == ("any", 8888)
        assert yaml.safe_load(path.read_text()) == {ADDRESS_KEY: "any", PORT_KEY: 8888}

    def test_existing_values_win(self, tmp_path) -> None:
        path = tmp_path / "proxy-settings.yaml"
        path.write_text("Address: 127.0.0.1\nPort: 3128\n")

        assert SettingsStore(path).read_listen_address() == ("127.0.0.1", 3128)
        assert path.read_text() == "Address: 127.0.0.1\nPort: 3128\n"

    def test_missing_key_is_added(self, tmp_path) -> None:
        """Test that only the absent key is appended."""
        path = tmp_path / "proxy-settings.yaml"
        path.write_text("Port: 3128\n")

        assert SettingsStore(path).read_listen_address() == ("any", 3128)
        assert yaml.safe_load(path.read_text()) == {PORT_KEY: 3128, ADDRESS_KEY: "any"}

    def test_other_keys_are_kept(self, tmp_path) -> None:
        path = tmp_path / "proxy-settings.yaml"
        path.write_text("Comment: edge box\n")

        SettingsStore(path).read_listen_address()
        assert yaml.safe_load(path.read_text())["Comment"] == "edge box"

    def test_nested_directory_is_created(self, tmp_path) -> None:
        path = tmp_path / "conf" / "proxy.yaml"
        store = SettingsStore(path)
        assert store.read("Port", 8888) == 8888
        assert path.exists()

    def test_invalid_yaml(self, tmp_path) -> None:
        path = tmp_path / "proxy-settings.yaml"
        path.write_text("Port: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            SettingsStore(path).read_listen_address()

    def test_non_mapping(self, tmp_path) -> None:
        path = tmp_path / "proxy-settings.yaml"
        path.write_text("- any\n- 8888\n")
        with pytest.raises(ValueError, match="mapping"):
            SettingsStore(path).read_listen_address()

    def test_bad_port(self, tmp_path) -> None:
        path = tmp_path / "proxy-settings.yaml"
        path.write_text("Address: any\nPort: eighty\n")
        with pytest.raises(ValueError, match="Invalid Port"):
            SettingsStore(path).read_listen_address()
