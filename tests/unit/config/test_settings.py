"""Unit tests for supervisor settings loading and validation."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from kiosk_supervisor.config.settings import (
    DEFAULT_TARGET_URL,
    BrowserSettings,
    LoggingSettings,
    SupervisorSettings,
    load_settings,
)
from kiosk_supervisor.utils.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Isolate from KIOSK_* variables and any real config file."""
    for name in list(os.environ):
        if name.upper().startswith("KIOSK_"):
            monkeypatch.delenv(name)
    with patch("kiosk_supervisor.config.settings.DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml"):
        yield


class TestDefaults:
    """Test default settings values."""

    def test_settings_when_defaults_then_reference_timings(self) -> None:
        settings = SupervisorSettings()

        assert settings.browser.url == DEFAULT_TARGET_URL
        assert settings.browser.executables == ["firefox-esr", "firefox"]
        assert settings.browser.shutdown_timeout == 5.0
        assert settings.workload.restart_delay == 5.0
        assert settings.workload.graceful_timeout == 300.0
        assert settings.workload.auto_restart is True
        assert settings.screen.poll_interval == 5.0
        assert settings.power.poll_interval == 2.0
        assert settings.power.supply_root == Path("/sys/class/power_supply")
        assert settings.power.poweroff_command == ["sudo", "-n", "shutdown", "now"]
        assert settings.window.locate_attempts == 20
        assert settings.window.move_attempts == 3


class TestValidation:
    """Test field validation."""

    def test_logging_when_lowercase_level_then_normalized(self) -> None:
        assert LoggingSettings(console_level="verbose").console_level == "VERBOSE"

    def test_logging_when_unknown_level_then_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LoggingSettings(console_level="LOUD")

    def test_browser_when_empty_url_then_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BrowserSettings(url="  ")

    def test_browser_when_unknown_positioner_then_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BrowserSettings(positioner="mir")

    def test_browser_when_no_executables_then_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BrowserSettings(executables=[])


class TestLoadSettings:
    """Test YAML and environment layering."""

    def test_load_when_no_file_then_defaults(self) -> None:
        assert load_settings() == SupervisorSettings()

    def test_load_when_yaml_file_then_values_applied(self, tmp_path) -> None:
        config = tmp_path / "config.yaml"
        config.write_text(
            "browser:\n"
            "  url: https://example.com/board\n"
            "workload:\n"
            "  restart_delay: 12\n"
            "power:\n"
            "  enabled: false\n"
        )

        settings = load_settings(config)

        assert settings.browser.url == "https://example.com/board"
        assert settings.workload.restart_delay == 12.0
        assert settings.power.enabled is False
        assert settings.browser.executables == ["firefox-esr", "firefox"]

    def test_load_when_env_and_yaml_then_env_wins(self, tmp_path, monkeypatch) -> None:
        config = tmp_path / "config.yaml"
        config.write_text("browser:\n  url: https://yaml.example.com\n  positioner: x11\n")
        monkeypatch.setenv("KIOSK_BROWSER__URL", "https://env.example.com")

        settings = load_settings(config)

        assert settings.browser.url == "https://env.example.com"
        assert settings.browser.positioner == "x11"

    def test_load_when_env_nested_value_then_parsed(self, monkeypatch) -> None:
        monkeypatch.setenv("KIOSK_WORKLOAD__RESTART_DELAY", "2.5")

        assert load_settings().workload.restart_delay == 2.5

    def test_load_when_default_path_exists_then_used(self, tmp_path) -> None:
        default = tmp_path / "config.yaml"
        default.write_text("screen:\n  poll_interval: 9\n")

        with patch("kiosk_supervisor.config.settings.DEFAULT_CONFIG_PATH", default):
            assert load_settings().screen.poll_interval == 9.0

    def test_load_when_yaml_malformed_then_configuration_error(self, tmp_path) -> None:
        config = tmp_path / "config.yaml"
        config.write_text("browser: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_settings(config)

    def test_load_when_yaml_not_mapping_then_configuration_error(self, tmp_path) -> None:
        config = tmp_path / "config.yaml"
        config.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError):
            load_settings(config)

    def test_load_when_value_out_of_range_then_configuration_error(self, tmp_path) -> None:
        config = tmp_path / "config.yaml"
        config.write_text("power:\n  poll_interval: 0\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(config)

        assert exc_info.value.error_code == "INVALID_CONFIG"

    def test_load_when_file_missing_then_configuration_error(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError):
            load_settings(tmp_path / "nope.yaml")
