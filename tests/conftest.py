"""Shared test fixtures for the kiosk supervisor test suite."""

import json
import sys
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from kiosk_supervisor.config.settings import SupervisorSettings
from kiosk_supervisor.kiosk.screen_monitor import ScreenInfo
from tests.fixtures.doubles import FakeBrowser

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def read_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


@pytest.fixture
def xrandr_dual_screen() -> str:
    """xrandr output with a primary laptop panel and an HDMI screen to its right."""
    return read_fixture("xrandr_dual_screen.txt")


@pytest.fixture
def xrandr_single_screen() -> str:
    return read_fixture("xrandr_single_screen.txt")


@pytest.fixture
def xrandr_connected_no_mode() -> str:
    return read_fixture("xrandr_connected_no_mode.txt")


@pytest.fixture
def wmctrl_windows() -> str:
    return read_fixture("wmctrl_windows.txt")


@pytest.fixture
def sway_tree() -> dict[str, Any]:
    return json.loads(read_fixture("sway_tree.json"))


@pytest.fixture
def primary_screen() -> ScreenInfo:
    return ScreenInfo("eDP-1", 1920, 1080, 0, 0, is_primary=True)


@pytest.fixture
def hdmi_screen() -> ScreenInfo:
    return ScreenInfo("HDMI-1", 1920, 1080, 1920, 0)


@pytest.fixture
def fast_settings(tmp_path: Path) -> SupervisorSettings:
    """Settings with every delay shortened so supervisor tests run quickly."""
    settings = SupervisorSettings()
    settings.workload.restart_delay = 0.05
    settings.workload.graceful_timeout = 2.0
    settings.screen.poll_interval = 0.05
    settings.power.poll_interval = 0.05
    settings.power.supply_root = tmp_path / "power_supply"
    settings.browser.profile_dir = tmp_path / "profile"
    settings.logging.file_enabled = False
    return settings


@pytest.fixture
def python_command() -> str:
    """Quoted interpreter path usable inside workload command strings."""
    return f'"{sys.executable}"'


@pytest.fixture
def fake_browser_manager() -> Mock:
    """Browser manager whose launch() returns a FakeBrowser on the requested screen."""
    manager = Mock()
    manager.launched = []

    async def launch(screen: ScreenInfo, startup: bool = False) -> FakeBrowser:
        browser = FakeBrowser(screen)
        manager.launched.append((screen, startup, browser))
        return browser

    manager.launch = AsyncMock(side_effect=launch)
    return manager
