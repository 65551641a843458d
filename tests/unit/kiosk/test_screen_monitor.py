"""Unit tests for screen detection and secondary-screen selection."""

from unittest.mock import AsyncMock, patch

import pytest

from kiosk_supervisor.kiosk.screen_monitor import (
    ScreenInfo,
    ScreenMonitor,
    XrandrDisplayQuery,
    parse_xrandr_output,
    select_secondary_screen,
)
from kiosk_supervisor.utils.exceptions import ToolError
from tests.fixtures.doubles import tool_result


def screen(name: str, x_offset: int = 0, primary: bool = False, width: int = 1920) -> ScreenInfo:
    return ScreenInfo(name, width, 1080, x_offset, 0, is_primary=primary)


class TestParseXrandrOutput:
    """Test xrandr text parsing."""

    def test_parse_when_dual_screen_then_both_screens_in_query_order(self, xrandr_dual_screen) -> None:
        screens = parse_xrandr_output(xrandr_dual_screen)

        assert screens == [
            ScreenInfo("eDP-1", 1920, 1080, 0, 0, is_primary=True),
            ScreenInfo("HDMI-1", 1920, 1080, 1920, 0, is_primary=False),
        ]

    def test_parse_when_disconnected_outputs_then_skipped(self, xrandr_single_screen) -> None:
        screens = parse_xrandr_output(xrandr_single_screen)

        assert [s.name for s in screens] == ["eDP-1"]

    def test_parse_when_connected_without_mode_then_skipped(self, xrandr_connected_no_mode) -> None:
        screens = parse_xrandr_output(xrandr_connected_no_mode)

        assert [s.name for s in screens] == ["eDP-1"]

    def test_parse_when_empty_output_then_no_screens(self) -> None:
        assert parse_xrandr_output("") == []

    def test_parse_when_offset_screen_then_offsets_parsed(self) -> None:
        screens = parse_xrandr_output("DP-2 connected 2560x1440+1920+120 (normal) 600mm x 340mm")

        assert screens == [ScreenInfo("DP-2", 2560, 1440, 1920, 120, is_primary=False)]


class TestSelectSecondaryScreen:
    """Test the secondary-screen selection policy."""

    def test_select_when_one_non_primary_then_returned(self) -> None:
        screens = [screen("eDP-1", primary=True), screen("HDMI-1", 1920)]

        assert select_secondary_screen(screens).name == "HDMI-1"

    def test_select_when_non_primary_listed_first_then_returned(self) -> None:
        screens = [screen("HDMI-1", 1920), screen("eDP-1", primary=True)]

        assert select_secondary_screen(screens).name == "HDMI-1"

    def test_select_when_several_non_primary_then_first_seen_wins(self) -> None:
        screens = [
            screen("eDP-1", primary=True),
            screen("DP-1", 3840),
            screen("HDMI-1", 1920),
        ]

        assert select_secondary_screen(screens).name == "DP-1"

    def test_select_when_single_primary_then_none(self) -> None:
        assert select_secondary_screen([screen("eDP-1", primary=True)]) is None

    def test_select_when_single_non_primary_then_returned(self) -> None:
        assert select_secondary_screen([screen("HDMI-1")]).name == "HDMI-1"

    def test_select_when_empty_then_none(self) -> None:
        assert select_secondary_screen([]) is None

    def test_select_when_all_primary_then_rightmost(self) -> None:
        screens = [
            screen("A", 0, primary=True),
            screen("B", 3840, primary=True),
            screen("C", 1920, primary=True),
        ]

        assert select_secondary_screen(screens).name == "B"

    def test_select_when_all_primary_tie_on_offset_then_first_encountered(self) -> None:
        screens = [
            screen("A", 0, primary=True),
            screen("B", 1920, primary=True),
            screen("C", 1920, primary=True),
        ]

        assert select_secondary_screen(screens).name == "B"


class TestScreenInfo:
    """Test ScreenInfo helpers."""

    def test_describe_when_primary_then_marked(self) -> None:
        info = ScreenInfo("eDP-1", 1920, 1080, 0, 0, is_primary=True)

        assert info.describe() == "eDP-1: 1920x1080+0+0 (primary)"

    def test_contains_x_when_on_boundaries_then_half_open_interval(self, hdmi_screen) -> None:
        assert hdmi_screen.contains_x(1920)
        assert hdmi_screen.contains_x(3839)
        assert not hdmi_screen.contains_x(3840)
        assert not hdmi_screen.contains_x(1919)


class TestXrandrDisplayQuery:
    """Test the xrandr-backed display query."""

    @pytest.mark.asyncio
    async def test_query_when_xrandr_succeeds_then_output_returned(self, xrandr_dual_screen) -> None:
        with patch(
            "kiosk_supervisor.kiosk.screen_monitor.run_tool",
            AsyncMock(return_value=tool_result(xrandr_dual_screen)),
        ) as mock_run:
            output = await XrandrDisplayQuery().query()

        assert output == xrandr_dual_screen
        mock_run.assert_awaited_once_with(["xrandr", "--query"], timeout=5.0)

    @pytest.mark.asyncio
    async def test_query_when_xrandr_missing_then_none(self) -> None:
        with patch(
            "kiosk_supervisor.kiosk.screen_monitor.run_tool",
            AsyncMock(side_effect=ToolError("xrandr is not installed", "xrandr", "NOT_FOUND")),
        ):
            assert await XrandrDisplayQuery().query() is None

    @pytest.mark.asyncio
    async def test_query_when_nonzero_exit_then_none(self) -> None:
        with patch(
            "kiosk_supervisor.kiosk.screen_monitor.run_tool",
            AsyncMock(return_value=tool_result("", returncode=1, stderr="Can't open display")),
        ):
            assert await XrandrDisplayQuery().query() is None


class TestScreenMonitor:
    """Test ScreenMonitor detection and selection."""

    @pytest.mark.asyncio
    async def test_find_secondary_when_dual_screen_then_hdmi(self, xrandr_dual_screen) -> None:
        query = AsyncMock()
        query.query.return_value = xrandr_dual_screen
        monitor = ScreenMonitor(query)

        secondary = await monitor.find_secondary_screen()

        assert secondary == ScreenInfo("HDMI-1", 1920, 1080, 1920, 0)

    @pytest.mark.asyncio
    async def test_find_secondary_when_single_screen_then_none(self, xrandr_single_screen) -> None:
        query = AsyncMock()
        query.query.return_value = xrandr_single_screen

        assert await ScreenMonitor(query).find_secondary_screen() is None

    @pytest.mark.asyncio
    async def test_detect_when_query_fails_then_empty_list(self) -> None:
        query = AsyncMock()
        query.query.return_value = None

        assert await ScreenMonitor(query).detect_screens() == []

    @pytest.mark.asyncio
    async def test_detect_when_query_raises_then_empty_list(self) -> None:
        query = AsyncMock()
        query.query.side_effect = RuntimeError("display went away")

        assert await ScreenMonitor(query).detect_screens() == []
