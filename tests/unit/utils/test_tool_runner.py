"""Unit tests for external tool execution and process signalling."""

import signal
import sys
from unittest.mock import AsyncMock, patch

import pytest

from kiosk_supervisor.utils.exceptions import ToolError
from kiosk_supervisor.utils.process import find_executable, request_poweroff, run_tool, signal_process
from tests.fixtures.doubles import make_process_mock


class TestRunTool:
    """Test run_tool output capture and failures."""

    @pytest.mark.asyncio
    async def test_run_tool_when_success_then_output_captured(self) -> None:
        result = await run_tool([sys.executable, "-c", "print('connected')"])

        assert result.ok
        assert result.stdout.strip() == "connected"

    @pytest.mark.asyncio
    async def test_run_tool_when_nonzero_exit_then_result_not_ok(self) -> None:
        result = await run_tool(
            [sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(2)"]
        )

        assert result.returncode == 2
        assert not result.ok
        assert result.stderr == "bad"

    @pytest.mark.asyncio
    async def test_run_tool_when_not_installed_then_not_found(self) -> None:
        with pytest.raises(ToolError) as exc_info:
            await run_tool(["definitely-not-installed-xrandr"])

        assert exc_info.value.error_code == "NOT_FOUND"
        assert exc_info.value.tool == "definitely-not-installed-xrandr"

    @pytest.mark.asyncio
    async def test_run_tool_when_hangs_then_timeout(self) -> None:
        with pytest.raises(ToolError) as exc_info:
            await run_tool([sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.5)

        assert exc_info.value.error_code == "TIMEOUT"


class TestFindExecutable:
    """Test executable preference order."""

    def test_find_when_first_missing_then_second(self) -> None:
        with patch(
            "kiosk_supervisor.utils.process.shutil.which",
            side_effect=lambda name: "/usr/bin/firefox" if name == "firefox" else None,
        ):
            assert find_executable(["firefox-esr", "firefox"]) == "firefox"

    def test_find_when_none_installed_then_none(self) -> None:
        with patch("kiosk_supervisor.utils.process.shutil.which", return_value=None):
            assert find_executable(["firefox-esr", "firefox"]) is None


class TestSignalProcess:
    """Test signal delivery edge cases."""

    def test_signal_when_running_then_delivered(self) -> None:
        process = make_process_mock(exit_codes=[None])

        assert signal_process(process, signal.SIGTERM) is True
        process.send_signal.assert_called_once_with(signal.SIGTERM)

    def test_signal_when_already_exited_then_not_sent(self) -> None:
        process = make_process_mock(exit_codes=[0])

        assert signal_process(process, signal.SIGTERM) is True
        process.send_signal.assert_not_called()

    def test_signal_when_process_vanishes_then_true(self) -> None:
        process = make_process_mock(exit_codes=[None])
        process.send_signal.side_effect = ProcessLookupError()

        assert signal_process(process, signal.SIGINT) is True

    def test_signal_when_permission_denied_then_false(self) -> None:
        process = make_process_mock(exit_codes=[None])
        process.send_signal.side_effect = PermissionError()

        assert signal_process(process, signal.SIGKILL) is False


class TestRequestPoweroff:
    """Test power-off command execution."""

    @pytest.mark.asyncio
    async def test_poweroff_when_command_succeeds_then_true(self) -> None:
        assert await request_poweroff([sys.executable, "-c", "pass"]) is True

    @pytest.mark.asyncio
    async def test_poweroff_when_command_fails_then_false_with_sudoers_hint(self, caplog) -> None:
        result = await request_poweroff([sys.executable, "-c", "import sys; sys.exit(1)"])

        assert result is False
        assert "NOPASSWD" in caplog.text

    @pytest.mark.asyncio
    async def test_poweroff_when_command_missing_then_false(self) -> None:
        assert await request_poweroff(["definitely-not-installed-sudo", "-n", "shutdown"]) is False

    @pytest.mark.asyncio
    async def test_poweroff_when_called_then_no_stdin(self) -> None:
        proc = AsyncMock()
        proc.wait.return_value = 0
        with patch(
            "kiosk_supervisor.utils.process.asyncio.create_subprocess_exec", AsyncMock(return_value=proc)
        ) as mock_exec:
            await request_poweroff(["sudo", "-n", "shutdown", "now"])

        assert mock_exec.await_args.args == ("sudo", "-n", "shutdown", "now")
        assert mock_exec.await_args.kwargs["env"]["KIOSK_POWEROFF_REASON"] == "power-loss"
