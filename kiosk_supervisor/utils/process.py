"""Process and external tool utilities for the kiosk supervisor."""

import asyncio
import logging
import os
import shutil
import signal
import subprocess  # nosec B404
from dataclasses import dataclass
from typing import Optional, Sequence

from .exceptions import ToolError

logger = logging.getLogger(__name__)

SUDOERS_HINT = "%sudo ALL=(ALL) NOPASSWD: /sbin/shutdown"


@dataclass
class ToolResult:
    """Captured result of an external tool invocation."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_tool(args: Sequence[str], timeout: float = 5.0) -> ToolResult:
    """Run an external tool and capture its text output.

    Args:
        args: Command and arguments
        timeout: Maximum seconds to wait for the tool to finish

    Returns:
        ToolResult with exit code and decoded output

    Raises:
        ToolError: If the tool is not installed, cannot be started or times out
    """
    argv = [str(arg) for arg in args]
    tool = argv[0]

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise ToolError(f"{tool} is not installed", tool, "NOT_FOUND") from e
    except OSError as e:
        raise ToolError(f"Failed to run {tool}: {e}", tool, "SPAWN_FAILED") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        _kill_quietly(proc)
        await proc.wait()
        raise ToolError(f"{tool} timed out after {timeout}s", tool, "TIMEOUT") from e

    return ToolResult(
        args=argv,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def _kill_quietly(proc: asyncio.subprocess.Process) -> None:
    """Kill a tool process that overran its timeout."""
    try:
        proc.kill()
    except ProcessLookupError:
        logger.debug(f"Tool process {proc.pid} already exited")


def find_executable(candidates: Sequence[str]) -> Optional[str]:
    """Return the first candidate found on PATH, in preference order."""
    for name in candidates:
        if shutil.which(name):
            return name
    return None


def signal_process(process: subprocess.Popen, sig: int) -> bool:
    """Safely send a signal to a child process.

    Args:
        process: Child process handle
        sig: Signal number to send

    Returns:
        True if the signal was delivered or the process is already gone,
        False on permission errors
    """
    if process.poll() is not None:
        logger.debug(f"Process {process.pid} already exited, not sending {sig}")
        return True

    signal_name = signal.Signals(sig).name
    try:
        process.send_signal(sig)
        logger.debug(f"Sent {signal_name} to process {process.pid}")
        return True
    except ProcessLookupError:
        logger.debug(f"Process {process.pid} died before {signal_name} was delivered")
        return True
    except PermissionError:
        logger.warning(f"Permission denied sending {signal_name} to process {process.pid}")
        return False


async def request_poweroff(command: Sequence[str], timeout: float = 30.0) -> bool:
    """Run the privileged power-off command without interactivity.

    Failure is logged and never retried; the operator must pre-provision
    passwordless privilege for the command.

    Args:
        command: Power-off command line (e.g. ``sudo -n shutdown now``)
        timeout: Maximum seconds to wait for the command

    Returns:
        True if the command exited successfully
    """
    env = os.environ.copy()
    env["KIOSK_POWEROFF_REASON"] = "power-loss"
    argv = list(command)
    logger.warning(f"Executing system shutdown: {' '.join(argv)}")

    try:
        proc = await asyncio.create_subprocess_exec(*argv, stdin=asyncio.subprocess.DEVNULL, env=env)
        returncode = await asyncio.wait_for(proc.wait(), timeout=timeout)
    except (OSError, asyncio.TimeoutError):
        logger.exception("Shutdown command failed")
        logger.error(f"Configure passwordless sudo for shutdown, e.g. in sudoers: {SUDOERS_HINT}")
        return False

    if returncode != 0:
        logger.error(f"Shutdown command exited with code {returncode}")
        logger.error(f"Configure passwordless sudo for shutdown, e.g. in sudoers: {SUDOERS_HINT}")
        return False

    return True
