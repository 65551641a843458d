"""
Workload process management with graceful shutdown.

Spawns the operator's command with the supervisor's own standard streams so
its output is visible live, and stops it the way a person at the terminal
would: Ctrl+C first, and only after a long grace period a forced kill.
Workloads may need minutes to flush state, and on the power-loss path the
machine is powered off right after, so the graceful stop waits up to five
minutes.
"""

import asyncio
import logging
import signal
import subprocess  # nosec B404
import time
from typing import Optional

from ..utils.exceptions import CommandParseError, WorkloadStartError
from ..utils.process import signal_process

logger = logging.getLogger(__name__)

GRACEFUL_TIMEOUT = 5 * 60.0
POLL_INTERVAL = 0.1
PROGRESS_LOG_INTERVAL = 30.0
KILL_SETTLE_DELAY = 1.0


def parse_command(command: str) -> list[str]:
    """Split a command string into executable and arguments.

    Single- and double-quoted substrings are kept together with the quotes
    stripped; unquoted whitespace separates tokens. There is no escape
    processing.

    Example:
        >>> parse_command('node server.js --flag "hello world"')
        ['node', 'server.js', '--flag', 'hello world']
    """
    parts: list[str] = []
    current = ""
    quote_char: Optional[str] = None

    for char in command:
        if quote_char:
            if char == quote_char:
                quote_char = None
            else:
                current += char
        elif char in ("'", '"'):
            quote_char = char
        elif char.isspace():
            if current:
                parts.append(current)
                current = ""
        else:
            current += char

    if current:
        parts.append(current)

    return parts


def exit_status(returncode: int) -> int:
    """Map a Popen return code to a shell-style exit status.

    A child killed by a signal reports ``-signum``; shells report that as
    ``128 + signum``.
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


class ManagedProcess:
    """One spawned workload process.

    The exit code is unset until the exit is observed and never changes
    afterwards.
    """

    def __init__(self, process: subprocess.Popen, command: str) -> None:
        self.process = process
        self.command = command
        self.logger = logging.getLogger(f"{__name__}.ManagedProcess")

    @property
    def pid(self) -> int:
        return self.process.pid

    def is_running(self) -> bool:
        return self.process.poll() is None

    def get_exit_code(self) -> Optional[int]:
        returncode = self.process.poll()
        return None if returncode is None else exit_status(returncode)

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        while self.process.poll() is None:
            await asyncio.sleep(POLL_INTERVAL)
        return exit_status(self.process.returncode)

    def interrupt(self) -> None:
        """Send SIGINT (Ctrl+C) without waiting."""
        self.logger.info(f"Sending SIGINT (Ctrl+C) to process {self.pid}...")
        signal_process(self.process, signal.SIGINT)

    async def graceful_stop(self, timeout: float = GRACEFUL_TIMEOUT) -> bool:
        """Send SIGINT and wait for the process to exit on its own.

        Escalates to SIGKILL when the ceiling is reached.

        Args:
            timeout: Maximum seconds to wait for a voluntary exit

        Returns:
            True if the process exited gracefully (or had already exited),
            False if it had to be killed
        """
        if not self.is_running():
            self.logger.info(f"Process already exited with code {self.get_exit_code()}")
            return True

        self.interrupt()

        start_time = time.monotonic()
        next_progress = PROGRESS_LOG_INTERVAL

        while self.process.poll() is None:
            elapsed = time.monotonic() - start_time

            if elapsed >= timeout:
                self.logger.warning(f"Timeout after {timeout:.0f}s, force killing process {self.pid}...")
                signal_process(self.process, signal.SIGKILL)
                await asyncio.sleep(KILL_SETTLE_DELAY)
                self.process.poll()
                return False

            if elapsed >= next_progress:
                remaining = round(timeout - elapsed)
                self.logger.info(f"Waiting for graceful exit... {remaining}s remaining")
                next_progress += PROGRESS_LOG_INTERVAL

            await asyncio.sleep(POLL_INTERVAL)

        self.logger.info(f"Process exited gracefully with code {self.process.returncode}")
        return True


def start_process(command: str) -> ManagedProcess:
    """Start a managed workload process from a command string.

    Args:
        command: Free-form command string

    Returns:
        The running ManagedProcess

    Raises:
        CommandParseError: If the command parses to zero tokens
        WorkloadStartError: If the executable cannot be spawned
    """
    argv = parse_command(command)
    if not argv:
        raise CommandParseError(command)

    logger.info(f"Starting command: {command}")
    logger.debug(f"Parsed as: {argv}")

    try:
        # Inherit stdin/stdout/stderr so the operator sees the workload live
        process = subprocess.Popen(argv)  # nosec B603
    except OSError as e:
        raise WorkloadStartError(f"Failed to start {argv[0]}: {e}", argv) from e

    logger.info(f"Process started with PID: {process.pid}")
    return ManagedProcess(process, command)
