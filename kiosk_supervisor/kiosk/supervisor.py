"""
Kiosk supervisor - the central orchestrator.

Owns all runtime state: the current workload process, the kiosk browser and
the screen backing it. Runs the screen poll, the workload restart loop and
the shutdown sequence, and reacts to termination signals and AC power loss.

Lifecycle::

    STARTING -> RUNNING -> SHUTTING_DOWN -> TERMINATED

The shutdown latch is one-way. Once set, nothing new is launched or
restarted; operations already in flight run to completion. Browser and
screen state is only touched while holding one ``asyncio.Lock``, so a screen
tick and the shutdown sequence never interleave their mutations.

Classes:
    SupervisorState: Lifecycle state enumeration
    ShutdownReason: Why the shutdown sequence ran
    SupervisorStatus: Read-only status snapshot
    Supervisor: The orchestrator

Example:
    >>> supervisor = Supervisor("node server.js", settings)
    >>> exit_code = await supervisor.run()
"""

import asyncio
import contextlib
import logging
import os
import signal
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

from ..config.settings import SupervisorSettings
from ..utils.exceptions import CommandParseError, WorkloadStartError
from ..utils.process import request_poweroff
from .browser_manager import BrowserConfig, BrowserInstance, BrowserManager
from .power_monitor import PowerMonitor, PowerStatus, start_power_monitor
from .process_manager import ManagedProcess, parse_command, start_process
from .screen_monitor import ScreenInfo, ScreenMonitor
from .window_positioner import PositionerConfig, create_positioner

logger = logging.getLogger(__name__)


class SupervisorState(Enum):
    """Supervisor lifecycle states."""

    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class ShutdownReason(Enum):
    """What triggered the shutdown sequence.

    Attributes:
        SIGNAL: Operator sent SIGINT/SIGTERM; supervisor exits afterwards
        POWER_LOSS: AC power disconnected; machine powers off afterwards
        WORKLOAD_EXIT: Workload exited and will not be restarted
        ERROR: The supervisor itself failed; the error is re-raised afterwards
    """

    SIGNAL = "signal"
    POWER_LOSS = "power_loss"
    WORKLOAD_EXIT = "workload_exit"
    ERROR = "error"


@dataclass
class SupervisorStatus:
    """Point-in-time view of the supervisor state.

    Attributes:
        state: Lifecycle state
        shutting_down: Whether the shutdown latch is set
        shutdown_reason: What set the latch (None while running)
        screen_name: Screen backing the current browser
        browser_running: Whether a live browser is held
        workload_running: Whether the workload process is alive
        workload_pid: PID of the current workload process
        restart_count: Workload restarts since start
        last_exit_code: Last observed workload exit code
        power_status: Last sampled power state
        start_time: When run() began
        uptime: Time since run() began
    """

    state: SupervisorState
    shutting_down: bool
    shutdown_reason: Optional[ShutdownReason]
    screen_name: Optional[str]
    browser_running: bool
    workload_running: bool
    workload_pid: Optional[int]
    restart_count: int
    last_exit_code: Optional[int]
    power_status: PowerStatus
    start_time: Optional[datetime]
    uptime: Optional[timedelta]


PowerMonitorFactory = Callable[..., PowerMonitor]
PoweroffCommand = Callable[[Sequence[str]], Awaitable[bool]]


def _hard_exit(code: int) -> None:
    """Exit immediately, skipping any pending graceful work."""
    logging.shutdown()
    os._exit(code)


class Supervisor:
    """Coordinates the kiosk browser, the workload and the shutdown sequence.

    Collaborators default to real implementations built from settings and
    may be injected for testing.
    """

    def __init__(
        self,
        command: str,
        settings: Optional[SupervisorSettings] = None,
        *,
        screen_monitor: Optional[ScreenMonitor] = None,
        browser_manager: Optional[BrowserManager] = None,
        process_starter: Callable[[str], ManagedProcess] = start_process,
        power_monitor_factory: PowerMonitorFactory = start_power_monitor,
        poweroff: PoweroffCommand = request_poweroff,
        exit_func: Callable[[int], Any] = _hard_exit,
    ) -> None:
        """Initialize the supervisor.

        Args:
            command: Workload command string
            settings: Supervisor settings (defaults plus environment if omitted)
            screen_monitor: Screen detection override
            browser_manager: Browser launcher override
            process_starter: Workload spawner override
            power_monitor_factory: Power monitor factory override
            poweroff: Power-off command runner override
            exit_func: Immediate-exit function used on a repeated signal

        Raises:
            CommandParseError: If the command contains no executable
        """
        if not parse_command(command):
            raise CommandParseError(command)

        self.command = command
        self.settings = settings or SupervisorSettings()
        self.logger = logging.getLogger(f"{__name__}.Supervisor")

        self.screen_monitor = screen_monitor or ScreenMonitor()
        self.browser_manager = browser_manager or self._create_browser_manager()
        self._start_process = process_starter
        self._power_monitor_factory = power_monitor_factory
        self._poweroff = poweroff
        self._exit = exit_func

        # Supervisor context
        self.state = SupervisorState.STARTING
        self.current_workload: Optional[ManagedProcess] = None
        self.current_browser: Optional[BrowserInstance] = None
        self.current_screen_name: Optional[str] = None
        self.shutting_down = False
        self.shutdown_reason: Optional[ShutdownReason] = None
        self.power_monitor: Optional[PowerMonitor] = None

        self._restart_count = 0
        self._last_exit_code: Optional[int] = None
        self._start_time: Optional[datetime] = None

        # Control primitives
        self._state_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._shutdown_complete = asyncio.Event()
        self._screen_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._signals_installed: list[int] = []

    def _create_browser_manager(self) -> BrowserManager:
        window = self.settings.window
        positioner = create_positioner(
            self.settings.browser.positioner,
            PositionerConfig(
                locate_attempts=window.locate_attempts,
                locate_delay=window.locate_delay,
                pid_only_attempts=window.pid_only_attempts,
                move_attempts=window.move_attempts,
                warmup_delay=window.warmup_delay,
                startup_warmup_delay=window.startup_warmup_delay,
                settle_delay=window.settle_delay,
                verify_delay=window.verify_delay,
            ),
        )
        return BrowserManager(BrowserConfig.from_settings(self.settings.browser), positioner)

    async def run(self) -> int:
        """Run until shutdown and return the process exit code.

        Returns:
            0 after a signal or power-loss shutdown; the workload's last exit
            code when it exits without being restarted; 1 if the initial
            workload cannot be started

        Raises:
            Exception: Any unexpected failure, after the shutdown sequence
                has stopped the workload and closed the browser
        """
        self._start_time = datetime.now()
        self.state = SupervisorState.STARTING

        try:
            self._install_signal_handlers()

            try:
                await self._startup()
            except WorkloadStartError as e:
                self.logger.error(f"Failed to start workload: {e.message}")
                self._begin_shutdown(ShutdownReason.WORKLOAD_EXIT)
                await self._shutdown_complete.wait()
                return 1

            if not self.shutting_down:
                self.state = SupervisorState.RUNNING
                self.logger.info("Supervisor running")

            exit_code = await self._supervise_workload()
            if exit_code is not None and not self.shutting_down:
                self._begin_shutdown(ShutdownReason.WORKLOAD_EXIT)
                await self._shutdown_complete.wait()
                return exit_code

            await self._shutdown_complete.wait()
            return 0

        except Exception:
            self.logger.error("Supervisor failed, stopping workload and browser")
            if not self.shutting_down:
                self._begin_shutdown(ShutdownReason.ERROR)
            await self._shutdown_complete.wait()
            raise

        finally:
            await self._wait_background_tasks()
            self._remove_signal_handlers()
            self.state = SupervisorState.TERMINATED
            self.logger.info("Supervisor terminated")

    def request_shutdown(self, reason: ShutdownReason) -> None:
        """Enter the shutdown sequence, once.

        A repeated request while shutting down is ignored, except a repeated
        signal, which forces an immediate exit with status 1.
        """
        if self.shutting_down:
            if reason is ShutdownReason.SIGNAL:
                self.logger.warning("Received second signal, forcing immediate exit")
                self._exit(1)
            else:
                self.logger.debug(f"Shutdown already in progress, ignoring {reason.value}")
            return

        self._begin_shutdown(reason)

    def get_status(self) -> SupervisorStatus:
        """Get a snapshot of the supervisor state."""
        workload = self.current_workload
        browser = self.current_browser
        uptime = datetime.now() - self._start_time if self._start_time else None

        return SupervisorStatus(
            state=self.state,
            shutting_down=self.shutting_down,
            shutdown_reason=self.shutdown_reason,
            screen_name=self.current_screen_name,
            browser_running=browser is not None and browser.is_running(),
            workload_running=workload is not None and workload.is_running(),
            workload_pid=workload.pid if workload else None,
            restart_count=self._restart_count,
            last_exit_code=self._last_exit_code,
            power_status=self.power_monitor.get_status() if self.power_monitor else PowerStatus.UNKNOWN,
            start_time=self._start_time,
            uptime=uptime,
        )

    async def _startup(self) -> None:
        """STARTING: initial browser, screen poll, workload, power monitor."""
        self.logger.info("Starting kiosk supervisor")

        if self.settings.screen.enabled:
            async with self._state_lock:
                if not self.shutting_down:
                    screen = await self.screen_monitor.find_secondary_screen()
                    if screen is None:
                        self.logger.info("No secondary screen detected, browser not started")
                    elif not self.shutting_down:
                        await self._launch_browser(screen, startup=True)

            if not self.shutting_down:
                self._screen_task = asyncio.create_task(self._screen_poll_loop())

        if self.shutting_down:
            return

        self.current_workload = self._start_process(self.command)

        if self.shutting_down:
            return

        if self.settings.power.enabled:
            self.power_monitor = self._power_monitor_factory(
                self.settings.power.poll_interval,
                self._on_power_disconnect,
                self.settings.power.supply_root,
            )
        else:
            self.logger.info("Power monitoring disabled")

    async def _supervise_workload(self) -> Optional[int]:
        """RUNNING: wait for the workload and restart it after each exit.

        Returns:
            The exit code to end with when the workload will not be
            restarted, or None once shutdown has been requested
        """
        while not self.shutting_down:
            workload = self.current_workload
            if workload is None:
                return self._last_exit_code

            exit_code = await workload.wait()
            if self.shutting_down:
                return None

            self._last_exit_code = exit_code
            self.logger.info(f"Process exited with code {exit_code}")

            if not self.settings.workload.auto_restart:
                self.logger.info("Auto-restart disabled, not restarting")
                return exit_code

            delay = self.settings.workload.restart_delay
            self.logger.info(f"Restarting in {delay:g}s...")
            if await self._wait_for_stop(delay):
                return None

            try:
                self.current_workload = self._start_process(self.command)
            except WorkloadStartError as e:
                self.logger.error(f"Failed to restart workload: {e.message}")
                self.current_workload = None
                return exit_code

            self._restart_count += 1

        return None

    async def _screen_poll_loop(self) -> None:
        """Run screen ticks one after another until shutdown."""
        interval = self.settings.screen.poll_interval
        while not self.shutting_down:
            if await self._wait_for_stop(interval):
                break
            try:
                await self._screen_tick()
            except Exception:
                self.logger.exception("Screen check failed")

    async def _screen_tick(self) -> None:
        """React to the currently detected secondary screen.

        Exactly one of: launch a browser onto a newly available screen,
        close the browser when the screen went away, or move to a screen
        whose name changed.
        """
        async with self._state_lock:
            if self.shutting_down:
                return

            screen = await self.screen_monitor.find_secondary_screen()
            if self.shutting_down:
                return

            if self.current_browser is not None and not self.current_browser.is_running():
                self.logger.info("Browser was closed, will relaunch if screen is available")
                self._clear_browser()

            if screen is not None and self.current_browser is None:
                self.logger.info(f"Secondary screen available: {screen.name}, launching browser")
                await self._launch_browser(screen)

            elif screen is None and self.current_browser is not None:
                self.logger.info("Secondary screen disconnected, closing browser")
                await self._close_browser()

            elif (
                screen is not None
                and self.current_browser is not None
                and screen.name != self.current_screen_name
            ):
                self.logger.info(
                    f"Screen changed from {self.current_screen_name} to {screen.name}, relaunching browser"
                )
                await self._close_browser()
                await self._launch_browser(screen)

    async def _launch_browser(self, screen: ScreenInfo, startup: bool = False) -> None:
        # Caller holds the state lock
        browser = await self.browser_manager.launch(screen, startup=startup)
        if browser is None:
            self.logger.warning(f"Browser launch on {screen.name} failed, will retry")
            return
        self.current_browser = browser
        self.current_screen_name = screen.name

    async def _close_browser(self) -> None:
        # Caller holds the state lock
        browser = self.current_browser
        self._clear_browser()
        if browser is not None:
            await browser.close()

    def _clear_browser(self) -> None:
        self.current_browser = None
        self.current_screen_name = None

    def _on_power_disconnect(self) -> None:
        self.request_shutdown(ShutdownReason.POWER_LOSS)

    def _handle_signal(self, sig: int) -> None:
        self.logger.info(f"Received {signal.Signals(sig).name}, shutting down gracefully...")
        self.request_shutdown(ShutdownReason.SIGNAL)

    def _begin_shutdown(self, reason: ShutdownReason) -> None:
        self.shutting_down = True
        self.shutdown_reason = reason
        self.state = SupervisorState.SHUTTING_DOWN
        self._stop_event.set()
        self._shutdown_task = asyncio.create_task(self._shutdown_sequence(reason))

    async def _shutdown_sequence(self, reason: ShutdownReason) -> None:
        """SHUTTING_DOWN: the ordered shutdown steps, each awaited."""
        try:
            self.logger.info(f"Shutdown sequence started ({reason.value})")

            # Step 1: no more screen churn or power events
            self._stop_event.set()
            if self.power_monitor is not None:
                self.power_monitor.stop()

            # Step 2: stop the workload
            workload = self.current_workload
            if workload is not None and workload.is_running():
                if reason in (ShutdownReason.POWER_LOSS, ShutdownReason.ERROR):
                    self.logger.info("Gracefully stopping process...")
                    await workload.graceful_stop(self.settings.workload.graceful_timeout)
                else:
                    self.logger.info("Stopping process...")
                    workload.interrupt()
                    await workload.wait()

            # Step 3: close the browser once any in-flight screen tick is done
            async with self._state_lock:
                if self.current_browser is not None:
                    self.logger.info("Closing browser...")
                    await self._close_browser()

            # Step 4: power off the machine
            if reason is ShutdownReason.POWER_LOSS:
                self.logger.warning("Shutting down system...")
                await self._poweroff(self.settings.power.poweroff_command)

            self.logger.info("Shutdown sequence complete")

        except Exception:
            self.logger.exception("Error during shutdown sequence")

        finally:
            self._shutdown_complete.set()

    async def _wait_for_stop(self, timeout: float) -> bool:
        """Sleep up to ``timeout``; True if shutdown was requested meanwhile."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        return self._stop_event.is_set()

    async def _wait_background_tasks(self) -> None:
        # Polls exit on the stop event, whichever path led here
        self._stop_event.set()
        if self._screen_task is not None:
            await self._screen_task
        if self.power_monitor is not None:
            self.power_monitor.stop()
            await self.power_monitor.wait_stopped()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, self._handle_signal, sig)
                self._signals_installed.append(sig)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._signals_installed:
            with contextlib.suppress(NotImplementedError, ValueError):
                loop.remove_signal_handler(sig)
        self._signals_installed.clear()
