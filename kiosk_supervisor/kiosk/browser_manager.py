"""
Browser manager component for kiosk mode with Firefox process lifecycle management.

Launches a kiosk Firefox on a target screen using a persistent profile tuned
for unattended playback, hands the window to the window positioner, and
closes it gracefully with a bounded forced-kill fallback.

Classes:
    BrowserConfig: Browser launch configuration
    BrowserInstance: Handle to one running browser process
    BrowserManager: Launches browser instances onto screens
    BrowserError: Exception for browser-related errors

Example:
    >>> manager = BrowserManager(BrowserConfig(url="https://example.com"), positioner)
    >>> browser = await manager.launch(screen, startup=True)
    >>> if browser:
    ...     await browser.close()
"""

import asyncio
import ipaddress
import logging
import os
import signal
import subprocess  # nosec B404
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import psutil

from ..utils.exceptions import KioskSupervisorError
from ..utils.process import find_executable, signal_process
from .screen_monitor import ScreenInfo
from .window_positioner import WindowPositioner, WindowTarget

logger = logging.getLogger(__name__)

CLOSE_POLL_INTERVAL = 0.1
MIN_TITLE_HINT_LENGTH = 4

# Written once into the profile directory; an existing user.js is reused as-is.
KIOSK_PREFS: dict[str, object] = {
    # Autoplay without user interaction
    "media.autoplay.default": 0,
    "media.autoplay.enabled": True,
    "media.autoplay.allow-muted": True,
    "media.autoplay.blocking_policy": 0,
    "media.block-autoplay-until-in-foreground": False,
    "media.autoplay.enabled.user-gestures-needed": False,
    # No first-run, default-browser or close prompts
    "browser.shell.checkDefaultBrowser": False,
    "browser.startup.homepage_override.mstone": "ignore",
    "browser.tabs.warnOnClose": False,
    "browser.tabs.warnOnCloseOtherTabs": False,
    "browser.rights.3.shown": True,
    "browser.startup.firstrunSkipsHomepage": True,
    # No crash recovery or session restore
    "browser.sessionstore.resume_from_crash": False,
    "browser.sessionstore.max_resumed_crashes": 0,
    "toolkit.startup.max_resumed_crashes": -1,
    # No updates
    "app.update.enabled": False,
    "app.update.auto": False,
    # No telemetry or data reporting
    "datareporting.policy.dataSubmissionEnabled": False,
    "datareporting.policy.dataSubmissionPolicyBypassNotification": True,
    "toolkit.telemetry.enabled": False,
    "toolkit.telemetry.unified": False,
    "toolkit.telemetry.reportingpolicy.firstRun": False,
    # No password or translation popups
    "signon.rememberSignons": False,
    "signon.autofillForms": False,
    "browser.translations.enable": False,
    # Fullscreen without the warning overlay
    "full-screen-api.warning.timeout": 0,
    "full-screen-api.warning.delay": 0,
}


def render_user_prefs(prefs: dict[str, object]) -> str:
    """Render preferences in Firefox ``user.js`` syntax."""
    lines = ["// Kiosk supervisor profile"]
    for name, value in prefs.items():
        if isinstance(value, bool):
            rendered = "true" if value else "false"
        elif isinstance(value, (int, float)):
            rendered = str(value)
        else:
            rendered = f'"{value}"'
        lines.append(f'user_pref("{name}", {rendered});')
    return "\n".join(lines) + "\n"


def title_hint_from_url(url: str) -> tuple[str, ...]:
    """Derive a window title hint from the kiosk URL's host name.

    Walks the labels right to left, skipping the top-level domain, and
    returns the first label long enough to be distinctive, e.g.
    ``theopenpresenter`` for ``theopenpresenter.com``. IP addresses,
    single-label hosts and hosts made only of short labels (``x.co.uk``)
    give no hint, since a short substring would match unrelated windows.
    """
    host = urlparse(url).hostname or ""
    try:
        ipaddress.ip_address(host)
        return ()
    except ValueError:
        pass

    labels = [label for label in host.split(".") if label]
    for label in reversed(labels[:-1]):
        if len(label) >= MIN_TITLE_HINT_LENGTH:
            return (label,)
    return ()


@dataclass
class BrowserConfig:
    """Browser launch configuration.

    Attributes:
        url: Page shown in kiosk mode
        executables: Candidate executables in order of preference
        profile_dir: Persistent profile directory
        launch_settle: Seconds to wait before checking for an immediate crash
        shutdown_timeout: Maximum seconds to wait for graceful shutdown
        force_x11: Run through XWayland on Wayland sessions so X11 window
            tools can position the window
        window_class_hints: WM_CLASS/app_id substrings identifying the window
        extra_args: Additional command line flags
    """

    url: str
    executables: tuple[str, ...] = ("firefox-esr", "firefox")
    profile_dir: Path = field(
        default_factory=lambda: Path.home() / ".kiosk-supervisor" / "firefox-profile"
    )
    launch_settle: float = 1.5
    shutdown_timeout: float = 5.0
    force_x11: bool = True
    window_class_hints: tuple[str, ...] = ("firefox", "mozilla")
    extra_args: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings) -> "BrowserConfig":
        """Build from a ``BrowserSettings`` model."""
        return cls(
            url=settings.url,
            executables=tuple(settings.executables),
            profile_dir=Path(settings.profile_dir).expanduser(),
            launch_settle=settings.launch_settle,
            shutdown_timeout=settings.shutdown_timeout,
            force_x11=settings.force_x11,
            extra_args=tuple(settings.extra_args),
        )


class BrowserError(KioskSupervisorError):
    """Exception raised for browser launch errors.

    Launch failures are soft at the manager boundary: they are logged and
    ``launch`` returns None.
    """

    def __init__(self, message: str, error_code: Optional[str] = None) -> None:
        super().__init__(message, component="browser", error_code=error_code)


class BrowserInstance:
    """A running kiosk browser process launched onto one screen."""

    def __init__(
        self, process: subprocess.Popen, screen: ScreenInfo, shutdown_timeout: float = 5.0
    ) -> None:
        self.process = process
        self.screen = screen
        self.shutdown_timeout = shutdown_timeout
        self.logger = logging.getLogger(f"{__name__}.BrowserInstance")

    @property
    def pid(self) -> int:
        return self.process.pid

    def is_running(self) -> bool:
        return self.process.poll() is None

    async def close(self) -> None:
        """Stop the browser: SIGTERM, bounded wait, then SIGKILL.

        The process has exited and been reaped when this returns. Calling it
        on an already-closed browser does nothing.
        """
        if not self.is_running():
            return

        self.logger.info(f"Closing browser (PID {self.pid})...")
        signal_process(self.process, signal.SIGTERM)

        deadline = time.monotonic() + self.shutdown_timeout
        while self.process.poll() is None:
            if time.monotonic() >= deadline:
                self.logger.warning(
                    f"Browser did not exit within {self.shutdown_timeout}s, force killing"
                )
                signal_process(self.process, signal.SIGKILL)
                await asyncio.to_thread(self.process.wait)
                break
            await asyncio.sleep(CLOSE_POLL_INTERVAL)

        self.logger.info("Browser closed")


class BrowserManager:
    """Launches kiosk browser instances onto screens.

    Example:
        >>> manager = BrowserManager(config, positioner)
        >>> browser = await manager.launch(screen)
    """

    def __init__(self, config: BrowserConfig, positioner: WindowPositioner) -> None:
        self.config = config
        self.positioner = positioner
        self.logger = logging.getLogger(f"{__name__}.BrowserManager")

    def find_browser(self) -> Optional[str]:
        return find_executable(self.config.executables)

    def ensure_profile(self) -> Path:
        """Create the kiosk profile on first use; reuse it afterwards."""
        profile_dir = self.config.profile_dir
        prefs_file = profile_dir / "user.js"

        if prefs_file.exists():
            self.logger.debug(f"Using existing profile at {profile_dir}")
            return profile_dir

        self.logger.info(f"Creating browser profile at {profile_dir}")
        profile_dir.mkdir(parents=True, exist_ok=True)
        prefs_file.write_text(render_user_prefs(KIOSK_PREFS), encoding="utf-8")
        return profile_dir

    def build_command(self, executable: str, screen: ScreenInfo) -> list[str]:
        return [
            executable,
            "--profile",
            str(self.config.profile_dir),
            "--kiosk",
            "--new-instance",
            f"--window-size={screen.width},{screen.height}",
            *self.config.extra_args,
            self.config.url,
        ]

    def build_environment(self) -> dict[str, str]:
        env = os.environ.copy()
        if self.config.force_x11 and env.get("WAYLAND_DISPLAY"):
            # XWayland, so wmctrl can see and move the window
            env["MOZ_ENABLE_WAYLAND"] = "0"
            env["GDK_BACKEND"] = "x11"
        return env

    def build_window_target(self, process: subprocess.Popen) -> WindowTarget:
        """Describe the browser window by pid (and children), class and title."""
        pids = {process.pid}
        try:
            pids.update(child.pid for child in psutil.Process(process.pid).children(recursive=True))
        except psutil.Error as e:
            self.logger.debug(f"Could not list browser child processes: {e}")

        return WindowTarget(
            pids=pids,
            name_hints=self.config.window_class_hints,
            title_hints=title_hint_from_url(self.config.url),
        )

    async def launch(self, screen: ScreenInfo, startup: bool = False) -> Optional[BrowserInstance]:
        """Launch the kiosk browser onto ``screen``.

        Args:
            screen: Target screen rectangle
            startup: Window manager may still be starting; use the longer
                positioning warm-up

        Returns:
            BrowserInstance, or None if no browser is installed, the spawn
            failed or the browser exited right after starting
        """
        try:
            process = await self._spawn(screen)
        except BrowserError as e:
            self.logger.error(f"Browser launch failed: {e.message}")
            return None

        browser = BrowserInstance(process, screen, self.config.shutdown_timeout)

        # A mispositioned browser is still a running browser
        await self.positioner.position(self.build_window_target(process), screen, startup=startup)
        return browser

    async def _spawn(self, screen: ScreenInfo) -> subprocess.Popen:
        executable = self.find_browser()
        if executable is None:
            raise BrowserError(
                f"No browser found (tried: {', '.join(self.config.executables)})", "NOT_FOUND"
            )

        try:
            self.ensure_profile()
        except OSError as e:
            raise BrowserError(f"Cannot prepare profile: {e}", "PROFILE_FAILED") from e

        command = self.build_command(executable, screen)
        self.logger.info(f"Launching {executable} on {screen.name} ({screen.width}x{screen.height})")
        self.logger.debug(f"Browser command: {' '.join(command)}")

        try:
            process = subprocess.Popen(  # nosec B603
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                env=self.build_environment(),
            )
        except OSError as e:
            raise BrowserError(f"Failed to start {executable}: {e}", "SPAWN_FAILED") from e

        await asyncio.sleep(self.config.launch_settle)

        exit_code = process.poll()
        if exit_code is not None:
            raise BrowserError(f"Browser exited immediately with code {exit_code}", "CRASHED")

        self.logger.info(f"Browser started with PID {process.pid}")
        return process
