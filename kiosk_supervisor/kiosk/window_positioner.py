"""
Window positioning for the kiosk browser.

Moves the browser window onto the target screen and makes it fullscreen,
verifying the result and retrying to tolerate window-manager races right
after the browser starts or while the session is still booting.

Two strategies share one algorithm (``WindowPositioner.position``):

    WmctrlPositioner: X11 and XWayland sessions, via ``wmctrl``
    SwayPositioner: wlroots/sway Wayland sessions, via ``swaymsg``

Failing to position the window is never fatal: the browser keeps running,
possibly on the wrong screen, and the failure is logged.
"""

import asyncio
import json
import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..utils.exceptions import ToolError
from ..utils.process import ToolResult, run_tool
from .screen_monitor import ScreenInfo

logger = logging.getLogger(__name__)

ToolRunner = Callable[..., Any]


@dataclass
class PositionerConfig:
    """Retry counts and delays for window positioning.

    Attributes:
        locate_attempts: How many times to look for the window
        locate_delay: Seconds between locate attempts
        pid_only_attempts: Leading locate attempts that match by process only,
            before class and title hints may pick another window
        move_attempts: How many move/verify rounds to try
        warmup_delay: Seconds to wait before the first locate
        startup_warmup_delay: Warm-up used in startup mode (window manager booting)
        settle_delay: Seconds to let the window manager apply a geometry change
        verify_delay: Seconds to wait after re-applying fullscreen before verifying
    """

    locate_attempts: int = 20
    locate_delay: float = 1.0
    pid_only_attempts: int = 5
    move_attempts: int = 3
    warmup_delay: float = 1.0
    startup_warmup_delay: float = 3.0
    settle_delay: float = 0.3
    verify_delay: float = 0.2


@dataclass
class WindowTarget:
    """How to recognise the browser window, in matching priority order."""

    pids: set[int] = field(default_factory=set)
    name_hints: tuple[str, ...] = ()
    title_hints: tuple[str, ...] = ()


@dataclass
class WindowInfo:
    """One on-screen window as reported by the window tool."""

    window_id: str
    pid: Optional[int]
    x: int
    y: int
    width: int
    height: int
    wm_class: str = ""
    title: str = ""


def match_window(
    windows: list[WindowInfo], target: WindowTarget, pid_only: bool = False
) -> Optional[WindowInfo]:
    """Find the target window by process identity, then name, then title.

    With ``pid_only`` the name and title hints are not consulted.
    """
    if target.pids:
        for window in windows:
            if window.pid is not None and window.pid in target.pids:
                return window

    if pid_only:
        return None

    for hint in target.name_hints:
        for window in windows:
            if hint.lower() in window.wm_class.lower():
                return window

    for hint in target.title_hints:
        for window in windows:
            if hint.lower() in window.title.lower():
                return window

    return None


class WindowPositioner(ABC):
    """Base class holding the locate, move, verify and retry algorithm."""

    tool_name = "window tool"

    def __init__(
        self, config: Optional[PositionerConfig] = None, runner: Optional[ToolRunner] = None
    ) -> None:
        self.config = config or PositionerConfig()
        self._run = runner or run_tool
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    @abstractmethod
    async def list_windows(self) -> Optional[list[WindowInfo]]:
        """Enumerate on-screen windows, or None if the tool failed."""

    @abstractmethod
    async def clear_fullscreen(self, window: WindowInfo) -> bool: ...

    @abstractmethod
    async def move(self, window: WindowInfo, screen: ScreenInfo) -> bool: ...

    @abstractmethod
    async def set_fullscreen(self, window: WindowInfo) -> bool: ...

    async def locate(self, target: WindowTarget) -> Optional[WindowInfo]:
        """Find the target window, retrying while it is being created."""
        attempts = self.config.locate_attempts
        # Always leave at least one attempt for the hint fallback
        pid_only_attempts = min(self.config.pid_only_attempts, attempts - 1) if target.pids else 0
        for attempt in range(1, attempts + 1):
            windows = await self.list_windows()
            if windows:
                window = match_window(windows, target, pid_only=attempt <= pid_only_attempts)
                if window:
                    return window

            if attempt < attempts:
                self.logger.debug(f"Window not found yet, retrying... ({attempt}/{attempts})")
                await asyncio.sleep(self.config.locate_delay)

        return None

    async def read_geometry(self, window_id: str) -> Optional[WindowInfo]:
        windows = await self.list_windows()
        if not windows:
            return None
        for window in windows:
            if window.window_id == window_id:
                return window
        return None

    async def position(self, target: WindowTarget, screen: ScreenInfo, startup: bool = False) -> bool:
        """Move the target window onto ``screen`` and make it fullscreen.

        Args:
            target: How to recognise the browser window
            screen: Destination rectangle
            startup: Use the longer warm-up for a window manager that may
                still be starting

        Returns:
            True if the window was moved (verified, or unverifiable),
            False if it could not be located or verified
        """
        try:
            return await self._position(target, screen, startup)
        except Exception:
            self.logger.exception("Failed to position browser window")
            return False

    async def _position(self, target: WindowTarget, screen: ScreenInfo, startup: bool) -> bool:
        if startup:
            self.logger.info("Startup mode: waiting for window manager to be fully ready...")
            await asyncio.sleep(self.config.startup_warmup_delay)
        else:
            await asyncio.sleep(self.config.warmup_delay)

        window = await self.locate(target)
        if window is None:
            self.logger.warning(f"Could not find browser window via {self.tool_name} after retries")
            return False

        self.logger.info(f"Found browser window: {window.window_id}")

        attempts = self.config.move_attempts
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                self.logger.info(f"Move attempt {attempt}/{attempts}...")
                await asyncio.sleep(self.config.locate_delay)

            await self.clear_fullscreen(window)
            await asyncio.sleep(self.config.settle_delay)

            if not await self.move(window, screen):
                continue

            await asyncio.sleep(self.config.settle_delay)
            await self.set_fullscreen(window)
            await asyncio.sleep(self.config.verify_delay)

            current = await self.read_geometry(window.window_id)
            if current is None:
                self.logger.info(
                    f"Moved browser to {screen.name} at {screen.x_offset},{screen.y_offset} (unverified)"
                )
                return True

            if screen.contains_x(current.x):
                self.logger.info(
                    f"Moved browser to {screen.name} at {screen.x_offset},{screen.y_offset} "
                    f"(verified at {current.x},{current.y})"
                )
                return True

            self.logger.warning(
                f"Window is at {current.x},{current.y} but should be on screen at x={screen.x_offset}"
            )

        self.logger.error("Failed to move window to correct screen after all attempts")
        return False

    async def _invoke(self, args: list[str]) -> Optional[ToolResult]:
        try:
            result: ToolResult = await self._run(args)
        except ToolError as e:
            self.logger.warning(e.message)
            return None

        if not result.ok:
            self.logger.warning(
                f"{args[0]} failed with code {result.returncode}: {result.stderr.strip()}"
            )
        return result


def parse_wmctrl_listing(output: str) -> list[WindowInfo]:
    """Parse ``wmctrl -l -p -G -x`` output.

    Columns: window id, desktop, pid, x, y, width, height, WM_CLASS,
    client machine, title (title may be empty).
    """
    windows = []
    for line in output.splitlines():
        parts = line.split(None, 9)
        if len(parts) < 9:
            continue
        try:
            pid = int(parts[2])
            x, y, width, height = (int(v) for v in parts[3:7])
        except ValueError:
            continue

        windows.append(
            WindowInfo(
                window_id=parts[0],
                pid=pid if pid > 0 else None,
                x=x,
                y=y,
                width=width,
                height=height,
                wm_class=parts[7],
                title=parts[9] if len(parts) > 9 else "",
            )
        )
    return windows


class WmctrlPositioner(WindowPositioner):
    """Positions windows with ``wmctrl`` (X11, or XWayland clients)."""

    tool_name = "wmctrl"

    async def list_windows(self) -> Optional[list[WindowInfo]]:
        result = await self._invoke(["wmctrl", "-l", "-p", "-G", "-x"])
        if result is None or not result.ok:
            return None
        return parse_wmctrl_listing(result.stdout)

    async def clear_fullscreen(self, window: WindowInfo) -> bool:
        result = await self._invoke(["wmctrl", "-i", "-r", window.window_id, "-b", "remove,fullscreen"])
        return bool(result and result.ok)

    async def move(self, window: WindowInfo, screen: ScreenInfo) -> bool:
        # -e gravity,x,y,width,height (0 = default gravity)
        geometry = f"0,{screen.x_offset},{screen.y_offset},{screen.width},{screen.height}"
        result = await self._invoke(["wmctrl", "-i", "-r", window.window_id, "-e", geometry])
        return bool(result and result.ok)

    async def set_fullscreen(self, window: WindowInfo) -> bool:
        result = await self._invoke(["wmctrl", "-i", "-r", window.window_id, "-b", "add,fullscreen"])
        return bool(result and result.ok)


def parse_sway_tree(tree: dict[str, Any]) -> list[WindowInfo]:
    """Flatten ``swaymsg -t get_tree`` JSON into application windows."""
    windows: list[WindowInfo] = []
    stack = [tree]
    while stack:
        node = stack.pop()
        if node.get("pid") is not None and node.get("type") in ("con", "floating_con"):
            rect = node.get("rect") or {}
            props = node.get("window_properties") or {}
            windows.append(
                WindowInfo(
                    window_id=str(node.get("id")),
                    pid=node.get("pid"),
                    x=int(rect.get("x", 0)),
                    y=int(rect.get("y", 0)),
                    width=int(rect.get("width", 0)),
                    height=int(rect.get("height", 0)),
                    wm_class=node.get("app_id") or props.get("class") or "",
                    title=node.get("name") or "",
                )
            )
        # Reverse so siblings come out in tree order
        children = list(node.get("nodes") or []) + list(node.get("floating_nodes") or [])
        stack.extend(reversed(children))
    return windows


class SwayPositioner(WindowPositioner):
    """Positions windows on wlroots/sway Wayland sessions via ``swaymsg``."""

    tool_name = "swaymsg"

    async def list_windows(self) -> Optional[list[WindowInfo]]:
        result = await self._invoke(["swaymsg", "-t", "get_tree", "-r"])
        if result is None or not result.ok:
            return None
        try:
            return parse_sway_tree(json.loads(result.stdout))
        except (json.JSONDecodeError, TypeError, ValueError):
            self.logger.warning("Could not parse swaymsg window tree")
            return None

    async def _command(self, window: WindowInfo, command: str) -> bool:
        result = await self._invoke(["swaymsg", f"[con_id={window.window_id}] {command}"])
        return bool(result and result.ok)

    async def clear_fullscreen(self, window: WindowInfo) -> bool:
        return await self._command(window, "fullscreen disable")

    async def move(self, window: WindowInfo, screen: ScreenInfo) -> bool:
        # Outputs are addressed by name; the compositor owns the geometry
        return await self._command(window, f"move container to output {screen.name}")

    async def set_fullscreen(self, window: WindowInfo) -> bool:
        return await self._command(window, "fullscreen enable")


def create_positioner(
    kind: str = "auto",
    config: Optional[PositionerConfig] = None,
    runner: Optional[ToolRunner] = None,
) -> WindowPositioner:
    """Create the positioning strategy for this session.

    Args:
        kind: ``x11``, ``wayland`` or ``auto`` (sway when a sway socket is
            present and ``swaymsg`` is installed, wmctrl otherwise)
        config: Retry counts and delays
        runner: Tool runner override (for testing)
    """
    if kind == "wayland":
        return SwayPositioner(config, runner)
    if kind == "x11":
        return WmctrlPositioner(config, runner)

    if os.environ.get("SWAYSOCK") and shutil.which("swaymsg"):
        logger.debug("Sway session detected, using swaymsg positioner")
        return SwayPositioner(config, runner)

    logger.debug("Using wmctrl positioner")
    return WmctrlPositioner(config, runner)
