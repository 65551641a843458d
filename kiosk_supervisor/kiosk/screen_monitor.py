"""
Screen detection for the kiosk supervisor.

Queries display geometry through a narrow ``DisplayQuery`` capability, parses
it into ``ScreenInfo`` records and picks the secondary output the kiosk
browser should occupy. Every failure is soft: an unavailable or failing query
tool simply means "no screens this poll".

Classes:
    ScreenInfo: Geometry of one connected output
    DisplayQuery: Capability returning raw display geometry text
    XrandrDisplayQuery: DisplayQuery backed by ``xrandr --query``
    ScreenMonitor: Detection and secondary-screen selection

Example:
    >>> monitor = ScreenMonitor(XrandrDisplayQuery())
    >>> screen = await monitor.find_secondary_screen()
    >>> if screen:
    ...     print(screen.describe())
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

from ..utils.exceptions import ToolError
from ..utils.process import run_tool

logger = logging.getLogger(__name__)

# <name> connected [primary] <W>x<H>+<X>+<Y>
XRANDR_SCREEN_PATTERN = re.compile(
    r"^(\S+)\s+connected\s+(primary\s+)?(\d+)x(\d+)\+(\d+)\+(\d+)"
)


@dataclass(frozen=True)
class ScreenInfo:
    """Geometry of one connected display output.

    Attributes:
        name: Output identifier (e.g. HDMI-1)
        width: Width in pixels
        height: Height in pixels
        x_offset: Horizontal offset of the output in the virtual screen
        y_offset: Vertical offset of the output in the virtual screen
        is_primary: Whether the output is flagged as primary
    """

    name: str
    width: int
    height: int
    x_offset: int
    y_offset: int
    is_primary: bool = False

    def describe(self) -> str:
        suffix = " (primary)" if self.is_primary else ""
        return f"{self.name}: {self.width}x{self.height}+{self.x_offset}+{self.y_offset}{suffix}"

    def contains_x(self, x: int) -> bool:
        """Whether a horizontal coordinate falls inside this output."""
        return self.x_offset <= x < self.x_offset + self.width


class DisplayQuery(Protocol):
    """Capability that returns raw display-geometry text, or None on failure."""

    async def query(self) -> Optional[str]: ...


class XrandrDisplayQuery:
    """DisplayQuery implementation running ``xrandr --query``."""

    def __init__(self, executable: str = "xrandr", timeout: float = 5.0) -> None:
        self.executable = executable
        self.timeout = timeout

    async def query(self) -> Optional[str]:
        try:
            result = await run_tool([self.executable, "--query"], timeout=self.timeout)
        except ToolError as e:
            logger.warning(f"Display query unavailable: {e.message}")
            return None

        if not result.ok:
            logger.warning(f"xrandr failed with code {result.returncode}: {result.stderr.strip()}")
            return None

        return result.stdout


def parse_xrandr_output(output: str) -> list[ScreenInfo]:
    """Parse xrandr output into connected screens, in query order.

    Example lines::

        HDMI-1 connected 1920x1080+1920+0 (normal left inverted right x axis y axis) 527mm x 296mm
        eDP-1 connected primary 1920x1080+0+0 (normal left inverted right x axis y axis) 344mm x 194mm

    Disconnected outputs and connected outputs without an active mode are
    skipped.
    """
    screens = []
    for line in output.splitlines():
        match = XRANDR_SCREEN_PATTERN.match(line)
        if not match:
            continue

        name, primary, width, height, x_offset, y_offset = match.groups()
        screens.append(
            ScreenInfo(
                name=name,
                width=int(width),
                height=int(height),
                x_offset=int(x_offset),
                y_offset=int(y_offset),
                is_primary=bool(primary),
            )
        )
    return screens


def select_secondary_screen(screens: list[ScreenInfo]) -> Optional[ScreenInfo]:
    """Pick the output the kiosk browser should occupy.

    Policy, in order:
        1. the first non-primary screen in query order;
        2. a single screen means no secondary is available;
        3. several screens all flagged primary: the rightmost one (largest
           x offset, first encountered on ties).
    """
    for screen in screens:
        if not screen.is_primary:
            return screen

    if len(screens) <= 1:
        return None

    # sorted() is stable, so ties keep query order
    return sorted(screens, key=lambda s: s.x_offset, reverse=True)[0]


class ScreenMonitor:
    """Detects connected screens and selects the secondary one."""

    def __init__(self, display_query: Optional[DisplayQuery] = None) -> None:
        self.display_query = display_query or XrandrDisplayQuery()
        self.logger = logging.getLogger(f"{__name__}.ScreenMonitor")

    async def detect_screens(self) -> list[ScreenInfo]:
        """Return all connected screens; an empty list on any failure."""
        try:
            output = await self.display_query.query()
        except Exception:
            self.logger.exception("Display query raised unexpectedly")
            return []

        if output is None:
            return []
        return parse_xrandr_output(output)

    async def find_secondary_screen(self) -> Optional[ScreenInfo]:
        """Detect screens and return the secondary one, if any."""
        screens = await self.detect_screens()

        self.logger.verbose(f"Found {len(screens)} connected screen(s)")  # type: ignore[attr-defined]
        for screen in screens:
            self.logger.verbose(f"  - {screen.describe()}")  # type: ignore[attr-defined]

        secondary = select_secondary_screen(screens)
        if secondary is None:
            if len(screens) == 1:
                self.logger.debug("Only one screen detected, no secondary screen available")
        elif secondary.is_primary:
            self.logger.debug(f"No screen marked secondary, using rightmost: {secondary.name}")
        else:
            self.logger.debug(f"Using secondary screen: {secondary.name}")

        return secondary
