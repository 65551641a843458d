"""
Power monitoring - detects when AC power is disconnected.

Linux exposes power supplies under ``/sys/class/power_supply``. Mains
adapters (``AC``, ``AC0``, ``ACAD``, ``ADP1``...) carry an ``online`` flag
(1 = plugged in, 0 = on battery); on machines without one the battery
``status`` file (Charging/Discharging/Full) tells the same story.

The monitor is edge-triggered: the callback fires once per AC -> battery
transition, never for a steady battery level.
"""

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)

POWER_SUPPLY_PATH = Path("/sys/class/power_supply")
AC_ADAPTER_PREFIXES = ("AC", "ACAD", "ADP")
BATTERY_PREFIXES = ("BAT",)


class PowerStatus(Enum):
    """Sampled power state."""

    AC = "ac"
    BATTERY = "battery"
    UNKNOWN = "unknown"


class PowerSource(ABC):
    """A sysfs file that reveals whether the machine runs on mains power."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self) -> PowerStatus:
        try:
            value = self.path.read_text(encoding="utf-8").strip()
        except OSError:
            return PowerStatus.UNKNOWN
        return self.interpret(value)

    @abstractmethod
    def interpret(self, value: str) -> PowerStatus: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.path)!r})"


class OnlineFlagSource(PowerSource):
    """Adapter ``online`` flag: ``1`` on mains, ``0`` on battery."""

    def interpret(self, value: str) -> PowerStatus:
        if value == "1":
            return PowerStatus.AC
        if value == "0":
            return PowerStatus.BATTERY
        return PowerStatus.UNKNOWN


class BatteryStatusSource(PowerSource):
    """Battery ``status`` text: discharging means the mains are gone."""

    def interpret(self, value: str) -> PowerStatus:
        status = value.lower()
        if status == "discharging":
            return PowerStatus.BATTERY
        if status in ("charging", "full", "not charging"):
            return PowerStatus.AC
        return PowerStatus.UNKNOWN


def find_power_source(root: Union[str, Path] = POWER_SUPPLY_PATH) -> Optional[PowerSource]:
    """Discover the power-state file for this machine.

    Preference: a known AC adapter with an ``online`` flag, then any supply
    with an ``online`` flag, then a battery ``status`` file.

    Args:
        root: Power supply class directory

    Returns:
        The power source, or None if nothing usable exists
    """
    root = Path(root)
    try:
        entries = sorted(p for p in root.iterdir())
    except OSError:
        return None

    for entry in entries:
        if entry.name.upper().startswith(AC_ADAPTER_PREFIXES) and (entry / "online").is_file():
            return OnlineFlagSource(entry / "online")

    for entry in entries:
        if (entry / "online").is_file():
            return OnlineFlagSource(entry / "online")

    for entry in entries:
        if entry.name.upper().startswith(BATTERY_PREFIXES) and (entry / "status").is_file():
            return BatteryStatusSource(entry / "status")

    return None


def is_disconnect(previous: PowerStatus, current: PowerStatus) -> bool:
    """Whether a pair of samples is the AC -> battery edge."""
    return previous is PowerStatus.AC and current is PowerStatus.BATTERY


class PowerMonitor:
    """Polls a power source and reports the AC -> battery edge.

    Example:
        >>> monitor = PowerMonitor(find_power_source(), 2.0, on_disconnect=handler)
        >>> monitor.start()
        >>> monitor.get_status()
        <PowerStatus.AC: 'ac'>
        >>> monitor.stop()
    """

    def __init__(
        self,
        source: Optional[PowerSource],
        poll_interval: float = 2.0,
        on_disconnect: Optional[Callable[[], None]] = None,
    ) -> None:
        self.source = source
        self.poll_interval = poll_interval
        self.on_disconnect = on_disconnect
        self.logger = logging.getLogger(f"{__name__}.PowerMonitor")

        self._status = PowerStatus.UNKNOWN
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._running = False

    @property
    def enabled(self) -> bool:
        return self.source is not None

    def get_status(self) -> PowerStatus:
        return self._status

    def start(self) -> None:
        """Sample the initial status and begin polling.

        Without a power source this is a no-op: status stays UNKNOWN and the
        callback is never called.
        """
        if self.source is None:
            self.logger.warning("No AC adapter found, power monitoring disabled")
            return
        if self._running:
            return

        self.logger.info(f"Found power source at: {self.source.path}")
        self._status = self.source.read()
        self.logger.info(f"Initial power status: {self._status.value}")

        self._running = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self._poll_loop())

    def poll_once(self) -> PowerStatus:
        """Take one sample and fire the callback on an AC -> battery edge."""
        if self.source is None:
            return self._status

        previous = self._status
        current = self.source.read()
        self._status = current

        if current is not previous:
            self.logger.debug(f"Power status changed: {previous.value} -> {current.value}")

        if is_disconnect(previous, current):
            self.logger.warning("Power disconnected! Triggering shutdown sequence...")
            if self.on_disconnect is not None:
                try:
                    self.on_disconnect()
                except Exception:
                    self.logger.exception("Power disconnect handler failed")

        return current

    def stop(self) -> None:
        """Halt further polling. Safe to call more than once."""
        if not self._running:
            return
        self._running = False
        self._stop_event.set()
        self.logger.info("Power monitor stopped")

    async def wait_stopped(self) -> None:
        """Wait for the polling task to finish after stop()."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _poll_loop(self) -> None:
        while self._running:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            if not self._running:
                break
            self.poll_once()


def start_power_monitor(
    poll_interval: float,
    on_disconnect: Callable[[], None],
    root: Union[str, Path] = POWER_SUPPLY_PATH,
) -> PowerMonitor:
    """Discover the power source and start monitoring it.

    Must be called from within a running event loop.
    """
    monitor = PowerMonitor(find_power_source(root), poll_interval, on_disconnect)
    monitor.start()
    return monitor
