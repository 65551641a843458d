"""
Kiosk supervisor components.

Components:
    ScreenMonitor: Connected screen detection and secondary-screen selection
    WindowPositioner: Moves the browser window onto a screen (wmctrl or swaymsg)
    BrowserManager: Kiosk browser launch and close
    ManagedProcess: Supervised workload process with graceful stop
    PowerMonitor: AC power loss detection
    Supervisor: Orchestrates all of the above
"""

from .browser_manager import BrowserConfig, BrowserError, BrowserInstance, BrowserManager
from .power_monitor import PowerMonitor, PowerStatus, find_power_source, start_power_monitor
from .process_manager import ManagedProcess, parse_command, start_process
from .screen_monitor import ScreenInfo, ScreenMonitor, XrandrDisplayQuery, select_secondary_screen
from .supervisor import ShutdownReason, Supervisor, SupervisorState, SupervisorStatus
from .window_positioner import (
    SwayPositioner,
    WindowPositioner,
    WmctrlPositioner,
    create_positioner,
)

__all__ = [
    "BrowserConfig",
    "BrowserError",
    "BrowserInstance",
    "BrowserManager",
    "ManagedProcess",
    "PowerMonitor",
    "PowerStatus",
    "ScreenInfo",
    "ScreenMonitor",
    "ShutdownReason",
    "Supervisor",
    "SupervisorState",
    "SupervisorStatus",
    "SwayPositioner",
    "WindowPositioner",
    "WmctrlPositioner",
    "XrandrDisplayQuery",
    "create_positioner",
    "find_power_source",
    "parse_command",
    "select_secondary_screen",
    "start_power_monitor",
    "start_process",
]
