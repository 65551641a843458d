"""Configuration package."""

from .settings import (
    BrowserSettings,
    LoggingSettings,
    PowerSettings,
    ScreenSettings,
    SupervisorSettings,
    WindowSettings,
    WorkloadSettings,
    load_settings,
)

__all__ = [
    "BrowserSettings",
    "LoggingSettings",
    "PowerSettings",
    "ScreenSettings",
    "SupervisorSettings",
    "WindowSettings",
    "WorkloadSettings",
    "load_settings",
]
