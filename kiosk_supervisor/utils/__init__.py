"""Utility functions and helpers package."""

from .exceptions import (
    CommandParseError,
    ConfigurationError,
    KioskSupervisorError,
    ToolError,
    WorkloadStartError,
)
from .logging import apply_command_line_overrides, get_logger, setup_logging
from .process import find_executable, request_poweroff, run_tool, signal_process

__all__ = [
    "CommandParseError",
    "ConfigurationError",
    "KioskSupervisorError",
    "ToolError",
    "WorkloadStartError",
    "apply_command_line_overrides",
    "find_executable",
    "get_logger",
    "request_poweroff",
    "run_tool",
    "setup_logging",
    "signal_process",
]
