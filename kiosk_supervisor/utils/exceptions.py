"""Kiosk supervisor exceptions."""

from typing import Optional


class KioskSupervisorError(Exception):
    """Base exception for all kiosk supervisor errors.

    Attributes:
        message: Error description
        component: Component where error occurred (optional)
        error_code: Error code for categorization (optional)
    """

    def __init__(
        self, message: str, component: Optional[str] = None, error_code: Optional[str] = None
    ) -> None:
        """Initialize kiosk supervisor error.

        Args:
            message: Error description
            component: Component where error occurred
            error_code: Error code for categorization
        """
        super().__init__(message)
        self.message = message
        self.component = component
        self.error_code = error_code


class CommandParseError(KioskSupervisorError):
    """Raised when a workload command string yields no executable."""

    def __init__(self, command: str) -> None:
        super().__init__(
            f"Empty command provided: {command!r}", component="workload", error_code="EMPTY_COMMAND"
        )
        self.command = command


class WorkloadStartError(KioskSupervisorError):
    """Raised when the workload process cannot be spawned."""

    def __init__(self, message: str, argv: Optional[list[str]] = None) -> None:
        super().__init__(message, component="workload", error_code="SPAWN_FAILED")
        self.argv = argv or []


class ToolError(KioskSupervisorError):
    """Raised when an external tool is missing, times out or cannot be run.

    Attributes:
        tool: Name of the external tool
    """

    def __init__(self, message: str, tool: str, error_code: Optional[str] = None) -> None:
        super().__init__(message, component=tool, error_code=error_code)
        self.tool = tool


class ConfigurationError(KioskSupervisorError):
    """Raised when a configuration file cannot be loaded or validated."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message, component="config", error_code="INVALID_CONFIG")
        self.path = path
