"""Logging configuration and setup utilities."""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from ..config.settings import LoggingSettings, SupervisorSettings

ROOT_LOGGER_NAME = "kiosk_supervisor"

# Custom log level between INFO(20) and DEBUG(10)
VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")


def verbose(self: logging.Logger, message: Any, *args: Any, **kwargs: Any) -> None:
    """Add verbose() method to Logger class for detailed diagnostic logging.

    The VERBOSE level (15) sits between INFO and DEBUG. The supervisor uses it
    for per-tick screen listings and tool invocations that are too chatty for
    INFO on a kiosk that runs for weeks.

    Args:
        self: Logger instance (automatically provided)
        message: Log message or format string
        *args: Arguments for string formatting
        **kwargs: Additional keyword arguments for logging
    """
    if self.isEnabledFor(VERBOSE):
        self._log(VERBOSE, message, args, **kwargs)


logging.Logger.verbose = verbose  # type: ignore[attr-defined]


def get_log_level(level_name: str) -> int:
    """Get numeric log level from string name, including custom VERBOSE level.

    Args:
        level_name: Log level name (DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Numeric log level value

    Raises:
        AttributeError: If level name is not recognized
    """
    level_name = level_name.upper()
    if level_name == "VERBOSE":
        return VERBOSE
    level: int = getattr(logging, level_name)
    return level


class AutoColoredFormatter(logging.Formatter):
    """Formatter that auto-detects terminal color support."""

    COLORS = {
        "ERROR": {"truecolor": "\033[91m", "basic": "\033[31m", "none": ""},
        "INFO": {"truecolor": "\033[94m", "basic": "\033[34m", "none": ""},
        "VERBOSE": {"truecolor": "\033[92m", "basic": "\033[32m", "none": ""},
        "WARNING": {"truecolor": "\033[93m", "basic": "\033[33m", "none": ""},
        "DEBUG": {"truecolor": "\033[95m", "basic": "\033[35m", "none": ""},
        "CRITICAL": {"truecolor": "\033[91m\033[1m", "basic": "\033[31m\033[1m", "none": ""},
        "RESET": {"truecolor": "\033[0m", "basic": "\033[0m", "none": ""},
    }

    def __init__(self, *args: Any, enable_colors: bool = True, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.enable_colors = enable_colors
        self.color_mode = self._detect_color_support() if enable_colors else "none"

    def _detect_color_support(self) -> str:
        """Auto-detect terminal color capabilities."""
        # systemd journal and log files are not TTYs
        if not hasattr(sys.stderr, "isatty") or not sys.stderr.isatty():
            return "none"

        term = os.environ.get("TERM", "").lower()
        colorterm = os.environ.get("COLORTERM", "").lower()

        if term == "dumb":
            return "none"

        if colorterm in ("truecolor", "24bit") or "256color" in term:
            return "truecolor"

        if term and "color" in term:
            return "basic"

        return "none"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors if supported."""
        formatted = super().format(record)

        if self.color_mode == "none":
            return formatted

        level_name = record.levelname
        if level_name in self.COLORS:
            color_start = self.COLORS[level_name][self.color_mode]
            color_end = self.COLORS["RESET"][self.color_mode]
            colored_level = f"{color_start}{level_name}{color_end}"
            formatted = formatted.replace(level_name, colored_level, 1)

        return formatted


class TimestampedFileHandler(logging.FileHandler):
    """Handler that creates one timestamped log file per supervisor run."""

    def __init__(
        self, log_dir: Union[str, Path], prefix: str = "kiosk-supervisor", max_files: int = 5
    ) -> None:
        self.log_dir = Path(log_dir)
        self.prefix = prefix
        self.max_files = max_files

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = self.log_dir / f"{prefix}_{timestamp}.log"

        self.log_dir.mkdir(parents=True, exist_ok=True)
        super().__init__(str(log_path), encoding="utf-8")

        self.cleanup_old_files()

    def cleanup_old_files(self) -> None:
        """Remove log files beyond max_files limit, keeping most recent."""
        log_files = list(self.log_dir.glob(f"{self.prefix}_*.log"))

        if len(log_files) > self.max_files:
            log_files.sort(key=lambda f: f.stat().st_mtime, reverse=True)
            for old_file in log_files[self.max_files :]:
                try:
                    old_file.unlink()
                except OSError:
                    pass  # Another run may have removed it already


def setup_logging(logging_settings: "LoggingSettings") -> logging.Logger:
    """Set up supervisor logging with console and optional file output.

    Args:
        logging_settings: Logging section of the supervisor settings

    Returns:
        Configured package root logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Handlers filter
    logger.handlers.clear()
    logger.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(get_log_level(logging_settings.console_level))
    console_handler.setFormatter(
        AutoColoredFormatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
            enable_colors=logging_settings.console_colors,
        )
    )
    logger.addHandler(console_handler)

    if logging_settings.file_enabled and logging_settings.file_directory:
        file_handler = TimestampedFileHandler(
            log_dir=logging_settings.file_directory,
            prefix=logging_settings.file_prefix,
            max_files=logging_settings.max_log_files,
        )
        file_handler.setLevel(get_log_level(logging_settings.file_level))
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)
        logger.info(f"Logging to file: {file_handler.baseFilename}")

    logging.getLogger("asyncio").setLevel(get_log_level(logging_settings.third_party_level))

    logger.debug(f"Logging initialized at {logging_settings.console_level} level")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger namespaced under the supervisor root logger.

    Args:
        name: Logger name relative to the package root

    Returns:
        Logger instance
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def apply_command_line_overrides(
    settings: "SupervisorSettings", args: Any
) -> "SupervisorSettings":
    """Apply command-line argument overrides to logging settings.

    Priority: Command-line > Environment > YAML > Defaults. Modifies the
    settings object in place and returns it for convenience.

    Args:
        settings: Current settings object to modify
        args: Parsed command-line arguments from argparse

    Returns:
        Settings object with command-line overrides applied
    """
    if getattr(args, "log_level", None):
        settings.logging.console_level = args.log_level
        settings.logging.file_level = args.log_level

    if getattr(args, "verbose", False):
        settings.logging.console_level = "VERBOSE"
        settings.logging.file_level = "VERBOSE"

    if getattr(args, "quiet", False):
        settings.logging.console_level = "ERROR"

    if getattr(args, "log_dir", None):
        settings.logging.file_enabled = True
        settings.logging.file_directory = str(args.log_dir)

    if getattr(args, "no_log_colors", False):
        settings.logging.console_colors = False

    return settings
