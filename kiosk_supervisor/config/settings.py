"""Supervisor settings with environment variable and YAML file support."""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from ..utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "kiosk-supervisor" / "config.yaml"
DEFAULT_TARGET_URL = "https://theopenpresenter.com/o/hope-newcastle/latest/render"

_LOG_LEVELS = {"DEBUG", "VERBOSE", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _validate_level(value: str) -> str:
    level = value.upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"Invalid log level: {value}. Must be one of: {', '.join(sorted(_LOG_LEVELS))}")
    return level


class LoggingSettings(BaseModel):
    """Console and file logging configuration."""

    console_level: str = Field(
        default="INFO",
        description="Console log level: DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL",
    )
    console_colors: bool = Field(
        default=True, description="Enable colored console output (auto-detected)"
    )

    file_enabled: bool = Field(default=False, description="Enable file logging")
    file_level: str = Field(default="DEBUG", description="File log level")
    file_directory: Optional[str] = Field(
        default_factory=lambda: str(Path.home() / ".local" / "share" / "kiosk-supervisor" / "logs"),
        description="Directory for timestamped log files",
    )
    file_prefix: str = Field(default="kiosk-supervisor", description="Log file prefix")
    max_log_files: int = Field(default=5, ge=1, le=100, description="Log files to keep")

    third_party_level: str = Field(
        default="WARNING", description="Log level for third-party libraries"
    )

    @field_validator("console_level", "file_level", "third_party_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize and validate log level names."""
        return _validate_level(v)


class BrowserSettings(BaseModel):
    """Kiosk browser configuration."""

    url: str = Field(default=DEFAULT_TARGET_URL, description="Fixed URL shown in kiosk mode")
    executables: list[str] = Field(
        default_factory=lambda: ["firefox-esr", "firefox"],
        description="Browser executables to try, in order of preference",
    )
    profile_dir: Path = Field(
        default_factory=lambda: Path.home() / ".kiosk-supervisor" / "firefox-profile",
        description="Persistent kiosk browser profile directory",
    )
    launch_settle: float = Field(
        default=1.5, ge=0, le=30, description="Seconds to wait before checking for a launch crash"
    )
    shutdown_timeout: float = Field(
        default=5.0, ge=0.1, le=60, description="Seconds to wait for graceful browser exit"
    )
    force_x11: bool = Field(
        default=True, description="Run the browser through XWayland on Wayland sessions"
    )
    positioner: str = Field(
        default="auto", description="Window positioning strategy: auto, x11, wayland"
    )
    extra_args: list[str] = Field(
        default_factory=list, description="Additional browser command line flags"
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Browser URL cannot be empty")
        return v.strip()

    @field_validator("executables")
    @classmethod
    def validate_executables(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one browser executable must be listed")
        return v

    @field_validator("positioner")
    @classmethod
    def validate_positioner(cls, v: str) -> str:
        valid = {"auto", "x11", "wayland"}
        if v not in valid:
            raise ValueError(f"Invalid positioner: {v}. Must be one of: {', '.join(sorted(valid))}")
        return v


class WindowSettings(BaseModel):
    """Window positioning retry and delay configuration."""

    locate_attempts: int = Field(default=20, ge=1, le=120)
    locate_delay: float = Field(default=1.0, ge=0, le=10)
    pid_only_attempts: int = Field(
        default=5, ge=0, le=120, description="Leading locate attempts matching the browser pid only"
    )
    move_attempts: int = Field(default=3, ge=1, le=10)
    warmup_delay: float = Field(default=1.0, ge=0, le=30)
    startup_warmup_delay: float = Field(
        default=3.0, ge=0, le=60, description="Warm-up used while the window manager is booting"
    )
    settle_delay: float = Field(default=0.3, ge=0, le=5)
    verify_delay: float = Field(default=0.2, ge=0, le=5)


class WorkloadSettings(BaseModel):
    """Workload process supervision configuration."""

    auto_restart: bool = Field(default=True, description="Restart the workload when it exits")
    restart_delay: float = Field(default=5.0, ge=0, le=3600, description="Fixed restart backoff")
    graceful_timeout: float = Field(
        default=300.0, ge=1, le=3600, description="Ceiling for graceful stop on power loss"
    )


class ScreenSettings(BaseModel):
    """Secondary screen detection configuration."""

    enabled: bool = Field(default=True, description="Manage the browser on a secondary screen")
    poll_interval: float = Field(default=5.0, ge=0.1, le=600)


class PowerSettings(BaseModel):
    """Power monitoring and power-off configuration."""

    enabled: bool = Field(default=True, description="Shut the machine down on AC power loss")
    poll_interval: float = Field(default=2.0, ge=0.1, le=600)
    supply_root: Path = Field(default=Path("/sys/class/power_supply"))
    poweroff_command: list[str] = Field(
        default_factory=lambda: ["sudo", "-n", "shutdown", "now"],
        description="Privileged, non-interactive power-off command",
    )

    @field_validator("poweroff_command")
    @classmethod
    def validate_poweroff_command(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("Power-off command cannot be empty")
        return v


class SupervisorSettings(BaseSettings):
    """Application settings with environment variable support.

    Environment variables use the ``KIOSK_`` prefix and ``__`` for nesting,
    e.g. ``KIOSK_BROWSER__URL`` or ``KIOSK_WORKLOAD__RESTART_DELAY``.
    """

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    window: WindowSettings = Field(default_factory=WindowSettings)
    workload: WorkloadSettings = Field(default_factory=WorkloadSettings)
    screen: ScreenSettings = Field(default_factory=ScreenSettings)
    power: PowerSettings = Field(default_factory=PowerSettings)

    model_config = SettingsConfigDict(
        env_prefix="KIOSK_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Init kwargs carry the YAML file contents, which rank below the environment
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}", str(path)) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping", str(path))
    return data


def load_settings(config_path: Optional[Path] = None) -> SupervisorSettings:
    """Load settings from YAML file and environment.

    Args:
        config_path: Explicit config file; falls back to the default location
            when it exists

    Returns:
        Validated SupervisorSettings

    Raises:
        ConfigurationError: If the file is unreadable or the values are invalid
    """
    data: dict[str, Any] = {}
    if config_path is not None:
        data = _read_yaml(Path(config_path))
        logger.debug(f"Loaded configuration from {config_path}")
    elif DEFAULT_CONFIG_PATH.exists():
        data = _read_yaml(DEFAULT_CONFIG_PATH)
        logger.debug(f"Loaded configuration from {DEFAULT_CONFIG_PATH}")

    try:
        return SupervisorSettings(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}", str(config_path or "")) from e
