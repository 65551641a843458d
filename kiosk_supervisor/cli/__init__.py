"""Command-line interface for the kiosk supervisor."""

import logging
import sys
from argparse import Namespace
from typing import Optional, Sequence

from ..config.settings import SupervisorSettings, load_settings
from ..kiosk.supervisor import Supervisor
from ..utils.exceptions import ConfigurationError, KioskSupervisorError
from ..utils.logging import apply_command_line_overrides, setup_logging
from .parser import USAGE_EXAMPLE, create_parser, parse_arguments

logger = logging.getLogger(__name__)


def apply_supervisor_overrides(settings: SupervisorSettings, args: Namespace) -> SupervisorSettings:
    """Apply non-logging command-line overrides to settings, in place."""
    if getattr(args, "url", None):
        settings.browser.url = args.url

    if getattr(args, "positioner", None):
        settings.browser.positioner = args.positioner

    if getattr(args, "no_screen_monitor", False):
        settings.screen.enabled = False

    if getattr(args, "no_restart", False):
        settings.workload.auto_restart = False

    if getattr(args, "restart_delay", None) is not None:
        settings.workload.restart_delay = max(0.0, args.restart_delay)

    if getattr(args, "no_power_monitor", False):
        settings.power.enabled = False

    return settings


async def main_entry(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point: arguments -> settings -> supervisor.

    Args:
        argv: Command line without the program name (defaults to sys.argv[1:])

    Returns:
        Exit code for the process
    """
    parser = create_parser()
    args = parse_arguments(argv, parser)

    if not args.command:
        parser.print_usage(sys.stderr)
        print("Error: No command specified", file=sys.stderr)
        print(USAGE_EXAMPLE, file=sys.stderr)
        return 1

    try:
        settings = load_settings(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 1

    apply_command_line_overrides(settings, args)
    apply_supervisor_overrides(settings, args)
    setup_logging(settings.logging)

    try:
        supervisor = Supervisor(args.command, settings)
        return await supervisor.run()
    except KioskSupervisorError as e:
        logger.error(e.message)
        return 1
    except Exception:
        logger.exception("Fatal error")
        return 1


__all__ = [
    "apply_supervisor_overrides",
    "main_entry",
]
