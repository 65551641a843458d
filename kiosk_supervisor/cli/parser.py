"""Command-line argument parsing for the kiosk supervisor.

The workload command is everything after ``--``, or, without a ``--``, every
word from the first positional argument onwards. The words are joined with
single spaces into one command string, which is split again (honoring
quotes) when the workload is spawned.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .. import __version__

logger = logging.getLogger(__name__)

USAGE_EXAMPLE = 'Example: kiosk-supervisor -- "node server.js"'


def create_parser() -> argparse.ArgumentParser:
    """Create the command line argument parser.

    Returns:
        argparse.ArgumentParser: Configured parser

    Example:
        >>> parser = create_parser()
        >>> args = parser.parse_args(["--no-power-monitor", "node", "server.js"])
        >>> args.command
        ['node', 'server.js']
    """
    parser = argparse.ArgumentParser(
        prog="kiosk-supervisor",
        usage='%(prog)s [options] -- "command to run"',
        description="Kiosk supervisor - browser on the secondary screen, workload auto-restart "
        "and graceful shutdown on AC power loss",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s -- "node server.js"                 # Supervise a node server
  %(prog)s --no-power-monitor -- ./run.sh      # Without power-loss shutdown
  %(prog)s --url https://example.com -- app    # Show a different page
  %(prog)s --positioner wayland -- app         # Position with swaymsg
        """,
    )

    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}", help="Show version information"
    )

    parser.add_argument(
        "--config",
        type=Path,
        metavar="PATH",
        help="YAML configuration file (default: ~/.config/kiosk-supervisor/config.yaml)",
    )

    # Kiosk browser arguments
    browser_group = parser.add_argument_group("browser", "Kiosk browser options")

    browser_group.add_argument("--url", help="Page to show on the secondary screen")

    browser_group.add_argument(
        "--positioner",
        choices=["auto", "x11", "wayland"],
        help="Window positioning strategy (default: auto)",
    )

    browser_group.add_argument(
        "--no-screen-monitor",
        action="store_true",
        help="Do not manage a browser on the secondary screen",
    )

    # Workload arguments
    workload_group = parser.add_argument_group("workload", "Workload supervision options")

    workload_group.add_argument(
        "--no-restart",
        action="store_true",
        help="Exit with the workload's exit code instead of restarting it",
    )

    workload_group.add_argument(
        "--restart-delay",
        type=float,
        metavar="SECONDS",
        help="Seconds to wait before restarting the workload (default: 5)",
    )

    workload_group.add_argument(
        "--no-power-monitor",
        action="store_true",
        help="Do not shut the machine down when AC power is lost",
    )

    # Logging arguments
    logging_group = parser.add_argument_group("logging", "Logging options")

    logging_group.add_argument(
        "--log-level",
        choices=["DEBUG", "VERBOSE", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Set log level for console and file output",
    )

    logging_group.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging (VERBOSE level)"
    )

    logging_group.add_argument(
        "--quiet", "-q", action="store_true", help="Only log errors to the console"
    )

    logging_group.add_argument(
        "--log-dir", type=Path, metavar="DIR", help="Write timestamped log files to this directory"
    )

    logging_group.add_argument(
        "--no-log-colors", action="store_true", help="Disable colored console output"
    )

    parser.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        help="Workload command (preferably after --)",
    )

    return parser


def parse_arguments(
    argv: Optional[Sequence[str]] = None, parser: Optional[argparse.ArgumentParser] = None
) -> argparse.Namespace:
    """Parse arguments, splitting off the workload command first.

    Options must precede the command. After parsing, ``args.command`` holds
    the joined command string (possibly empty).

    Args:
        argv: Arguments without the program name (defaults to sys.argv[1:])
        parser: Parser to use (defaults to create_parser())
    """
    parser = parser or create_parser()
    arguments = list(sys.argv[1:] if argv is None else argv)

    if "--" in arguments:
        split = arguments.index("--")
        args = parser.parse_args(arguments[:split])
        args.command = extract_workload_command(arguments[split + 1 :])
    else:
        args = parser.parse_args(arguments)
        args.command = extract_workload_command(args.command)

    return args


def extract_workload_command(words: Sequence[str]) -> str:
    """Join command words into the workload command string.

    Example:
        >>> extract_workload_command(["node", "server.js", "--port", "3000"])
        'node server.js --port 3000'
    """
    return " ".join(words).strip()
