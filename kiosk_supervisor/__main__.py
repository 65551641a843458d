"""Entry point for `python -m kiosk_supervisor` command.

Delegates to the CLI module; the process exit code is the value returned by
``main_entry``.
"""

import asyncio
import sys

from kiosk_supervisor.cli import main_entry


def main() -> None:
    """Entry point for python -m kiosk_supervisor and the console script."""
    try:
        exit_code = asyncio.run(main_entry())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("Operation cancelled by user", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
