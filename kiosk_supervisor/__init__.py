"""Kiosk supervisor - keeps a kiosk browser on the secondary screen, supervises a
workload process and powers the machine off gracefully when AC power is lost.
"""

__version__ = "1.0.0"
__author__ = "Kiosk Supervisor Team"
__description__ = "Kiosk supervisor with secondary-screen browser, workload restart and power-loss shutdown"

# Package metadata
__all__ = [
    "__author__",
    "__description__",
    "__version__",
]
