"""
Entry point for running vbus_sync as a module.

Usage:
    python -m vbus_sync sync logger.local
    python -m vbus_sync convert logger.local
    python -m vbus_sync list logger.local
    python -m vbus_sync info
"""

from .cli import main

if __name__ == "__main__":
    main()
