"""Entry point for window-restore-daemon when run as a module."""

import sys

from .daemon import main

if __name__ == "__main__":
    sys.exit(main())
