"""Allows running the command line with `python -m strongbox`."""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
