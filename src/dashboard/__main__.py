"""Entry point for running the console dashboard."""

import sys

from .console import main

if __name__ == "__main__":
    sys.exit(main())
