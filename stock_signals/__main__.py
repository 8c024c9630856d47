"""Allow `python -m stock_signals`."""

import sys

from .apps.runner import main

if __name__ == "__main__":
    sys.exit(main())
