"""Entry point for ``python -m indopayroll``."""

import sys

from indopayroll.cli import main

if __name__ == "__main__":
    sys.exit(main())
