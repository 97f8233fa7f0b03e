"""Entry point for projtrack when run as a module.

This allows the package to be run with: python -m projtrack
"""

import sys

from projtrack.cli import main

if __name__ == "__main__":
    sys.exit(main())
