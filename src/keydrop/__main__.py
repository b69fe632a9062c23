"""
Entry point for running keydrop as a module.

    python -m keydrop            # serve
    python -m keydrop migrate
    python -m keydrop seed-keys initial_keys.txt
    python -m keydrop refill-pool
"""

import sys

from keydrop.cli import main

if __name__ == "__main__":
    sys.exit(main())
