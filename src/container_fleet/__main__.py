"""Entry point for ``python -m container_fleet``."""

import sys

from container_fleet.adapters.inbound.cli import main

if __name__ == "__main__":
    sys.exit(main())
