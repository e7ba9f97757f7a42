"""Entry point for running parcel_atlas as a module."""

import sys

from parcel_atlas.cli import main

if __name__ == "__main__":
    sys.exit(main())
