"""CLI entry point: python main.py deploy v2"""

import sys

from bluegreen.cli import main

if __name__ == "__main__":
    sys.exit(main())
