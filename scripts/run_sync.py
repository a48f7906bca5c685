import os
import sys

# Ensure src is on path when running as script
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from togglsync.cli import main

# One-shot sync for cron: python scripts/run_sync.py [--from 2025-08-01 --to 2025-08-15]
if __name__ == "__main__":
    sys.exit(main(["--once", *sys.argv[1:]]))
