#!/usr/bin/env python3
"""
Blob storage network load tester

Run this script to execute a test plan against a blob storage network.

Usage:
    python run.py run-test                    # Use config.json
    python run.py run-test -p plan.json       # Use a custom plan
    python run.py run-test -q                 # Quiet mode (summary only)
    python run.py run-test -j results.json    # Output JSON results
    python run.py run-test --github-actions   # GitHub Actions mode
    python run.py basic-test -c 10 -s 0.5 --download --delete
    python run.py query -b <bucket> -p foo/
    python run.py cleanup -b <bucket> -p foo/
"""

import sys
from blob_loader.cli import main

if __name__ == "__main__":
    sys.exit(main())
