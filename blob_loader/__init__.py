"""
Blob storage network load tester.

Runs declarative test plans against a blob-storage network: each scenario
funds an account, resolves a bucket, uploads synthetic blobs and optionally
downloads and deletes them, while operation timings are aggregated.
"""

__version__ = "0.3.0"

from blob_loader.cli import main

__all__ = ["main", "__version__"]
