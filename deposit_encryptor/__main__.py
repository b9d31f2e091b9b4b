"""
Main entry point for running deposit_encryptor as a module.

Usage:
    python -m deposit_encryptor <command> [options]
"""

from .cli import main
import sys

if __name__ == "__main__":
    sys.exit(main())
