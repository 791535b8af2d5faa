"""Entry point for running fieldguide_engine as a module.

Usage:
    python -m fieldguide_engine <command> [options]
"""
from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
