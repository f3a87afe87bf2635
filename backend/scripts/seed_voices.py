#!/usr/bin/env python3
"""
Seed the voice catalog.

Usage:
    python -m backend.scripts.seed_voices [--no-cache-clear]

Replaces every row in the voices table with the built-in neural voice list
and clears cached "voices:*" responses.
"""
import argparse
import sys

from backend.core.config import settings
from backend.core.database import create_all_tables
from backend.core.logging import configure_logging
from backend.features.cache.service import ResponseCache
from backend.features.voices.service import seed_voices


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Seed the Vidify voice catalog")
    parser.add_argument("--no-cache-clear", action="store_true", help="Leave cached voice responses in place")
    args = parser.parse_args(argv)

    configure_logging(settings.ENV)
    create_all_tables()
    cache = None if args.no_cache_clear else ResponseCache()
    count = seed_voices(cache=cache)
    print(f"Seeded {count} voices")
    return 0


if __name__ == "__main__":
    sys.exit(main())
