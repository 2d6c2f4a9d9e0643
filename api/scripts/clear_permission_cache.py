#!/usr/bin/env python3
"""
Permission Cache Reset Script

Drops cached permission sets so the next request recomputes them from the
database. Useful after editing roles or grants directly in SQL.

Usage (from within the API container):
    python /workspace/api/scripts/clear_permission_cache.py

Options:
    --user-id ID  Only forget the cached permissions of one user
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Add the app to the path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.cache import get_redis_client
from app.permissions import bump_cache_version, clear_user_cache, get_cache_version


def main() -> int:
    parser = argparse.ArgumentParser(description="Clear cached user permissions")
    parser.add_argument("--user-id", type=int, help="Only clear the cache of this user")
    args = parser.parse_args()

    if get_redis_client() is None:
        logger.error("Redis is unavailable, nothing to clear")
        return 1

    if args.user_id is not None:
        clear_user_cache(args.user_id)
        logger.info(f"Cleared cached permissions for user {args.user_id} (version {get_cache_version()})")
        return 0

    version = bump_cache_version()
    if version is None:
        logger.error("Could not bump the permission cache version")
        return 1
    logger.info(f"All cached permissions invalidated, now at version {version}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
