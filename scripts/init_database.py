#!/usr/bin/env python3
"""Database initialization script for the Daily Puzzle Engine."""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import logging
from puzzle_engine.config import settings
from puzzle_engine.database import CacheManager, PuzzleStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def init_store():
    """Create the puzzle tables and report how many puzzles exist."""
    logger.info(f"Initializing puzzle store at {settings.database_url}...")

    store = PuzzleStore()
    try:
        await store.create_all()

        if await store.health_check():
            logger.info("Puzzle store connection successful")
            count = await store.count_puzzles()
            logger.info(f"Published puzzles: {count}")
        else:
            logger.error("Puzzle store connection failed")
            return False

        return True

    except Exception as e:
        logger.error(f"Failed to initialize puzzle store: {e}")
        return False

    finally:
        await store.close()


async def init_cache():
    """Check the optional Redis cache."""
    if not settings.enable_response_cache:
        logger.info("Response cache disabled, skipping")
        return True

    logger.info("Initializing Cache...")
    cache = CacheManager()
    try:
        # Test connection
        if await cache.health_check():
            logger.info("Cache connection successful")
            stats = await cache.get_cache_stats()
            logger.info(f"Cache stats: {stats}")
        else:
            logger.warning("Cache connection failed; the engine will run without it")

        return True

    finally:
        await cache.close()


async def main():
    """Main initialization function."""
    logger.info("Starting database initialization...")

    # Initialize components
    components = [
        ("Puzzle store", init_store),
        ("Cache", init_cache),
    ]

    success_count = 0
    for name, init_func in components:
        if await init_func():
            success_count += 1
            logger.info(f"✓ {name} initialized successfully")
        else:
            logger.error(f"✗ {name} initialization failed")

    if success_count == len(components):
        logger.info("All components initialized successfully")
        return 0
    else:
        logger.error(f"{len(components) - success_count} components failed to initialize")
        return 1


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
