#!/usr/bin/env python3
"""Cron script: make sure today's (or a given date's) puzzle exists.

Usage:
    python scripts/generate_daily_puzzle.py
    python scripts/generate_daily_puzzle.py --date 2024-03-10
    python scripts/generate_daily_puzzle.py --preview --difficulty 7
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import argparse
import asyncio
import logging
from puzzle_engine.config import settings
from puzzle_engine.database import CacheManager, PuzzleStore
from puzzle_engine.errors import MalformedDateInput, TotalGenerationFailure
from puzzle_engine.models import GenerationParams
from puzzle_engine.pipeline.coordinator import create_coordinator

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate the daily rebus puzzle")
    parser.add_argument("--date", help="YYYY-MM-DD; defaults to today (UTC)")
    parser.add_argument("--preview", action="store_true", help="Generate a candidate without saving it")
    parser.add_argument("--difficulty", type=int, default=5, help="Target difficulty for --preview")
    return parser.parse_args(argv)


async def run(args) -> int:
    store = PuzzleStore()
    cache = CacheManager() if settings.enable_response_cache else None
    if cache is not None and not await cache.health_check():
        logger.warning("Redis unavailable, continuing without response cache")
        await cache.close()
        cache = None

    try:
        await store.create_all()
        coordinator = create_coordinator(store, cache_manager=cache)

        if args.preview:
            params = GenerationParams(target_difficulty=args.difficulty)
            try:
                success = await coordinator.orchestrator.generate_or_raise(params)
            except TotalGenerationFailure as e:
                logger.error(f"Preview failed after {e.attempts} attempt(s): {e.reason}")
                return 1
            candidate = success.candidate
            logger.info(
                f"Preview: {candidate.content} = {candidate.answer} "
                f"(calibrated difficulty {success.calibration.calibrated_difficulty}, "
                f"quality {success.quality.overall_score:.1f})"
            )
            return 0

        if args.date:
            try:
                record = await coordinator.get_puzzle_for_date(args.date)
            except MalformedDateInput as e:
                logger.error(str(e))
                return 2
        else:
            record = await coordinator.generate_next_puzzle()

        logger.info(
            f"Puzzle for {record.scheduled_for}: {record.id} "
            f"(tier {record.fallback_tier}, difficulty {record.difficulty})"
        )
        # Degraded output still counts as served; only the emergency tier signals an outage
        return 1 if record.fallback_tier == "emergency" else 0

    finally:
        if cache is not None:
            await cache.close()
        await store.close()


def main(argv=None) -> int:
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
