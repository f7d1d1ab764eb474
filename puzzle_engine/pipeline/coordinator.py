"""Daily cache coordinator: the single entry point for serving a date's puzzle."""

import asyncio
import re
import time
import uuid
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import ValidationError

from ..config import settings
from ..database.cache import CacheManager
from ..database.fingerprints import FingerprintStore
from ..database.store import PuzzleStore
from ..errors import (
    DateRangeError,
    MalformedDateInput,
    PersistenceConflict,
    StoreError,
    UniquenessConflict,
)
from ..models.puzzles import (
    DatePreview,
    FallbackTier,
    GenerationFailure,
    GenerationParams,
    GenerationResult,
    GenerationSuccess,
    PuzzleRecord,
)
from . import fallback
from .calibration import target_difficulty_for
from .clock import Clock, SystemClock
from .orchestrator import GenerationOrchestrator

logger = structlog.get_logger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date(value: Union[str, date]) -> date:
    """Parse a strict ``YYYY-MM-DD`` string into a calendar date."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise MalformedDateInput(f"Expected a YYYY-MM-DD date, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise MalformedDateInput(f"Not a calendar date: {value!r}") from e


class DailyPuzzleCoordinator:
    """Serves exactly one puzzle per calendar date.

    ``resolve`` never raises. Concurrent calls for the same date inside this
    process share one in-flight task; across processes the unique index on
    the scheduled date decides the winner and the losers re-read it.
    """

    def __init__(
        self,
        store: PuzzleStore,
        orchestrator: GenerationOrchestrator,
        fingerprints: FingerprintStore,
        cache_manager: Optional[CacheManager] = None,
        clock: Optional[Clock] = None,
        max_attempts: Optional[int] = None,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.fingerprints = fingerprints
        self.cache_manager = cache_manager
        self.clock = clock or SystemClock()
        self.max_attempts = max_attempts or settings.max_generation_attempts

        self._inflight: Dict[date, asyncio.Task] = {}

        self.stats = {
            "resolutions": 0,
            "coalesced_requests": 0,
            "cache_hits": 0,
            "store_hits": 0,
            "ai_published": 0,
            "deterministic_fallbacks": 0,
            "emergency_fallbacks": 0,
            "write_conflicts": 0,
            "average_resolution_time": 0.0,
        }

    # Public operations

    async def resolve(self, day: date) -> PuzzleRecord:
        """The puzzle for ``day``; generated, persisted or substituted as needed."""
        task = self._inflight.get(day)
        if task is None:
            task = asyncio.create_task(self._resolve_guarded(day))
            self._inflight[day] = task
            task.add_done_callback(lambda finished, d=day: self._forget(d, finished))
        else:
            self.stats["coalesced_requests"] += 1
            logger.debug("puzzle_resolution_coalesced", date=day.isoformat())

        # A cancelled caller must not cancel the shared task
        return await asyncio.shield(task)

    async def get_todays_puzzle(self) -> PuzzleRecord:
        return await self.resolve(self.clock.today())

    async def get_puzzle_for_date(self, date_string: str) -> PuzzleRecord:
        """Raises MalformedDateInput for anything that is not a real YYYY-MM-DD date."""
        return await self.resolve(parse_date(date_string))

    async def generate_next_puzzle(self) -> PuzzleRecord:
        """Cron entrypoint; idempotent for the current UTC date."""
        day = self.clock.today()
        logger.info("scheduled_generation_started", date=day.isoformat())
        record = await self.resolve(day)
        logger.info(
            "scheduled_generation_finished",
            date=day.isoformat(),
            puzzle_id=record.id,
            fallback_tier=record.fallback_tier,
        )
        return record

    async def preview_generation(self, params: GenerationParams) -> GenerationResult:
        """Run the orchestrator without persisting anything."""
        try:
            return await self.orchestrator.generate(params)
        except Exception as e:
            logger.error("preview_generation_failed", error=str(e))
            return GenerationFailure(reason=f"Preview failed: {e}")

    async def generate_date_range_preview(
        self,
        start: Union[str, date],
        end: Union[str, date],
        params: Optional[GenerationParams] = None,
    ) -> List[DatePreview]:
        """Preview one candidate per date in ``[start, end]``; nothing is persisted.

        The target difficulty comes from ``params`` when set explicitly,
        otherwise from the weekday schedule.
        """
        if start is None or end is None:
            raise DateRangeError("Both start and end dates are required")
        start_day = parse_date(start)
        end_day = parse_date(end)
        if start_day > end_day:
            raise DateRangeError(f"Start date {start_day} is after end date {end_day}")

        total_days = (end_day - start_day).days + 1
        if total_days > settings.max_preview_days:
            raise DateRangeError(
                f"Date range covers {total_days} days; the maximum is {settings.max_preview_days}"
            )

        params = params or GenerationParams()
        explicit = params.model_fields_set
        max_attempts = params.max_attempts if "max_attempts" in explicit else settings.preview_max_attempts

        previews: List[DatePreview] = []
        for offset in range(total_days):
            day = start_day + timedelta(days=offset)
            target = params.target_difficulty if "target_difficulty" in explicit else target_difficulty_for(day)
            day_params = params.model_copy(update={"target_difficulty": target, "max_attempts": max_attempts})

            result = await self.preview_generation(day_params)
            if isinstance(result, GenerationSuccess):
                previews.append(DatePreview(
                    scheduled_for=day,
                    target_difficulty=target,
                    puzzle=result.candidate,
                    calibrated_difficulty=result.calibration.calibrated_difficulty,
                    quality_score=result.quality.overall_score,
                    uniqueness_score=result.uniqueness_score,
                ))
            else:
                previews.append(DatePreview(scheduled_for=day, target_difficulty=target, error=result.reason))

        logger.info(
            "date_range_preview_finished",
            start=start_day.isoformat(),
            end=end_day.isoformat(),
            succeeded=sum(1 for preview in previews if preview.error is None),
            failed=sum(1 for preview in previews if preview.error is not None),
        )
        return previews

    def get_status(self) -> Dict[str, Any]:
        return {
            "coordinator": {
                "in_flight_dates": sorted(day.isoformat() for day in self._inflight),
                "statistics": dict(self.stats),
            },
            "orchestrator": self.orchestrator.get_status(),
            "configuration": {
                "max_generation_attempts": self.max_attempts,
                "provider_timeout_seconds": settings.provider_timeout_seconds,
                "store_timeout_seconds": settings.store_timeout_seconds,
                "quality_thresholds": settings.quality_thresholds.model_dump(),
                "response_cache": self.cache_manager is not None,
            },
        }

    # Resolution

    def _forget(self, day: date, task: asyncio.Task) -> None:
        if self._inflight.get(day) is task:
            del self._inflight[day]

    async def _resolve_guarded(self, day: date) -> PuzzleRecord:
        start_time = time.time()
        self.stats["resolutions"] += 1
        try:
            return await self._resolve(day)
        except Exception as e:
            logger.exception("puzzle_resolution_failed", date=day.isoformat(), error=str(e))
            return self._emergency(day, f"unexpected error: {e}")
        finally:
            elapsed = time.time() - start_time
            count = self.stats["resolutions"]
            current_avg = self.stats["average_resolution_time"]
            self.stats["average_resolution_time"] = ((current_avg * (count - 1)) + elapsed) / count

    async def _resolve(self, day: date) -> PuzzleRecord:
        cached = await self._read_cache(day)
        if cached is not None:
            self.stats["cache_hits"] += 1
            return cached

        try:
            existing = await self.store.get_by_date(day)
        except StoreError as e:
            return self._emergency(day, f"store lookup failed: {e}")

        if existing is not None:
            self.stats["store_hits"] += 1
            await self._write_cache(existing)
            return existing

        params = GenerationParams(target_difficulty=target_difficulty_for(day), max_attempts=self.max_attempts)
        logger.info("puzzle_generation_started", date=day.isoformat(), target_difficulty=params.target_difficulty)
        result = await self.orchestrator.generate(params)

        if isinstance(result, GenerationSuccess):
            record = await self._publish_generated(day, result)
            if record is not None:
                return record
            reason = "fingerprint registered by another date during commit"
        else:
            reason = result.reason
            if result.quota_exceeded:
                logger.warning(
                    "ai_quota_exceeded",
                    date=day.isoformat(),
                    reset=result.quota_reset_message,
                )

        return await self._publish_fallback(day, reason)

    async def _publish_generated(self, day: date, result: GenerationSuccess) -> Optional[PuzzleRecord]:
        """Persist an accepted candidate. Returns None when the chain should fall back."""
        record = result.to_record(uuid.uuid4().hex, day)
        try:
            async with self.store.unit_of_work(day) as session:
                self.store.add_record(
                    session,
                    record,
                    quality=result.quality,
                    profile=result.calibration.profile,
                    attempt_logs=result.attempt_logs,
                )
                self.fingerprints.persist(session, result.fingerprint, record.id)

        except PersistenceConflict:
            self.stats["write_conflicts"] += 1
            logger.info("puzzle_write_conflict", date=day.isoformat(), discarded_id=record.id)
            return await self._read_winner(day, "date conflict")
        except UniquenessConflict:
            self.stats["write_conflicts"] += 1
            logger.warning("fingerprint_conflict_on_commit", date=day.isoformat(), discarded_id=record.id)
            try:
                return await self.store.get_by_date(day)
            except StoreError as e:
                return self._emergency(day, f"store unavailable after fingerprint conflict: {e}")
        except StoreError as e:
            return self._emergency(day, f"store unavailable during persist: {e}")

        self.stats["ai_published"] += 1
        logger.info(
            "puzzle_published",
            date=day.isoformat(),
            puzzle_id=record.id,
            difficulty=record.difficulty,
            quality_score=record.quality_score,
            attempts=result.attempts_used,
        )
        await self._write_cache(record)
        return record

    async def _publish_fallback(self, day: date, reason: str) -> PuzzleRecord:
        record = fallback.deterministic(day, reason)
        try:
            async with self.store.unit_of_work(day) as session:
                self.store.add_record(session, record)

        except PersistenceConflict:
            self.stats["write_conflicts"] += 1
            logger.info("puzzle_write_conflict", date=day.isoformat(), discarded_id=record.id)
            return await self._read_winner(day, "fallback date conflict")
        except StoreError as e:
            return self._emergency(day, f"{reason}; fallback persist failed: {e}")

        self.stats["deterministic_fallbacks"] += 1
        logger.warning(
            "puzzle_degraded",
            date=day.isoformat(),
            puzzle_id=record.id,
            fallback_tier=FallbackTier.DETERMINISTIC.value,
            reason=reason,
        )
        await self._write_cache(record)
        return record

    async def _read_winner(self, day: date, context: str) -> PuzzleRecord:
        try:
            winner = await self.store.get_by_date(day)
        except StoreError as e:
            return self._emergency(day, f"{context}; re-read failed: {e}")
        if winner is None:
            return self._emergency(day, f"{context}; winning record not found")
        await self._write_cache(winner)
        return winner

    def _emergency(self, day: date, reason: str) -> PuzzleRecord:
        self.stats["emergency_fallbacks"] += 1
        logger.error(
            "puzzle_degraded",
            date=day.isoformat(),
            fallback_tier=FallbackTier.EMERGENCY.value,
            reason=reason,
        )
        return fallback.emergency(day, reason)

    # Response cache

    async def _read_cache(self, day: date) -> Optional[PuzzleRecord]:
        if self.cache_manager is None:
            return None
        data = await self.cache_manager.get_cached_puzzle(day)
        if not data:
            return None
        try:
            return PuzzleRecord.model_validate(data)
        except ValidationError as e:
            logger.warning("cached_puzzle_invalid", date=day.isoformat(), error=str(e))
            return None

    async def _write_cache(self, record: PuzzleRecord) -> None:
        if self.cache_manager is None or record.fallback_tier == FallbackTier.EMERGENCY.value:
            return
        await self.cache_manager.cache_puzzle(record.scheduled_for, record.model_dump(mode="json"))


def create_coordinator(
    store: PuzzleStore,
    cache_manager: Optional[CacheManager] = None,
    clock: Optional[Clock] = None,
) -> DailyPuzzleCoordinator:
    """Wire agents, quality gate and orchestrator from settings."""
    from ..agents import CreatorAgent, JudgeAgent, SolverAgent, TricksterAgent
    from .quality_gate import QualityGate

    fingerprints = FingerprintStore(store)
    orchestrator = GenerationOrchestrator(
        creator=CreatorAgent(cache_manager=cache_manager),
        quality_gate=QualityGate(
            judge=JudgeAgent(cache_manager=cache_manager),
            trickster=TricksterAgent(cache_manager=cache_manager),
        ),
        fingerprints=fingerprints,
        solver=SolverAgent(cache_manager=cache_manager),
    )
    return DailyPuzzleCoordinator(
        store=store,
        orchestrator=orchestrator,
        fingerprints=fingerprints,
        cache_manager=cache_manager,
        clock=clock,
    )
