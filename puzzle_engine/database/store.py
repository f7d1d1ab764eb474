"""Async SQLAlchemy store for published puzzles."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, timezone
from typing import AsyncIterator, List, Optional

from sqlalchemy import event, func, select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..config import settings
from ..errors import PersistenceConflict, StoreError, StoreUnavailableError, UniquenessConflict
from ..models.puzzles import (
    DifficultyProfile,
    Fingerprint,
    GenerationAttemptLog,
    PuzzleRecord,
    QualityMetrics,
)
from .schema import (
    Base,
    DifficultyCalibrationRow,
    FingerprintRow,
    GenerationLogRow,
    PuzzleRow,
    QualityMetricsRow,
)

logger = logging.getLogger(__name__)


def _is_fingerprint_violation(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return "puzzle_fingerprints" in message and "foreign key" not in message


def row_to_record(row: PuzzleRow) -> PuzzleRecord:
    created_at = row.created_at
    # SQLite drops tzinfo on the way back
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return PuzzleRecord(
        id=row.id,
        content=row.content,
        answer=row.answer,
        explanation=row.explanation,
        difficulty=row.difficulty,
        hints=list(row.hints or []),
        category=row.category,
        puzzle_type=row.puzzle_type,
        scheduled_for=row.scheduled_for,
        generation_method=row.generation_method,
        ai_model=row.ai_model,
        quality_score=row.quality_score,
        uniqueness_score=row.uniqueness_score,
        ai_generated=row.ai_generated,
        fallback_tier=row.fallback_tier,
        fallback_reason=row.fallback_reason,
        created_at=created_at,
    )


class PuzzleStore:
    """Persistent store keyed by scheduled date.

    Every public coroutine is bounded by ``timeout`` seconds and reports
    connectivity problems as StoreUnavailableError.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[AsyncEngine] = None,
        timeout: Optional[float] = None,
        echo: Optional[bool] = None,
    ):
        self.database_url = database_url or settings.database_url
        self.engine = engine or create_async_engine(
            self.database_url,
            echo=settings.database_echo if echo is None else echo,
            pool_pre_ping=True,
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self.timeout = timeout or settings.store_timeout_seconds
        if self.engine.dialect.name == "sqlite":
            self._configure_sqlite(self.engine)

    @staticmethod
    def _configure_sqlite(engine: AsyncEngine) -> None:
        """Enforce foreign keys, which SQLite leaves off per connection."""

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    async def create_all(self) -> None:
        """Create tables if they don't exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Puzzle store schema ready")

    async def _bounded(self, coro, operation: str):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailableError(f"Store {operation} timed out after {self.timeout}s") from e
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailableError(f"Store {operation} failed: {e}") from e

    async def get_by_date(self, scheduled_for: date) -> Optional[PuzzleRecord]:
        """Return the record published for a date, if any."""

        async def _query():
            async with self.session_factory() as session:
                result = await session.execute(
                    select(PuzzleRow).where(PuzzleRow.scheduled_for == scheduled_for)
                )
                row = result.scalar_one_or_none()
                return row_to_record(row) if row else None

        return await self._bounded(_query(), "lookup")

    async def fingerprint_exists(self, fingerprint_hash: str) -> bool:
        async def _query():
            async with self.session_factory() as session:
                result = await session.execute(
                    select(FingerprintRow.id).where(FingerprintRow.fingerprint == fingerprint_hash).limit(1)
                )
                return result.first() is not None

        return await self._bounded(_query(), "fingerprint lookup")

    async def recent_fingerprints(self, limit: int) -> List[Fingerprint]:
        async def _query():
            async with self.session_factory() as session:
                result = await session.execute(
                    select(FingerprintRow).order_by(FingerprintRow.id.desc()).limit(limit)
                )
                return [
                    Fingerprint(
                        fingerprint_hash=row.fingerprint,
                        answer_normalized=row.answer_normalized,
                        symbol_signature=row.symbol_signature,
                        pattern_type=row.pattern_type,
                    )
                    for row in result.scalars()
                ]

        if limit <= 0:
            return []
        return await self._bounded(_query(), "history lookup")

    async def count_puzzles(self) -> int:
        async def _query():
            async with self.session_factory() as session:
                result = await session.execute(select(func.count()).select_from(PuzzleRow))
                return int(result.scalar_one())

        return await self._bounded(_query(), "count")

    @asynccontextmanager
    async def unit_of_work(self, scheduled_for: date) -> AsyncIterator[AsyncSession]:
        """Transaction for publishing one date's puzzle.

        Everything staged on the yielded session commits together. A unique
        violation is reported as PersistenceConflict when the date is already
        taken and as UniquenessConflict when the fingerprint index rejected
        the row. Any other constraint failure is a StoreError.
        """
        session = self.session_factory()
        staged_fingerprint = None
        try:
            yield session
            staged_fingerprint = self._staged_fingerprint(session)
            await asyncio.wait_for(session.commit(), timeout=self.timeout)
        except IntegrityError as e:
            await session.rollback()
            if await self._date_taken(scheduled_for):
                raise PersistenceConflict(scheduled_for) from e
            if staged_fingerprint is not None and _is_fingerprint_violation(e):
                raise UniquenessConflict(staged_fingerprint) from e
            raise StoreError(f"Store commit rejected: {e.orig}") from e
        except asyncio.TimeoutError as e:
            await session.rollback()
            raise StoreUnavailableError(f"Store commit timed out after {self.timeout}s") from e
        except (OperationalError, DBAPIError) as e:
            await session.rollback()
            raise StoreUnavailableError(f"Store commit failed: {e}") from e
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def _date_taken(self, scheduled_for: date) -> bool:
        try:
            return await self.get_by_date(scheduled_for) is not None
        except StoreUnavailableError:
            return False

    @staticmethod
    def _staged_fingerprint(session: AsyncSession) -> Optional[str]:
        for obj in session.new:
            if isinstance(obj, FingerprintRow):
                return obj.fingerprint
        return None

    def add_record(
        self,
        session: AsyncSession,
        record: PuzzleRecord,
        quality: Optional[QualityMetrics] = None,
        profile: Optional[DifficultyProfile] = None,
        attempt_logs: Optional[List[GenerationAttemptLog]] = None,
    ) -> PuzzleRow:
        """Stage a record and its provenance rows on an open unit of work."""
        row = PuzzleRow(
            id=record.id,
            content=record.content,
            answer=record.answer,
            explanation=record.explanation,
            difficulty=record.difficulty,
            hints=list(record.hints),
            category=record.category,
            puzzle_type=record.puzzle_type,
            scheduled_for=record.scheduled_for,
            generation_method=record.generation_method,
            ai_model=record.ai_model,
            quality_score=record.quality_score,
            uniqueness_score=record.uniqueness_score,
            ai_generated=record.ai_generated,
            fallback_tier=record.fallback_tier,
            fallback_reason=record.fallback_reason,
            created_at=record.created_at,
        )
        session.add(row)

        if quality is not None:
            row.quality_metrics = QualityMetricsRow(
                clarity_score=quality.clarity,
                creativity_score=quality.creativity,
                solvability_score=quality.solvability,
                appropriateness_score=quality.appropriateness,
                visual_appeal_score=quality.visual_appeal,
                educational_value_score=quality.educational_value,
                fun_factor_score=quality.fun_factor,
                overall_quality_score=quality.overall_score,
                verdict=quality.verdict,
                adversarial_passed=quality.adversarial_passed,
                adversarial_robustness=quality.adversarial_robustness,
                adversarial_issues=list(quality.adversarial_issues),
            )

        if profile is not None:
            row.calibration = DifficultyCalibrationRow(
                proposed_difficulty=profile.proposed_difficulty,
                calculated_difficulty=profile.calculated_difficulty,
                ai_tested_difficulty=profile.ai_tested_difficulty,
                calibrated_difficulty=profile.calibrated_difficulty,
                visual_ambiguity=profile.visual_ambiguity,
                cognitive_steps=profile.cognitive_steps,
                cultural_knowledge=profile.cultural_knowledge,
                vocabulary_level=profile.vocabulary_level,
                pattern_novelty=profile.pattern_novelty,
                recommendation=profile.recommendation,
            )

        for log in attempt_logs or []:
            row.generation_logs.append(GenerationLogRow(
                attempt=log.attempt,
                outcome=log.outcome,
                generation_method=log.generation_method,
                candidates_generated=log.candidates_generated,
                generation_time_ms=log.duration_ms,
                ai_provider=log.ai_provider,
                ai_model=log.ai_model,
                total_tokens=log.total_tokens,
                estimated_cost=log.estimated_cost,
                detail=log.detail,
            ))

        return row

    async def attempt_logs_for(self, puzzle_id: str) -> List[GenerationAttemptLog]:
        async def _query():
            async with self.session_factory() as session:
                result = await session.execute(
                    select(GenerationLogRow)
                    .where(GenerationLogRow.puzzle_id == puzzle_id)
                    .order_by(GenerationLogRow.attempt)
                )
                return [
                    GenerationAttemptLog(
                        attempt=row.attempt,
                        outcome=row.outcome,
                        generation_method=row.generation_method,
                        candidates_generated=row.candidates_generated,
                        duration_ms=row.generation_time_ms,
                        ai_provider=row.ai_provider,
                        ai_model=row.ai_model,
                        total_tokens=row.total_tokens,
                        estimated_cost=row.estimated_cost,
                        detail=row.detail,
                    )
                    for row in result.scalars()
                ]

        return await self._bounded(_query(), "log lookup")

    async def health_check(self) -> bool:
        """Check if the database is reachable."""
        try:
            await self.count_puzzles()
            return True
        except (StoreUnavailableError, SQLAlchemyError) as e:
            logger.error(f"Store health check failed: {e}")
            return False

    async def close(self) -> None:
        await self.engine.dispose()
