"""SQLAlchemy table definitions for published puzzles and their provenance."""

from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class PuzzleRow(Base):
    __tablename__ = "puzzles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(String(255), nullable=False)
    explanation: Mapped[str] = mapped_column(Text, default="", nullable=False)
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False)
    hints: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    category: Mapped[str] = mapped_column(String(64), default="general", nullable=False)
    puzzle_type: Mapped[str] = mapped_column(String(32), default="rebus", nullable=False)
    # One puzzle per calendar day; the unique index is what settles concurrent writers.
    scheduled_for: Mapped[date] = mapped_column(Date, unique=True, index=True, nullable=False)

    generation_method: Mapped[str] = mapped_column(String(64), default="chain_of_thought", nullable=False)
    ai_model: Mapped[Optional[str]] = mapped_column(String(128))
    quality_score: Mapped[Optional[float]] = mapped_column(Float)
    uniqueness_score: Mapped[Optional[float]] = mapped_column(Float)
    ai_generated: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    fallback_tier: Mapped[str] = mapped_column(String(16), default="none", nullable=False)
    fallback_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    fingerprint: Mapped[Optional["FingerprintRow"]] = relationship(back_populates="puzzle")
    quality_metrics: Mapped[Optional["QualityMetricsRow"]] = relationship(back_populates="puzzle")
    calibration: Mapped[Optional["DifficultyCalibrationRow"]] = relationship(back_populates="puzzle")
    generation_logs: Mapped[List["GenerationLogRow"]] = relationship(back_populates="puzzle")

    def __repr__(self) -> str:
        return f"<PuzzleRow {self.scheduled_for} {self.id}>"


class FingerprintRow(Base):
    __tablename__ = "puzzle_fingerprints"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    puzzle_id: Mapped[str] = mapped_column(ForeignKey("puzzles.id", ondelete="CASCADE"), nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    answer_normalized: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    symbol_signature: Mapped[str] = mapped_column(Text, nullable=False)
    pattern_type: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    puzzle: Mapped[PuzzleRow] = relationship(back_populates="fingerprint")


class QualityMetricsRow(Base):
    __tablename__ = "puzzle_quality_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    puzzle_id: Mapped[str] = mapped_column(
        ForeignKey("puzzles.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    clarity_score: Mapped[float] = mapped_column(Float, nullable=False)
    creativity_score: Mapped[float] = mapped_column(Float, nullable=False)
    solvability_score: Mapped[float] = mapped_column(Float, nullable=False)
    appropriateness_score: Mapped[float] = mapped_column(Float, nullable=False)
    visual_appeal_score: Mapped[float] = mapped_column(Float, nullable=False)
    educational_value_score: Mapped[float] = mapped_column(Float, nullable=False)
    fun_factor_score: Mapped[float] = mapped_column(Float, nullable=False)
    overall_quality_score: Mapped[float] = mapped_column(Float, nullable=False)
    verdict: Mapped[str] = mapped_column(String(16), nullable=False)
    adversarial_passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    adversarial_robustness: Mapped[Optional[float]] = mapped_column(Float)
    adversarial_issues: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    evaluated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    puzzle: Mapped[PuzzleRow] = relationship(back_populates="quality_metrics")


class DifficultyCalibrationRow(Base):
    __tablename__ = "difficulty_calibration"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    puzzle_id: Mapped[str] = mapped_column(
        ForeignKey("puzzles.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    proposed_difficulty: Mapped[int] = mapped_column(Integer, nullable=False)
    calculated_difficulty: Mapped[int] = mapped_column(Integer, nullable=False)
    ai_tested_difficulty: Mapped[Optional[int]] = mapped_column(Integer)
    calibrated_difficulty: Mapped[int] = mapped_column(Integer, nullable=False)
    visual_ambiguity: Mapped[float] = mapped_column(Float, nullable=False)
    cognitive_steps: Mapped[float] = mapped_column(Float, nullable=False)
    cultural_knowledge: Mapped[float] = mapped_column(Float, nullable=False)
    vocabulary_level: Mapped[float] = mapped_column(Float, nullable=False)
    pattern_novelty: Mapped[float] = mapped_column(Float, nullable=False)
    recommendation: Mapped[Optional[str]] = mapped_column(Text)
    calibrated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    puzzle: Mapped[PuzzleRow] = relationship(back_populates="calibration")


class GenerationLogRow(Base):
    __tablename__ = "puzzle_generation"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    puzzle_id: Mapped[str] = mapped_column(ForeignKey("puzzles.id", ondelete="CASCADE"), index=True, nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False)
    outcome: Mapped[str] = mapped_column(String(32), nullable=False)
    generation_method: Mapped[str] = mapped_column(String(64), nullable=False)
    candidates_generated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    generation_time_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ai_provider: Mapped[Optional[str]] = mapped_column(String(32))
    ai_model: Mapped[Optional[str]] = mapped_column(String(128))
    total_tokens: Mapped[Optional[int]] = mapped_column(Integer)
    estimated_cost: Mapped[Optional[float]] = mapped_column(Float)
    detail: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    puzzle: Mapped[PuzzleRow] = relationship(back_populates="generation_logs")
