"""Puzzle data models for the Daily Puzzle Engine."""

from enum import Enum
from typing import List, Optional, Union
from datetime import date, datetime, timezone
from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QualityVerdict(str, Enum):
    """Categorical outcome of the quality gate."""
    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    NEEDS_WORK = "needs_work"
    REJECT = "reject"


ACCEPTED_VERDICTS = frozenset({
    QualityVerdict.EXCELLENT.value,
    QualityVerdict.GOOD.value,
    QualityVerdict.ACCEPTABLE.value,
})


class FallbackTier(str, Enum):
    """Where a served puzzle came from."""
    NONE = "none"                    # Live AI generation
    DETERMINISTIC = "deterministic"  # Fixed pool keyed by day of year
    EMERGENCY = "emergency"          # Hardcoded, never persisted


class DifficultyCategory(str, Enum):
    """Coarse difficulty shown by the game UI."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class AttemptOutcome(str, Enum):
    """Result of a single orchestrator attempt."""
    ACCEPTED = "accepted"
    UNIQUENESS_CONFLICT = "uniqueness_conflict"
    QUALITY_REJECTED = "quality_rejected"
    PROVIDER_ERROR = "provider_error"
    QUOTA_EXCEEDED = "quota_exceeded"


class PuzzleCandidate(BaseModel):
    """A puzzle proposed by the generator, not yet accepted."""

    content: str = Field(..., min_length=1, description="Rebus puzzle shown to the player")
    answer: str = Field(..., min_length=1, description="Expected answer")
    explanation: str = Field("", description="How the rebus decodes to the answer")
    difficulty: int = Field(..., ge=1, le=10, description="Difficulty proposed by the generator")
    hints: List[str] = Field(default_factory=list, description="Progressive hints")
    category: str = Field("general", description="Puzzle category, e.g. compound_words")
    puzzle_type: str = Field("rebus", description="Puzzle family")
    pattern_type: str = Field("unknown", description="Pattern classification assigned by the generator")
    thinking: Optional[List[str]] = Field(None, description="Generator reasoning notes")


class Fingerprint(BaseModel):
    """Dedup signature of a puzzle's content."""

    model_config = ConfigDict(frozen=True)

    fingerprint_hash: str = Field(..., min_length=64, max_length=64, description="SHA-256 hex digest")
    answer_normalized: str
    symbol_signature: str
    pattern_type: str


class QualityMetrics(BaseModel):
    """Scores produced by the quality gate for one candidate (0-100 scale)."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    clarity: float = Field(..., ge=0, le=100)
    creativity: float = Field(..., ge=0, le=100)
    solvability: float = Field(..., ge=0, le=100)
    appropriateness: float = Field(..., ge=0, le=100)
    visual_appeal: float = Field(..., ge=0, le=100)
    educational_value: float = Field(..., ge=0, le=100)
    fun_factor: float = Field(..., ge=0, le=100)
    overall_score: float = Field(..., ge=0, le=100)
    verdict: QualityVerdict
    adversarial_passed: bool
    adversarial_robustness: Optional[float] = Field(None, ge=0, le=100)
    adversarial_issues: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)


class DifficultyProfile(BaseModel):
    """Calibration record linking three difficulty estimates to the final value."""

    proposed_difficulty: int = Field(..., ge=1, le=10)
    calculated_difficulty: int = Field(..., ge=1, le=10, description="Rule-based structural estimate")
    ai_tested_difficulty: Optional[int] = Field(None, ge=1, le=10, description="Solver self-test estimate")
    calibrated_difficulty: int = Field(..., ge=1, le=10)

    visual_ambiguity: float = Field(..., ge=1, le=10)
    cognitive_steps: float = Field(..., ge=1, le=10)
    cultural_knowledge: float = Field(..., ge=1, le=10)
    vocabulary_level: float = Field(..., ge=1, le=10)
    pattern_novelty: float = Field(..., ge=1, le=10)

    recommendation: Optional[str] = None


class GenerationAttemptLog(BaseModel):
    """Observability record for one orchestrator attempt."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    attempt: int = Field(..., ge=1)
    outcome: AttemptOutcome
    generation_method: str = Field("chain_of_thought")
    candidates_generated: int = Field(0, ge=0)
    duration_ms: int = Field(0, ge=0)
    ai_provider: Optional[str] = None
    ai_model: Optional[str] = None
    total_tokens: Optional[int] = None
    estimated_cost: Optional[float] = None
    detail: Optional[str] = None


class PuzzleRecord(BaseModel):
    """The published puzzle for one calendar date."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(..., description="Unique identifier")
    content: str
    answer: str
    explanation: str = ""
    difficulty: int = Field(..., ge=1, le=10)
    hints: List[str] = Field(default_factory=list)
    category: str = "general"
    puzzle_type: str = "rebus"
    scheduled_for: date = Field(..., description="Calendar date (UTC) this puzzle is served on")

    # Provenance
    generation_method: str = "chain_of_thought"
    ai_model: Optional[str] = None
    quality_score: Optional[float] = None
    uniqueness_score: Optional[float] = None
    ai_generated: bool = True
    fallback_tier: FallbackTier = FallbackTier.NONE
    fallback_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def difficulty_category(self) -> str:
        from ..pipeline.calibration import difficulty_category
        return difficulty_category(self.difficulty).value

    @property
    def is_degraded(self) -> bool:
        return self.fallback_tier != FallbackTier.NONE.value


class GenerationParams(BaseModel):
    """Inputs to a single orchestrator run."""

    target_difficulty: int = Field(5, ge=1, le=10)
    puzzle_type: str = Field("rebus")
    category: Optional[str] = None
    theme: Optional[str] = None
    max_attempts: int = Field(2, ge=1, le=10)


class CalibrationResult(BaseModel):
    calibrated_difficulty: int = Field(..., ge=1, le=10)
    profile: DifficultyProfile


class GenerationSuccess(BaseModel):
    """An accepted candidate with everything needed to persist it."""

    candidate: PuzzleCandidate
    fingerprint: Fingerprint
    quality: QualityMetrics
    calibration: CalibrationResult
    uniqueness_score: Optional[float] = Field(None, ge=0, le=100)
    attempt_logs: List[GenerationAttemptLog]
    ai_model: Optional[str] = None
    generation_time_ms: int = 0

    @property
    def attempts_used(self) -> int:
        return len(self.attempt_logs)

    def to_record(self, record_id: str, scheduled_for: date) -> PuzzleRecord:
        return PuzzleRecord(
            id=record_id,
            content=self.candidate.content,
            answer=self.candidate.answer,
            explanation=self.candidate.explanation,
            difficulty=self.calibration.calibrated_difficulty,
            hints=self.candidate.hints,
            category=self.candidate.category,
            puzzle_type=self.candidate.puzzle_type,
            scheduled_for=scheduled_for,
            generation_method=self.attempt_logs[-1].generation_method,
            ai_model=self.ai_model,
            quality_score=self.quality.overall_score,
            uniqueness_score=self.uniqueness_score,
            ai_generated=True,
            fallback_tier=FallbackTier.NONE,
        )


class GenerationFailure(BaseModel):
    """All attempts exhausted (or the quota ran out) without an accepted candidate."""

    reason: str
    attempt_logs: List[GenerationAttemptLog] = Field(default_factory=list)
    quota_exceeded: bool = False
    quota_reset_message: Optional[str] = None


GenerationResult = Union[GenerationSuccess, GenerationFailure]


class DatePreview(BaseModel):
    """One day of an admin date-range preview."""

    scheduled_for: date
    target_difficulty: int
    puzzle: Optional[PuzzleCandidate] = None
    calibrated_difficulty: Optional[int] = None
    quality_score: Optional[float] = None
    uniqueness_score: Optional[float] = None
    error: Optional[str] = None


# Agent response payloads

class JudgeAnalysis(BaseModel):
    """Seven-dimension quality analysis returned by the judge."""

    clarity: float = Field(..., ge=0, le=100)
    creativity: float = Field(..., ge=0, le=100)
    solvability: float = Field(..., ge=0, le=100)
    appropriateness: float = Field(..., ge=0, le=100)
    visual_appeal: float = Field(..., ge=0, le=100)
    educational_value: float = Field(..., ge=0, le=100)
    fun_factor: float = Field(..., ge=0, le=100)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class AdversarialIssue(BaseModel):
    """One way a player could reasonably reach a different answer."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    attack_type: str = Field("ambiguity", description="e.g. alternative_answer, ambiguity, unsolvable")
    description: str
    severity: IssueSeverity = IssueSeverity.MINOR
    alternative_answer: Optional[str] = None


class AdversarialReport(BaseModel):
    """Result of the trickster's stress test."""

    issues: List[AdversarialIssue] = Field(default_factory=list)
    robustness_score: float = Field(..., ge=0, le=100)
    passes: bool

    @property
    def has_critical_issue(self) -> bool:
        return any(issue.severity == IssueSeverity.CRITICAL.value for issue in self.issues)


class SelfTestReport(BaseModel):
    """The solver's attempt at the puzzle."""

    solved: bool
    proposed_answer: Optional[str] = None
    perceived_difficulty: int = Field(..., ge=1, le=10)
    reasoning: Optional[str] = None


class DateRangePreviewRequest(BaseModel):
    """Admin request to preview puzzles for a range of dates."""

    start_date: str = Field(..., description="First date, YYYY-MM-DD")
    end_date: str = Field(..., description="Last date (inclusive), YYYY-MM-DD")
    params: Optional[GenerationParams] = Field(None, description="Overrides; difficulty defaults to the weekday schedule")
