"""Data models for the Daily Puzzle Engine."""

from .puzzles import (
    ACCEPTED_VERDICTS,
    AdversarialIssue,
    AdversarialReport,
    AttemptOutcome,
    CalibrationResult,
    DatePreview,
    DateRangePreviewRequest,
    DifficultyCategory,
    DifficultyProfile,
    FallbackTier,
    Fingerprint,
    GenerationAttemptLog,
    GenerationFailure,
    GenerationParams,
    GenerationResult,
    GenerationSuccess,
    IssueSeverity,
    JudgeAnalysis,
    PuzzleCandidate,
    PuzzleRecord,
    QualityMetrics,
    QualityVerdict,
    SelfTestReport,
)

__all__ = [
    "ACCEPTED_VERDICTS",
    "AdversarialIssue",
    "AdversarialReport",
    "AttemptOutcome",
    "CalibrationResult",
    "DatePreview",
    "DateRangePreviewRequest",
    "DifficultyCategory",
    "DifficultyProfile",
    "FallbackTier",
    "Fingerprint",
    "GenerationAttemptLog",
    "GenerationFailure",
    "GenerationParams",
    "GenerationResult",
    "GenerationSuccess",
    "IssueSeverity",
    "JudgeAnalysis",
    "PuzzleCandidate",
    "PuzzleRecord",
    "QualityMetrics",
    "QualityVerdict",
    "SelfTestReport",
]
