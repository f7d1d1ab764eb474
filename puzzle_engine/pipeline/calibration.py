"""Difficulty calibration.

Reconciles the generator's proposed difficulty, a rule-based structural
estimate and the solver's self-test into one calibrated value, and owns the
weekday schedule and the canonical numeric-to-category table.
"""

import logging
import math
import re
from datetime import date
from typing import Dict, Optional

from ..database.fingerprints import split_glyphs
from ..models.puzzles import (
    CalibrationResult,
    DifficultyCategory,
    DifficultyProfile,
    PuzzleCandidate,
)

logger = logging.getLogger(__name__)

# date.weekday(): Monday == 0
WEEKDAY_DIFFICULTY: Dict[int, int] = {
    0: 4,  # Monday
    1: 5,  # Tuesday
    2: 7,  # Wednesday
    3: 6,  # Thursday
    4: 5,  # Friday
    5: 4,  # Saturday
    6: 5,  # Sunday
}

CALIBRATION_WEIGHTS = {"proposed": 0.3, "calculated": 0.3, "tested": 0.4}

PROFILE_WEIGHTS = {
    "visual_ambiguity": 0.2,
    "cognitive_steps": 0.3,
    "cultural_knowledge": 0.2,
    "vocabulary_level": 0.15,
    "pattern_novelty": 0.15,
}

STEP_INDICATORS = ["+", "→", "=", "sounds like", "positioned", "represents"]
RARE_PATTERNS = {"positional", "mathematical", "lateral_thinking", "multi_layer"}


def round_half_up(value: float) -> int:
    return int(math.floor(round(value, 9) + 0.5))


def clamp_difficulty(value: float) -> int:
    return max(1, min(10, round_half_up(value)))


def target_difficulty_for(day: date) -> int:
    """Scheduled difficulty for a UTC calendar date."""
    return WEEKDAY_DIFFICULTY[day.weekday()]


def difficulty_category(difficulty: int) -> DifficultyCategory:
    """Canonical mapping: 1-3 easy, 4-6 medium, 7-10 hard."""
    if difficulty <= 3:
        return DifficultyCategory.EASY
    if difficulty <= 6:
        return DifficultyCategory.MEDIUM
    return DifficultyCategory.HARD


def count_symbols(content: str) -> int:
    """Number of pictographic glyphs in a rebus."""
    return len(split_glyphs(content))


def _bounded(value: float) -> float:
    return float(min(10.0, max(1.0, value)))


def rule_profile(candidate: PuzzleCandidate) -> Dict[str, float]:
    """Structural difficulty estimate computed without any model call."""
    answer_words = [w for w in re.split(r"\s+", candidate.answer.strip()) if w]
    word_count = max(1, len(answer_words))
    explanation = candidate.explanation.lower()
    category = candidate.category.lower()

    visual_ambiguity = _bounded(count_symbols(candidate.content) * 1.5)
    cognitive_steps = _bounded(sum(1 for marker in STEP_INDICATORS if marker in explanation) * 2)

    if "idiom" in category or "phrase" in category:
        cultural_knowledge = 7.0
    else:
        cultural_knowledge = _bounded(word_count * 2)

    vocabulary_level = _bounded(len(candidate.answer) / 3 + (word_count - 1) * 2)
    pattern_novelty = 8.0 if category in RARE_PATTERNS or candidate.pattern_type in RARE_PATTERNS else 5.0

    profile = {
        "visual_ambiguity": visual_ambiguity,
        "cognitive_steps": cognitive_steps,
        "cultural_knowledge": cultural_knowledge,
        "vocabulary_level": vocabulary_level,
        "pattern_novelty": pattern_novelty,
    }
    overall = sum(profile[key] * weight for key, weight in PROFILE_WEIGHTS.items())
    profile["overall"] = float(clamp_difficulty(overall))
    return profile


def recommendation_for(proposed: int, calibrated: int) -> str:
    delta = abs(calibrated - proposed)
    if delta > 2:
        return f"Difficulty mismatch: proposed {proposed}, calibrated {calibrated}. Consider regenerating."
    if delta > 1:
        return f"Minor difficulty adjustment: {proposed} -> {calibrated}"
    return "Difficulty accurately calibrated."


def calibrate(
    proposed: int,
    ai_tested: Optional[int],
    rule_calculated: int,
    profile: Dict[str, float],
) -> CalibrationResult:
    """Weighted blend of the three difficulty estimates, clamped to 1-10.

    Without a solver result the proposed and rule-based weights are
    renormalized to 0.5 each.
    """
    if ai_tested is None:
        total = CALIBRATION_WEIGHTS["proposed"] + CALIBRATION_WEIGHTS["calculated"]
        raw = (
            proposed * CALIBRATION_WEIGHTS["proposed"] / total
            + rule_calculated * CALIBRATION_WEIGHTS["calculated"] / total
        )
    else:
        raw = (
            proposed * CALIBRATION_WEIGHTS["proposed"]
            + rule_calculated * CALIBRATION_WEIGHTS["calculated"]
            + ai_tested * CALIBRATION_WEIGHTS["tested"]
        )

    calibrated = clamp_difficulty(raw)
    recommendation = recommendation_for(proposed, calibrated)
    logger.debug(f"Calibrated difficulty {calibrated} (proposed {proposed}, rule {rule_calculated}, tested {ai_tested})")

    difficulty_profile = DifficultyProfile(
        proposed_difficulty=proposed,
        calculated_difficulty=rule_calculated,
        ai_tested_difficulty=ai_tested,
        calibrated_difficulty=calibrated,
        visual_ambiguity=profile["visual_ambiguity"],
        cognitive_steps=profile["cognitive_steps"],
        cultural_knowledge=profile["cultural_knowledge"],
        vocabulary_level=profile["vocabulary_level"],
        pattern_novelty=profile["pattern_novelty"],
        recommendation=recommendation,
    )
    return CalibrationResult(calibrated_difficulty=calibrated, profile=difficulty_profile)


def calibrate_candidate(candidate: PuzzleCandidate, ai_tested: Optional[int]) -> CalibrationResult:
    profile = rule_profile(candidate)
    return calibrate(candidate.difficulty, ai_tested, int(profile["overall"]), profile)
