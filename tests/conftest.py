"""Shared fixtures: a temporary SQLite store and scripted stand-ins for the AI agents."""

import asyncio
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from puzzle_engine.database import PuzzleStore
from puzzle_engine.models.puzzles import (
    PuzzleCandidate,
    PuzzleRecord,
    QualityMetrics,
)
from puzzle_engine.pipeline.quality_gate import is_acceptable, verdict_for
from puzzle_engine.config import QualityThresholds


def make_candidate(answer: str = "sunflower", content: str = "☀️ 🌻", **overrides) -> PuzzleCandidate:
    data = {
        "content": content,
        "answer": answer,
        "explanation": f"{content} = {answer}",
        "difficulty": 5,
        "hints": ["First hint", "Second hint", "Third hint"],
        "category": "compound_words",
        "pattern_type": "compound_words",
    }
    data.update(overrides)
    return PuzzleCandidate(**data)


def make_record(scheduled_for: date, record_id: Optional[str] = None, **overrides) -> PuzzleRecord:
    data = {
        "id": record_id or f"puzzle-{scheduled_for.isoformat()}",
        "content": "☀️ 🌻",
        "answer": "sunflower",
        "explanation": "Sun + Flower = Sunflower",
        "difficulty": 4,
        "hints": ["Nature"],
        "category": "compound_words",
        "scheduled_for": scheduled_for,
        "ai_model": "gpt-4o",
        "quality_score": 82.5,
        "created_at": datetime(2024, 3, 1, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return PuzzleRecord(**data)


def make_metrics(score: float = 85.0, adversarial_passed: bool = True) -> QualityMetrics:
    return QualityMetrics(
        clarity=score,
        creativity=score,
        solvability=score,
        appropriateness=score,
        visual_appeal=score,
        educational_value=score,
        fun_factor=score,
        overall_score=score,
        verdict=verdict_for(score, QualityThresholds()),
        adversarial_passed=adversarial_passed,
    )


class FakeAgent:
    """Minimal agent surface the orchestrator touches."""

    provider = "openai"
    model_name = "gpt-4o"

    def __init__(self, tokens_per_call: int = 0):
        self.tokens_per_call = tokens_per_call
        self._pending = 0

    def consume_usage(self) -> int:
        tokens, self._pending = self._pending, 0
        return tokens

    def get_agent_metadata(self) -> Dict:
        return {"agent_name": self.__class__.__name__, "model_name": self.model_name}


class ScriptedCreator(FakeAgent):
    """Returns (or raises) the scripted outcomes in order; the last one repeats."""

    def __init__(self, outcomes: List, delay: float = 0.0, tokens_per_call: int = 0):
        super().__init__(tokens_per_call)
        self.outcomes = list(outcomes)
        self.delay = delay
        self.calls = 0
        self.params_seen = []

    async def generate(self, params):
        self.calls += 1
        self.params_seen.append(params)
        self._pending += self.tokens_per_call
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes[min(self.calls - 1, len(self.outcomes) - 1)]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class ScriptedQualityGate:
    """Scores by answer; unknown answers get ``default_score``."""

    def __init__(self, scores: Optional[Dict[str, float]] = None, default_score: float = 85.0,
                 adversarial_passed: bool = True):
        self.scores = scores or {}
        self.default_score = default_score
        self.adversarial_passed = adversarial_passed
        self.judge = FakeAgent()
        self.trickster = FakeAgent()
        self.scored: List[str] = []

    async def score(self, candidate):
        self.scored.append(candidate.answer)
        return make_metrics(self.scores.get(candidate.answer, self.default_score), self.adversarial_passed)

    def is_acceptable(self, metrics):
        return is_acceptable(metrics)


class InMemoryCache:
    """Stand-in for CacheManager's puzzle methods."""

    def __init__(self):
        self.puzzles: Dict[str, Dict] = {}

    async def cache_puzzle(self, scheduled_for, puzzle_data, ttl=None):
        self.puzzles[scheduled_for.isoformat()] = puzzle_data
        return True

    async def get_cached_puzzle(self, scheduled_for):
        return self.puzzles.get(scheduled_for.isoformat())


@pytest_asyncio.fixture
async def store(tmp_path):
    """PuzzleStore backed by a throwaway SQLite file."""
    puzzle_store = PuzzleStore(database_url=f"sqlite+aiosqlite:///{tmp_path / 'puzzles.db'}", timeout=10)
    await puzzle_store.create_all()
    yield puzzle_store
    await puzzle_store.close()


@pytest.fixture
def db_url(tmp_path):
    """URL for tests that open several stores on the same database file."""
    return f"sqlite+aiosqlite:///{tmp_path / 'shared.db'}"

