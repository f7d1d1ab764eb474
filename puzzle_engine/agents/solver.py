"""Solver Agent that attempts a puzzle blind to estimate its difficulty."""

import logging

from .base import BaseAgent
from ..config import settings
from ..database.fingerprints import normalize_answer
from ..models.puzzles import PuzzleCandidate, SelfTestReport

logger = logging.getLogger(__name__)


class SolverAgent(BaseAgent):
    """Solver Agent used for the AI self-test step of difficulty calibration."""

    role_description = "an average puzzle enthusiast solving today's rebus"

    def __init__(self, **kwargs):
        """Initialize the Solver Agent."""
        kwargs.setdefault("model_name", settings.quality_model)
        super().__init__(**kwargs)
        self.temperature = settings.scoring_temperature

    async def self_test(self, candidate: PuzzleCandidate) -> SelfTestReport:
        """Solve the puzzle without seeing the answer and rate how hard it felt."""
        prompt = self.create_system_prompt()
        prompt += f"""
Solve this puzzle. You may use the hints.

{self.format_puzzle(candidate, include_answer=False)}
Hints: {"; ".join(candidate.hints) if candidate.hints else "none"}

Respond with JSON:
{{
    "proposed_answer": "your answer",
    "perceived_difficulty": 1-10,
    "reasoning": "how you got there"
}}
"""

        response = await self.call_llm_with_cache(prompt, temperature=self.temperature)
        parsed = self.parse_json_response(response)

        proposed = parsed.get("proposed_answer")
        parsed["solved"] = bool(proposed) and normalize_answer(str(proposed)) == normalize_answer(candidate.answer)
        report = self.parse_model(parsed, SelfTestReport)

        logger.info(
            f"Solver {'solved' if report.solved else 'missed'} '{candidate.answer}', "
            f"perceived difficulty {report.perceived_difficulty}"
        )
        return report
