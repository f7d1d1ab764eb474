"""Judge Agent for seven-dimension quality assessment."""

import logging

from .base import BaseAgent
from ..config import settings
from ..models.puzzles import JudgeAnalysis, PuzzleCandidate

logger = logging.getLogger(__name__)


class JudgeAgent(BaseAgent):
    """Judge Agent that scores a candidate on the quality rubric."""

    role_description = "a strict puzzle quality judge"

    def __init__(self, **kwargs):
        """Initialize the Judge Agent."""
        kwargs.setdefault("model_name", settings.quality_model)
        super().__init__(**kwargs)
        self.temperature = settings.scoring_temperature

    async def analyze(self, candidate: PuzzleCandidate) -> JudgeAnalysis:
        """Score a candidate on clarity, creativity, solvability and four other dimensions."""
        prompt = self.create_system_prompt(
            guidelines=[
                "Score each dimension independently on a 0-100 scale",
                "Reserve scores above 90 for puzzles you would publish without edits",
                "Penalise symbols that do not contribute to the answer",
                "Penalise anything unsuitable for a family audience under appropriateness",
            ]
        )

        prompt += f"""
Evaluate this puzzle:

{self.format_puzzle(candidate)}
Proposed difficulty: {candidate.difficulty}/10

Dimensions:
- clarity: are the symbols unambiguous?
- creativity: is the construction fresh?
- solvability: can a typical player reach the answer from the hints?
- appropriateness: suitable for all ages?
- visual_appeal: does it look good on screen?
- educational_value: does the player learn a word, idiom or fact?
- fun_factor: is the solve satisfying?

Respond with JSON:
{{
    "clarity": 0-100,
    "creativity": 0-100,
    "solvability": 0-100,
    "appropriateness": 0-100,
    "visual_appeal": 0-100,
    "educational_value": 0-100,
    "fun_factor": 0-100,
    "strengths": ["..."],
    "weaknesses": ["..."]
}}
"""

        response = await self.call_llm_with_cache(prompt, temperature=self.temperature)
        analysis = self.parse_model(self.parse_json_response(response), JudgeAnalysis)

        logger.info(f"Judge scored '{candidate.answer}': clarity {analysis.clarity}, solvability {analysis.solvability}")
        return analysis
