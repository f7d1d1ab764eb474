"""Trickster Agent for adversarial stress-testing of puzzles."""

import logging

from .base import BaseAgent
from ..config import settings
from ..models.puzzles import AdversarialReport, PuzzleCandidate

logger = logging.getLogger(__name__)

ATTACK_TYPES = [
    "alternative_answer",
    "ambiguity",
    "unsolvable",
    "cultural_bias",
    "offensive_reading",
]


class TricksterAgent(BaseAgent):
    """Trickster Agent that looks for ways a fair player could reach a different answer."""

    role_description = "a devious puzzle tester who tries to break rebus puzzles"

    def __init__(self, **kwargs):
        """Initialize the Trickster Agent."""
        kwargs.setdefault("model_name", settings.quality_model)
        super().__init__(**kwargs)
        self.temperature = settings.scoring_temperature

    async def attack(self, candidate: PuzzleCandidate) -> AdversarialReport:
        """Attack a candidate and report every weakness found."""
        prompt = self.create_system_prompt(
            guidelines=[
                "Play the role of many different players, not just an expert",
                "Only report an alternative answer if a reasonable player would defend it",
                "Mark as critical anything that makes the intended answer unfair or unreachable",
            ]
        )

        prompt += f"""
Try to break this puzzle:

{self.format_puzzle(candidate)}

Attack types to try: {", ".join(ATTACK_TYPES)}

Respond with JSON:
{{
    "issues": [
        {{
            "attack_type": "alternative_answer",
            "description": "What goes wrong",
            "severity": "critical" | "major" | "minor",
            "alternative_answer": "optional"
        }}
    ],
    "robustness_score": 0-100,
    "passes": true | false
}}
"""

        response = await self.call_llm_with_cache(prompt, temperature=self.temperature)
        report = self.parse_model(self.parse_json_response(response), AdversarialReport)

        if report.issues:
            logger.info(f"Trickster found {len(report.issues)} issues with '{candidate.answer}'")
        return report
