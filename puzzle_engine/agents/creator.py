"""Creator Agent for rebus generation using chain-of-thought prompting."""

import logging
import random
from typing import Any, Dict, List, Optional

from .base import BaseAgent
from ..config import settings
from ..models.puzzles import GenerationParams, PuzzleCandidate

logger = logging.getLogger(__name__)

# Category rotation for prompts when no category is requested
PUZZLE_CATEGORIES = {
    "compound_words": "Two pictured words join into one (sun + flower = sunflower)",
    "phonetic": "Symbols sound like syllables of the answer (bee + four = before)",
    "idioms": "A familiar saying expressed with pictures",
    "positional": "Placement of symbols carries meaning (man over board)",
    "mathematical": "Arithmetic or counting reveals the answer",
    "lateral_thinking": "An unexpected reading of an ordinary picture",
    "multi_layer": "Two or more tricks combined in one puzzle",
}

DIFFICULTY_GUIDANCE = {
    "easy": "Use literal, widely recognised symbols and a single combination step.",
    "medium": "Allow one indirect step such as a homophone or a positional clue.",
    "hard": "Use two or more steps; the answer may be a phrase or idiom.",
}


class CreatorAgent(BaseAgent):
    """Creator Agent that proposes a single rebus candidate."""

    role_description = "an expert rebus puzzle creator"

    def __init__(self, **kwargs):
        """Initialize the Creator Agent."""
        kwargs.setdefault("model_name", settings.default_generation_model)
        super().__init__(**kwargs)
        self.temperature = settings.generation_temperature

    async def generate(self, params: GenerationParams) -> PuzzleCandidate:
        """Generate one candidate puzzle. Raises ProviderError on any failure."""
        category = params.category or self._pick_category()
        prompt = self._build_prompt(params, category)

        response = await self.call_llm(prompt, temperature=self.temperature)
        parsed = self.parse_json_response(response)

        candidate = self._to_candidate(parsed, params, category)
        logger.info(f"Creator proposed '{candidate.answer}' ({candidate.category}, difficulty {candidate.difficulty})")
        return candidate

    def _pick_category(self) -> str:
        return random.choice(list(PUZZLE_CATEGORIES))

    def _build_prompt(self, params: GenerationParams, category: str) -> str:
        from ..pipeline.calibration import difficulty_category

        level = difficulty_category(params.target_difficulty).value
        prompt = self.create_system_prompt(
            guidelines=[
                "Think step by step before committing to a puzzle",
                "Every symbol must contribute to the answer",
                "Avoid answers with several equally valid readings",
                "Give three hints, from gentle to nearly revealing",
            ]
        )

        theme_line = f"Theme: {params.theme}\n" if params.theme else ""
        prompt += f"""
Create one {params.puzzle_type} puzzle.

Category: {category} - {PUZZLE_CATEGORIES.get(category, "any fair rebus technique")}
Target difficulty: {params.target_difficulty}/10 ({level}). {DIFFICULTY_GUIDANCE[level]}
{theme_line}
Work through these steps:
1. Brainstorm five candidate answers that suit the category.
2. For each, sketch how it could be drawn with emojis or short text.
3. Pick the one with the clearest single reading.
4. Write the explanation as the steps a solver takes, e.g. "Sun (☀️) + Flower (🌻) = Sunflower".

Respond in JSON format:
{{
    "thinking": ["step 1 notes", "step 2 notes", "..."],
    "puzzle": {{
        "content": "☀️ 🌻",
        "answer": "sunflower",
        "explanation": "Sun (☀️) + Flower (🌻) = Sunflower",
        "difficulty": {params.target_difficulty},
        "hints": ["Think about nature", "Combine two elements", "A yellow flower"],
        "category": "{category}",
        "pattern_type": "{category}"
    }}
}}
"""
        return prompt

    def _to_candidate(self, parsed: Dict[str, Any], params: GenerationParams, category: str) -> PuzzleCandidate:
        puzzle = parsed.get("puzzle", parsed)
        if not isinstance(puzzle, dict):
            puzzle = {}
        puzzle = dict(puzzle)

        # Tolerate the field names models tend to drift towards
        if "content" not in puzzle:
            puzzle["content"] = puzzle.pop("rebus", None) or puzzle.pop("rebus_puzzle", None)
        puzzle.setdefault("difficulty", params.target_difficulty)
        puzzle.setdefault("category", category)
        puzzle.setdefault("pattern_type", puzzle.get("category", category))
        puzzle["puzzle_type"] = params.puzzle_type

        thinking: Optional[List[str]] = parsed.get("thinking")
        if isinstance(thinking, list):
            puzzle["thinking"] = [str(step) for step in thinking]

        return self.parse_model(puzzle, PuzzleCandidate)
