"""Fallback chain: deterministic pool puzzles and the emergency puzzle."""

import logging
from datetime import date
from typing import Dict, List, Optional

from ..models.puzzles import FallbackTier, PuzzleRecord

logger = logging.getLogger(__name__)

# Order is part of the contract: the pool index is day_of_year % len(POOL).
POOL: List[Dict] = [
    {
        "content": "☀️ 🌻",
        "answer": "sunflower",
        "difficulty": 3,
        "explanation": "Sun (☀️) + Flower (🌻) = Sunflower",
        "category": "compound_words",
        "hints": ["Think about nature", "Combine two elements", "A yellow flower"],
    },
    {
        "content": "🐝 4️⃣",
        "answer": "before",
        "difficulty": 4,
        "explanation": "Bee (🐝) sounds like 'be' + Four (4️⃣) = Before",
        "category": "phonetic",
        "hints": ["Think about sounds", "Phonetic wordplay", "Relates to time"],
    },
    {
        "content": "🌙 💡",
        "answer": "moonlight",
        "difficulty": 5,
        "explanation": "Moon (🌙) + Light (💡) = Moonlight",
        "category": "compound_words",
        "hints": ["Think about nighttime", "Two elements combine", "Natural illumination"],
    },
    {
        "content": "🔥 🪰",
        "answer": "firefly",
        "difficulty": 4,
        "explanation": "Fire (🔥) + Fly (🪰) = Firefly",
        "category": "compound_words",
        "hints": ["It glows", "Summer evenings", "An insect"],
    },
    {
        "content": "📖 🪱",
        "answer": "bookworm",
        "difficulty": 5,
        "explanation": "Book (📖) + Worm (🪱) = Bookworm",
        "category": "compound_words",
        "hints": ["Describes a person", "Loves the library", "Reads a lot"],
    },
    {
        "content": "💡 🏠",
        "answer": "lighthouse",
        "difficulty": 5,
        "explanation": "Light (💡) + House (🏠) = Lighthouse",
        "category": "compound_words",
        "hints": ["Found by the sea", "Guides ships", "A tall tower"],
    },
    {
        "content": "🍵 🥄",
        "answer": "teaspoon",
        "difficulty": 4,
        "explanation": "Tea (🍵) + Spoon (🥄) = Teaspoon",
        "category": "compound_words",
        "hints": ["Found in the kitchen", "A unit of measure", "Smaller than a tablespoon"],
    },
]

EMERGENCY_PUZZLE: Dict = {
    "content": "⭐ 🐟",
    "answer": "starfish",
    "difficulty": 3,
    "explanation": "Star (⭐) + Fish (🐟) = Starfish",
    "category": "compound_words",
    "hints": ["Lives in the sea", "Has five arms", "Not actually a fish"],
}


def day_of_year(day: date) -> int:
    """1-based ordinal day within the year (January 1st is 1)."""
    return day.timetuple().tm_yday


def pool_index(day: date) -> int:
    return day_of_year(day) % len(POOL)


def deterministic(day: date, reason: Optional[str] = None) -> PuzzleRecord:
    """Pool puzzle for a date; the same date always yields the same record."""
    index = pool_index(day)
    entry = POOL[index]
    logger.info(f"Using fallback pool entry {index} ({entry['answer']}) for {day}")
    return PuzzleRecord(
        id=f"fallback-{day.isoformat()}",
        scheduled_for=day,
        generation_method="fallback_pool",
        ai_generated=False,
        fallback_tier=FallbackTier.DETERMINISTIC,
        fallback_reason=reason,
        **entry,
    )


def emergency(day: date, reason: Optional[str] = None) -> PuzzleRecord:
    """Hardcoded last-resort puzzle; never persisted."""
    return PuzzleRecord(
        id=f"emergency-{day.isoformat()}",
        scheduled_for=day,
        generation_method="emergency",
        ai_generated=False,
        fallback_tier=FallbackTier.EMERGENCY,
        fallback_reason=reason,
        **EMERGENCY_PUZZLE,
    )
