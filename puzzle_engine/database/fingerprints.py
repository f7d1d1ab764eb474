"""Puzzle fingerprints: content signatures used for global deduplication."""

import hashlib
import logging
import re
import string
import unicodedata
from difflib import SequenceMatcher
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models.puzzles import Fingerprint, PuzzleCandidate
from .schema import FingerprintRow

logger = logging.getLogger(__name__)

ZERO_WIDTH_JOINER = "\u200d"
KEYCAP_MARKS = {"\ufe0f", "\u20e3"}
NEAR_DUPLICATE_THRESHOLD = 0.7
ANSWER_WEIGHT = 0.6
SYMBOL_WEIGHT = 0.4


def _is_modifier(char: str) -> bool:
    """Combining marks, variation selectors and skin-tone modifiers."""
    code = ord(char)
    return (
        unicodedata.category(char) in ("Mn", "Me")
        or 0xFE00 <= code <= 0xFE0F
        or 0x1F3FB <= code <= 0x1F3FF
    )


def split_glyphs(content: str) -> List[str]:
    """Ordered non-text glyphs of a rebus.

    Letters, digits, whitespace and ASCII punctuation are text. Modifiers are
    folded into the glyph they follow, zero-width-joiner sequences stay one
    glyph, and a keycap sequence such as ``4️⃣`` counts as a glyph.
    """
    glyphs: List[str] = []
    previous = None
    text_base = ""
    join_next = False

    for char in content:
        if _is_modifier(char):
            if previous == "glyph":
                glyphs[-1] += char
            elif previous == "text" and char in KEYCAP_MARKS:
                glyphs.append(text_base + char)
                previous = "glyph"
            continue

        if char == ZERO_WIDTH_JOINER:
            if previous == "glyph":
                glyphs[-1] += char
                join_next = True
            continue

        if char.isspace() or char.isalnum() or char in string.punctuation:
            previous = "text" if char.isalnum() else None
            text_base = char if char.isalnum() else ""
            join_next = False
            continue

        if join_next and glyphs:
            glyphs[-1] += char
        else:
            glyphs.append(char)
        previous = "glyph"
        join_next = False

    return glyphs


def normalize_answer(answer: str) -> str:
    return re.sub(r"[^a-z0-9]", "", answer.lower())


def compute_fingerprint(candidate: PuzzleCandidate) -> Fingerprint:
    """Deterministic signature of a candidate's answer, symbols and pattern."""
    answer = normalize_answer(candidate.answer)
    signature = " ".join(split_glyphs(candidate.content))
    pattern_type = candidate.pattern_type or "unknown"
    digest = hashlib.sha256(f"{answer}::{signature}::{pattern_type}".encode("utf-8")).hexdigest()
    return Fingerprint(
        fingerprint_hash=digest,
        answer_normalized=answer,
        symbol_signature=signature,
        pattern_type=pattern_type,
    )


def answer_similarity(a: str, b: str) -> float:
    if not a and not b:
        return 1.0
    return SequenceMatcher(None, a, b).ratio()


def symbol_similarity(a: str, b: str) -> float:
    """Jaccard similarity of two symbol signatures."""
    set_a = set(a.split())
    set_b = set(b.split())
    if not set_a and not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def similarity(a: Fingerprint, b: Fingerprint) -> float:
    return (
        ANSWER_WEIGHT * answer_similarity(a.answer_normalized, b.answer_normalized)
        + SYMBOL_WEIGHT * symbol_similarity(a.symbol_signature, b.symbol_signature)
    )


def score_against_history(fingerprint: Fingerprint, history: List[Fingerprint]) -> float:
    """0-100 novelty score; 100 means nothing similar has been published."""
    max_similarity = 0.0
    near_duplicates = 0
    for previous in history:
        value = similarity(fingerprint, previous)
        max_similarity = max(max_similarity, value)
        if value > NEAR_DUPLICATE_THRESHOLD:
            near_duplicates += 1
    score = 100 - max_similarity * 30 - near_duplicates * 10
    return round(max(0.0, score), 2)


class FingerprintStore:
    """Fingerprint lookups and registration against the puzzle store."""

    def __init__(self, store, lookback: Optional[int] = None):
        self.store = store
        self.lookback = settings.uniqueness_lookback if lookback is None else lookback

    def compute(self, candidate: PuzzleCandidate) -> Fingerprint:
        return compute_fingerprint(candidate)

    async def is_unique(self, fingerprint: Fingerprint) -> bool:
        """Fast-path check; the unique index at commit time is authoritative."""
        exists = await self.store.fingerprint_exists(fingerprint.fingerprint_hash)
        if exists:
            logger.info(f"Fingerprint {fingerprint.fingerprint_hash[:12]} already registered")
        return not exists

    def persist(self, session: AsyncSession, fingerprint: Fingerprint, puzzle_id: str) -> FingerprintRow:
        """Stage the fingerprint row in the caller's transaction."""
        row = FingerprintRow(
            puzzle_id=puzzle_id,
            fingerprint=fingerprint.fingerprint_hash,
            answer_normalized=fingerprint.answer_normalized,
            symbol_signature=fingerprint.symbol_signature,
            pattern_type=fingerprint.pattern_type,
        )
        session.add(row)
        return row

    async def uniqueness_score(self, candidate: PuzzleCandidate) -> float:
        fingerprint = compute_fingerprint(candidate)
        history = await self.store.recent_fingerprints(self.lookback)
        return score_against_history(fingerprint, history)
