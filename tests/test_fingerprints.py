"""Tests for puzzle fingerprints and the fingerprint store."""

import pytest
from datetime import date

from puzzle_engine.database.fingerprints import (
    FingerprintStore,
    compute_fingerprint,
    normalize_answer,
    score_against_history,
    similarity,
    split_glyphs,
    symbol_similarity,
)

from conftest import make_candidate, make_record


class TestSplitGlyphs:
    """Tests for extracting the symbol signature of a rebus."""

    def test_emoji_with_variation_selector(self):
        assert split_glyphs("☀️ 🌻") == ["☀️", "🌻"]

    def test_keycap_counts_as_glyph(self):
        assert split_glyphs("🐝 4️⃣") == ["🐝", "4️⃣"]

    def test_text_is_ignored(self):
        assert split_glyphs("READ 📖 + ing") == ["📖"]

    def test_zero_width_joiner_sequence_is_one_glyph(self):
        family = "\U0001F468\u200d\U0001F469\u200d\U0001F467"
        assert split_glyphs(f"{family} 🏠") == [family, "🏠"]

    def test_skin_tone_modifier_folds_into_glyph(self):
        assert split_glyphs("\U0001F44D\U0001F3FD") == ["\U0001F44D\U0001F3FD"]


class TestComputeFingerprint:
    """Tests for the deterministic fingerprint hash."""

    def test_answer_normalization(self):
        assert normalize_answer("Sun-Flower!") == "sunflower"
        assert normalize_answer("Piece of Cake") == "pieceofcake"

    def test_same_puzzle_same_hash(self):
        first = compute_fingerprint(make_candidate(answer="Sunflower"))
        second = compute_fingerprint(make_candidate(answer="sun flower", explanation="different wording"))

        assert first.fingerprint_hash == second.fingerprint_hash
        assert len(first.fingerprint_hash) == 64

    def test_symbols_change_hash(self):
        first = compute_fingerprint(make_candidate(content="☀️ 🌻"))
        second = compute_fingerprint(make_candidate(content="🌞 🌼"))
        assert first.fingerprint_hash != second.fingerprint_hash

    def test_pattern_type_changes_hash(self):
        first = compute_fingerprint(make_candidate(pattern_type="compound_words"))
        second = compute_fingerprint(make_candidate(pattern_type="phonetic"))
        assert first.fingerprint_hash != second.fingerprint_hash

    def test_signature_fields(self):
        fingerprint = compute_fingerprint(make_candidate())

        assert fingerprint.answer_normalized == "sunflower"
        assert fingerprint.symbol_signature == "☀️ 🌻"
        assert fingerprint.pattern_type == "compound_words"


class TestSimilarity:
    """Tests for the novelty score against recent history."""

    def test_symbol_similarity(self):
        assert symbol_similarity("a b", "a b") == 1.0
        assert symbol_similarity("a b", "b c") == pytest.approx(1 / 3)
        assert symbol_similarity("", "") == 0.0

    def test_identical_fingerprints(self):
        fingerprint = compute_fingerprint(make_candidate())
        assert similarity(fingerprint, fingerprint) == pytest.approx(1.0)

    def test_empty_history_is_fully_novel(self):
        fingerprint = compute_fingerprint(make_candidate())
        assert score_against_history(fingerprint, []) == 100.0

    def test_duplicate_history_lowers_score(self):
        fingerprint = compute_fingerprint(make_candidate())
        # 100 - 1.0 * 30 - one near duplicate * 10
        assert score_against_history(fingerprint, [fingerprint]) == 60.0

    def test_score_never_negative(self):
        fingerprint = compute_fingerprint(make_candidate())
        assert score_against_history(fingerprint, [fingerprint] * 20) == 0.0


class TestFingerprintStore:
    """Tests for FingerprintStore against a real database."""

    @pytest.mark.asyncio
    async def test_registered_fingerprint_is_not_unique(self, store):
        fingerprints = FingerprintStore(store)
        candidate = make_candidate()
        fingerprint = fingerprints.compute(candidate)

        assert await fingerprints.is_unique(fingerprint) is True

        record = make_record(date(2024, 3, 10))
        async with store.unit_of_work(record.scheduled_for) as session:
            store.add_record(session, record)
            fingerprints.persist(session, fingerprint, record.id)

        assert await fingerprints.is_unique(fingerprint) is False
        assert await fingerprints.is_unique(fingerprints.compute(make_candidate(answer="moonlight"))) is True

    @pytest.mark.asyncio
    async def test_uniqueness_score_uses_recent_history(self, store):
        fingerprints = FingerprintStore(store, lookback=10)
        published = make_candidate(answer="sunflower")
        record = make_record(date(2024, 3, 10))
        async with store.unit_of_work(record.scheduled_for) as session:
            store.add_record(session, record)
            fingerprints.persist(session, fingerprints.compute(published), record.id)

        unrelated = await fingerprints.uniqueness_score(make_candidate(answer="xylophone", content="🎹 🎼"))
        near = await fingerprints.uniqueness_score(make_candidate(answer="sunflowers"))

        assert unrelated > near
        assert 0.0 <= near <= 100.0

    @pytest.mark.asyncio
    async def test_zero_lookback_skips_history(self, store):
        fingerprints = FingerprintStore(store, lookback=0)
        assert await fingerprints.uniqueness_score(make_candidate()) == 100.0
