"""Database layer for the Daily Puzzle Engine."""

from .cache import CacheManager
from .fingerprints import FingerprintStore, compute_fingerprint
from .store import PuzzleStore

__all__ = ["CacheManager", "FingerprintStore", "PuzzleStore", "compute_fingerprint"]
