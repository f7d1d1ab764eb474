"""Puzzle generation pipeline for the Daily Puzzle Engine."""

from .clock import Clock, FixedClock, SystemClock
from .coordinator import DailyPuzzleCoordinator
from .orchestrator import GenerationOrchestrator
from .quality_gate import QualityGate

__all__ = [
    "Clock",
    "DailyPuzzleCoordinator",
    "FixedClock",
    "GenerationOrchestrator",
    "QualityGate",
    "SystemClock",
]
