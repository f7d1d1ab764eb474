"""AI Agents for the puzzle generation pipeline."""

from .base import BaseAgent
from .creator import CreatorAgent
from .judge import JudgeAgent
from .solver import SolverAgent
from .trickster import TricksterAgent

__all__ = [
    "BaseAgent",
    "CreatorAgent",
    "JudgeAgent",
    "SolverAgent",
    "TricksterAgent",
]
