"""Quality gate: judge scoring plus an adversarial veto."""

import asyncio
import logging
from typing import Dict, Optional

from ..agents import JudgeAgent, TricksterAgent
from ..config import QualityThresholds, settings
from ..models.puzzles import (
    ACCEPTED_VERDICTS,
    AdversarialReport,
    IssueSeverity,
    JudgeAnalysis,
    PuzzleCandidate,
    QualityMetrics,
    QualityVerdict,
)

logger = logging.getLogger(__name__)

QUALITY_WEIGHTS: Dict[str, float] = {
    "clarity": 0.20,
    "creativity": 0.15,
    "solvability": 0.20,
    "appropriateness": 0.10,
    "visual_appeal": 0.10,
    "educational_value": 0.10,
    "fun_factor": 0.15,
}


def overall_score(analysis: JudgeAnalysis) -> float:
    total = sum(getattr(analysis, dimension) * weight for dimension, weight in QUALITY_WEIGHTS.items())
    return round(total, 2)


def verdict_for(score: float, thresholds: QualityThresholds) -> QualityVerdict:
    if score >= thresholds.excellent:
        return QualityVerdict.EXCELLENT
    if score >= thresholds.good:
        return QualityVerdict.GOOD
    if score >= thresholds.acceptable:
        return QualityVerdict.ACCEPTABLE
    if score >= thresholds.needs_work:
        return QualityVerdict.NEEDS_WORK
    return QualityVerdict.REJECT


def adversarial_passed(report: AdversarialReport) -> bool:
    """The trickster's own pass flag, overridden by any critical issue."""
    return report.passes and not report.has_critical_issue


def is_acceptable(metrics: QualityMetrics) -> bool:
    return QualityVerdict(metrics.verdict).value in ACCEPTED_VERDICTS and metrics.adversarial_passed


def build_metrics(
    analysis: JudgeAnalysis,
    report: AdversarialReport,
    thresholds: Optional[QualityThresholds] = None,
) -> QualityMetrics:
    thresholds = thresholds or settings.quality_thresholds
    score = overall_score(analysis)
    return QualityMetrics(
        clarity=analysis.clarity,
        creativity=analysis.creativity,
        solvability=analysis.solvability,
        appropriateness=analysis.appropriateness,
        visual_appeal=analysis.visual_appeal,
        educational_value=analysis.educational_value,
        fun_factor=analysis.fun_factor,
        overall_score=score,
        verdict=verdict_for(score, thresholds),
        adversarial_passed=adversarial_passed(report),
        adversarial_robustness=report.robustness_score,
        adversarial_issues=[
            f"[{issue.severity}] {issue.description}" for issue in report.issues
        ],
        strengths=analysis.strengths,
        weaknesses=analysis.weaknesses,
    )


class QualityGate:
    """Scores candidates; holds no state between calls."""

    def __init__(
        self,
        judge: JudgeAgent,
        trickster: TricksterAgent,
        thresholds: Optional[QualityThresholds] = None,
    ):
        self.judge = judge
        self.trickster = trickster
        self.thresholds = thresholds or settings.quality_thresholds

    async def score(self, candidate: PuzzleCandidate) -> QualityMetrics:
        """Run the judge and the trickster concurrently and combine their findings.

        Provider errors from either agent propagate to the caller once the
        other agent's call has been cancelled.
        """
        judge_task = asyncio.create_task(self.judge.analyze(candidate))
        trickster_task = asyncio.create_task(self.trickster.attack(candidate))
        try:
            analysis, report = await asyncio.gather(judge_task, trickster_task)
        except BaseException:
            for task in (judge_task, trickster_task):
                task.cancel()
            await asyncio.gather(judge_task, trickster_task, return_exceptions=True)
            raise
        metrics = build_metrics(analysis, report, self.thresholds)

        critical = [issue for issue in report.issues if issue.severity == IssueSeverity.CRITICAL.value]
        logger.info(
            f"Quality for '{candidate.answer}': {metrics.overall_score:.1f} ({metrics.verdict}), "
            f"adversarial passed: {metrics.adversarial_passed}, critical issues: {len(critical)}"
        )
        return metrics

    def is_acceptable(self, metrics: QualityMetrics) -> bool:
        return is_acceptable(metrics)
