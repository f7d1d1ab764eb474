"""Generation orchestrator: bounded, quality-gated attempts against the AI provider."""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..agents import CreatorAgent, SolverAgent
from ..config import settings
from ..database.fingerprints import FingerprintStore
from ..errors import (
    GenerationRejected,
    ProviderError,
    QualityRejected,
    QuotaExceededError,
    StoreError,
    TotalGenerationFailure,
    UniquenessConflict,
)
from ..models.puzzles import (
    AttemptOutcome,
    CalibrationResult,
    GenerationAttemptLog,
    GenerationFailure,
    GenerationParams,
    GenerationResult,
    GenerationSuccess,
    PuzzleCandidate,
)
from ..retry import RetryPolicy
from .calibration import calibrate_candidate
from .quality_gate import QualityGate

logger = logging.getLogger(__name__)

GENERATION_METHOD = "chain_of_thought"


class GenerationOrchestrator:
    """Drives the creator through up to ``max_attempts`` candidates.

    Each attempt is checked for uniqueness first and quality second; the
    first candidate to pass both is calibrated and returned.
    """

    def __init__(
        self,
        creator: CreatorAgent,
        quality_gate: QualityGate,
        fingerprints: FingerprintStore,
        solver: Optional[SolverAgent] = None,
    ):
        """Initialize the orchestrator."""
        self.creator = creator
        self.quality_gate = quality_gate
        self.fingerprints = fingerprints
        self.solver = solver

        # Orchestrator statistics
        self.stats = {
            "total_generations": 0,
            "successful_generations": 0,
            "failed_generations": 0,
            "total_attempts": 0,
            "uniqueness_conflicts": 0,
            "quality_rejections": 0,
            "provider_errors": 0,
            "quota_exceeded": 0,
            "average_processing_time": 0.0,
            "last_generation_time": None,
        }

    async def generate(self, params: GenerationParams) -> GenerationResult:
        """Run the attempt loop. Failures of any kind come back as GenerationFailure."""
        start_time = time.time()
        attempt_logs: List[GenerationAttemptLog] = []
        policy = RetryPolicy.for_generation(params.max_attempts)

        logger.info(
            f"Starting generation: difficulty {params.target_difficulty}, "
            f"type {params.puzzle_type}, max attempts {params.max_attempts}"
        )

        try:
            async for attempt in policy.attempts():
                with attempt:
                    success = await self._run_attempt(attempt.retry_state.attempt_number, params, attempt_logs)
                    processing_time = time.time() - start_time
                    success.generation_time_ms = int(processing_time * 1000)
                    self._update_stats(success=True, processing_time=processing_time)
                    logger.info(
                        f"Accepted '{success.candidate.answer}' after {success.attempts_used} attempt(s) "
                        f"in {processing_time:.2f} seconds"
                    )
                    return success

        except QuotaExceededError as e:
            failure = GenerationFailure(
                reason=f"AI quota exceeded ({e.quota_type})",
                attempt_logs=attempt_logs,
                quota_exceeded=True,
                quota_reset_message=e.get_reset_message(),
            )
        except (ProviderError, GenerationRejected) as e:
            failure = GenerationFailure(
                reason=f"All {params.max_attempts} attempts failed; last error: {e}",
                attempt_logs=attempt_logs,
            )
        except StoreError as e:
            failure = GenerationFailure(reason=f"Fingerprint check failed: {e}", attempt_logs=attempt_logs)
        except Exception as e:
            logger.exception(f"Unexpected error during generation: {e}")
            failure = GenerationFailure(reason=f"Unexpected generation error: {e}", attempt_logs=attempt_logs)

        processing_time = time.time() - start_time
        self._update_stats(success=False, processing_time=processing_time)
        logger.warning(f"Generation failed after {processing_time:.2f} seconds: {failure.reason}")
        return failure

    async def generate_or_raise(self, params: GenerationParams) -> GenerationSuccess:
        """Like ``generate`` but raises TotalGenerationFailure instead of returning a failure."""
        result = await self.generate(params)
        if isinstance(result, GenerationFailure):
            raise TotalGenerationFailure(
                result.reason,
                attempts=len(result.attempt_logs),
                quota_exceeded=result.quota_exceeded,
            )
        return result

    async def _run_attempt(
        self,
        attempt_number: int,
        params: GenerationParams,
        attempt_logs: List[GenerationAttemptLog],
    ) -> GenerationSuccess:
        """One candidate through creator, fingerprint check and quality gate.

        Appends exactly one log entry, then either returns or raises.
        """
        attempt_start = time.time()
        self.stats["total_attempts"] += 1
        logger.info(f"Generation attempt {attempt_number}/{params.max_attempts}")

        def record(outcome: AttemptOutcome, candidates: int, detail: Optional[str] = None) -> None:
            tokens = self._collect_tokens()
            attempt_logs.append(GenerationAttemptLog(
                attempt=attempt_number,
                outcome=outcome,
                generation_method=GENERATION_METHOD,
                candidates_generated=candidates,
                duration_ms=int((time.time() - attempt_start) * 1000),
                ai_provider=self.creator.provider,
                ai_model=self.creator.model_name,
                total_tokens=tokens or None,
                estimated_cost=round(tokens / 1000 * settings.estimated_cost_per_1k_tokens, 6) if tokens else None,
                detail=detail,
            ))

        candidates = 0
        try:
            candidate = await self.creator.generate(params)
            candidates = 1

            fingerprint = self.fingerprints.compute(candidate)
            if not await self.fingerprints.is_unique(fingerprint):
                self.stats["uniqueness_conflicts"] += 1
                raise UniquenessConflict(fingerprint.fingerprint_hash)

            metrics = await self.quality_gate.score(candidate)
            if not self.quality_gate.is_acceptable(metrics):
                self.stats["quality_rejections"] += 1
                raise QualityRejected(metrics.verdict, metrics.overall_score, metrics.adversarial_passed)

        except QuotaExceededError as e:
            self.stats["quota_exceeded"] += 1
            record(AttemptOutcome.QUOTA_EXCEEDED, candidates, str(e))
            raise
        except UniquenessConflict as e:
            record(AttemptOutcome.UNIQUENESS_CONFLICT, candidates, str(e))
            raise
        except QualityRejected as e:
            record(AttemptOutcome.QUALITY_REJECTED, candidates, str(e))
            raise
        except ProviderError as e:
            self.stats["provider_errors"] += 1
            record(AttemptOutcome.PROVIDER_ERROR, candidates, str(e))
            raise

        calibration = await self._calibrate(candidate)
        uniqueness_score = await self._uniqueness_score(candidate)
        record(AttemptOutcome.ACCEPTED, candidates)

        return GenerationSuccess(
            candidate=candidate,
            fingerprint=fingerprint,
            quality=metrics,
            calibration=calibration,
            uniqueness_score=uniqueness_score,
            attempt_logs=list(attempt_logs),
            ai_model=self.creator.model_name,
        )

    async def _calibrate(self, candidate: PuzzleCandidate) -> CalibrationResult:
        """Non-gating: a solver failure only drops the AI-tested estimate."""
        ai_tested = None
        if self.solver is not None:
            try:
                report = await self.solver.self_test(candidate)
                ai_tested = report.perceived_difficulty
            except ProviderError as e:
                logger.warning(f"Solver self-test failed, calibrating without it: {e}")
        return calibrate_candidate(candidate, ai_tested)

    async def _uniqueness_score(self, candidate: PuzzleCandidate) -> Optional[float]:
        try:
            return await self.fingerprints.uniqueness_score(candidate)
        except StoreError as e:
            logger.warning(f"Could not score uniqueness against history: {e}")
            return None

    def _collect_tokens(self) -> int:
        tokens = 0
        for agent in (self.creator, self.quality_gate.judge, self.quality_gate.trickster, self.solver):
            if agent is not None:
                tokens += agent.consume_usage()
        return tokens

    def _update_stats(self, success: bool, processing_time: float) -> None:
        """Update orchestrator statistics."""
        self.stats["total_generations"] += 1
        self.stats["last_generation_time"] = datetime.now(timezone.utc).isoformat()

        if success:
            self.stats["successful_generations"] += 1
        else:
            self.stats["failed_generations"] += 1

        # Update average processing time
        total = self.stats["total_generations"]
        current_avg = self.stats["average_processing_time"]
        self.stats["average_processing_time"] = ((current_avg * (total - 1)) + processing_time) / total

    def get_status(self) -> Dict[str, Any]:
        """Get current orchestrator status and statistics."""
        agents = {
            "creator": self.creator.get_agent_metadata(),
            "judge": self.quality_gate.judge.get_agent_metadata(),
            "trickster": self.quality_gate.trickster.get_agent_metadata(),
        }
        if self.solver is not None:
            agents["solver"] = self.solver.get_agent_metadata()

        return {
            "orchestrator_status": "operational",
            "agents": agents,
            "statistics": dict(self.stats),
        }
