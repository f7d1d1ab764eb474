"""Error taxonomy for the Daily Puzzle Engine."""

import math
from datetime import datetime, timezone
from typing import Optional


class PuzzleEngineError(Exception):
    """Base class for all engine errors."""

    code = "ENGINE_ERROR"


# Provider errors

class ProviderError(PuzzleEngineError):
    """The AI provider could not produce a usable response."""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ProviderTransientError(ProviderError):
    """Network failure or 5xx response; retryable with backoff."""

    code = "PROVIDER_TRANSIENT"


class ProviderTimeoutError(ProviderTransientError):
    """A provider call exceeded its deadline."""

    code = "PROVIDER_TIMEOUT"


class ProviderResponseError(ProviderError):
    """The provider answered but the payload was not a valid candidate."""

    code = "PROVIDER_BAD_RESPONSE"


class QuotaExceededError(ProviderError):
    """Provider quota exhausted; retryable only after the reset window."""

    code = "QUOTA_EXCEEDED"

    def __init__(
        self,
        quota_type: str = "minute",
        reset_time: Optional[datetime] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(f"AI quota exceeded for {quota_type}", provider=provider, status_code=429)
        self.quota_type = quota_type
        self.reset_time = reset_time

    def get_reset_message(self, now: Optional[datetime] = None) -> str:
        """Human-readable estimate of when the quota resets."""
        if not self.reset_time:
            return "Quota will reset soon. Please try again in a few minutes."

        now = now or datetime.now(timezone.utc)
        reset_time = self.reset_time
        if reset_time.tzinfo is None:
            reset_time = reset_time.replace(tzinfo=timezone.utc)

        diff_minutes = math.ceil((reset_time - now).total_seconds() / 60)
        if diff_minutes <= 1:
            return "Quota resets in less than a minute."
        if diff_minutes < 60:
            return f"Quota resets in {diff_minutes} minutes."

        hours = diff_minutes // 60
        return f"Quota resets in {hours} hour{'s' if hours > 1 else ''}."


# Orchestrator control signals (never surfaced to callers)

class GenerationRejected(PuzzleEngineError):
    """A candidate was discarded; the orchestrator moves to its next attempt."""

    code = "GENERATION_REJECTED"


class QualityRejected(GenerationRejected):
    code = "QUALITY_REJECTED"

    def __init__(self, verdict: str, overall_score: float, adversarial_passed: bool):
        super().__init__(
            f"Quality verdict {verdict} (score {overall_score:.1f}, adversarial passed: {adversarial_passed})"
        )
        self.verdict = verdict
        self.overall_score = overall_score
        self.adversarial_passed = adversarial_passed


class UniquenessConflict(GenerationRejected):
    code = "UNIQUENESS_CONFLICT"

    def __init__(self, fingerprint_hash: str):
        super().__init__(f"Fingerprint {fingerprint_hash[:12]} already exists")
        self.fingerprint_hash = fingerprint_hash


class TotalGenerationFailure(PuzzleEngineError):
    """All generation attempts were exhausted."""

    code = "TOTAL_GENERATION_FAILURE"

    def __init__(self, reason: str, attempts: int = 0, quota_exceeded: bool = False):
        super().__init__(reason)
        self.reason = reason
        self.attempts = attempts
        self.quota_exceeded = quota_exceeded


# Store errors

class StoreError(PuzzleEngineError):
    code = "STORE_ERROR"


class PersistenceConflict(StoreError):
    """Another writer already committed a puzzle for this date."""

    code = "PERSISTENCE_CONFLICT"

    def __init__(self, scheduled_for):
        super().__init__(f"A puzzle is already scheduled for {scheduled_for}")
        self.scheduled_for = scheduled_for


class StoreUnavailableError(StoreError):
    """The persistent store is unreachable or timed out."""

    code = "STORE_UNAVAILABLE"


# Caller errors

class MalformedDateInput(PuzzleEngineError, ValueError):
    code = "MALFORMED_DATE"


class DateRangeError(PuzzleEngineError, ValueError):
    code = "INVALID_DATE_RANGE"
