"""Retry policy built on tenacity.

One policy type serves two loops: the provider adapter retries transient
network failures with exponential backoff, and the generation orchestrator
retries rejected candidates with no delay.
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_none,
    wait_random,
)

from .errors import GenerationRejected, ProviderError, ProviderTransientError, QuotaExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ExceptionTypes = Tuple[Type[BaseException], ...]


class RetryPolicy:
    """Bounded retry with exponential backoff and optional jitter.

    ``max_attempts`` counts every try, so ``max_attempts=3`` means one call
    and at most two retries.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        multiplier: float = 2.0,
        max_delay: float = 10.0,
        jitter: float = 0.0,
        retry_on: ExceptionTypes = (Exception,),
        give_up_on: ExceptionTypes = (),
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        name: str = "retry",
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.jitter = jitter
        self.retry_on = retry_on
        self.give_up_on = give_up_on
        self.name = name
        self._sleep = sleep

    @classmethod
    def for_provider(cls, settings, **kwargs) -> "RetryPolicy":
        """Backoff policy for transient provider failures."""
        return cls(
            max_attempts=settings.provider_retry_attempts,
            initial_delay=settings.provider_retry_initial_delay,
            multiplier=settings.provider_retry_multiplier,
            max_delay=settings.provider_retry_max_delay,
            jitter=settings.provider_retry_jitter,
            retry_on=(ProviderTransientError,),
            name="provider",
            **kwargs,
        )

    @classmethod
    def for_generation(cls, max_attempts: int, **kwargs) -> "RetryPolicy":
        """Attempt loop for the orchestrator. Quota errors are never retried."""
        return cls(
            max_attempts=max_attempts,
            initial_delay=0.0,
            retry_on=(ProviderError, GenerationRejected),
            give_up_on=(QuotaExceededError,),
            name="generation",
            **kwargs,
        )

    def should_retry(self, error: BaseException) -> bool:
        if self.give_up_on and isinstance(error, self.give_up_on):
            return False
        return isinstance(error, self.retry_on)

    def delays(self) -> List[float]:
        """Un-jittered wait before each retry."""
        return [
            min(self.initial_delay * (self.multiplier ** i), self.max_delay)
            for i in range(self.max_attempts - 1)
        ]

    def _wait(self):
        if self.initial_delay <= 0:
            return wait_none()
        wait = wait_exponential(
            multiplier=self.initial_delay,
            exp_base=self.multiplier,
            max=self.max_delay,
        )
        if self.jitter > 0:
            wait = wait + wait_random(0, self.jitter)
        return wait

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"{self.name} attempt {retry_state.attempt_number}/{self.max_attempts} failed: {error}"
        )

    def attempts(self) -> AsyncRetrying:
        """Tenacity attempt iterator for loops that need the attempt number.

        The last error is re-raised once attempts run out.
        """
        kwargs = {}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            retry=retry_if_exception(self.should_retry),
            before_sleep=self._log_retry,
            reraise=True,
            **kwargs,
        )

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await ``fn`` under this policy."""
        async for attempt in self.attempts():
            with attempt:
                return await fn(*args, **kwargs)
        raise RuntimeError("retry loop exited without a result")  # pragma: no cover
