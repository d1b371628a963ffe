"""
Retry Policy - bounded retries around the provider call
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from motionswap.config.constants import MAX_RETRY_ATTEMPTS, RETRY_BACKOFF_STEP_S
from motionswap.services.error_classifier import ErrorClassifier
from motionswap.services.observability import log_retry_attempt, logger


T = TypeVar("T")


class RetryPolicy:
    """
    Run a provider call with linear backoff

    Only errors the classifier marks retryable get another attempt. The
    error that ends the loop is re-raised with an ``attempts`` attribute.
    """

    def __init__(
        self,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        backoff_step_s: float = RETRY_BACKOFF_STEP_S,
        classifier: Optional[ErrorClassifier] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_step_s = backoff_step_s
        self.classifier = classifier or ErrorClassifier()
        self._sleep = sleep
        self.attempts = 0

    def delay_for_attempt(self, attempt: int) -> float:
        """
        Wait before the given 1-based attempt

        Args:
            attempt: Attempt about to start

        Returns:
            0 for the first attempt, then backoff_step_s * (attempt - 1)
        """
        if attempt <= 1:
            return 0.0
        return self.backoff_step_s * (attempt - 1)

    async def run(
        self,
        func: Callable[[], Awaitable[T]],
        generation_id: Optional[int] = None,
    ) -> T:
        """
        Call func until it succeeds, fails non-retryably or exhausts attempts

        Args:
            func: Zero-argument coroutine factory; called once per attempt
            generation_id: Optional generation ID for log context

        Returns:
            Result of the successful attempt

        Raises:
            Exception: The last error, with ``attempts`` set
        """
        self.attempts = 0

        for attempt in range(1, self.max_attempts + 1):
            delay = self.delay_for_attempt(attempt)
            if delay:
                await self._sleep(delay)

            self.attempts = attempt
            try:
                result = await func()
            except Exception as e:
                retryable = self.classifier.is_retryable(e)
                has_next = retryable and attempt < self.max_attempts
                log_retry_attempt(
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    retryable=retryable,
                    error=str(e),
                    delay_s=self.delay_for_attempt(attempt + 1) if has_next else 0,
                    generation_id=generation_id,
                )
                if not has_next:
                    e.attempts = attempt
                    raise
                continue

            if attempt > 1:
                logger.info(
                    "provider_retry_succeeded",
                    attempt=attempt,
                    generation_id=generation_id,
                )
            return result

        # Unreachable: the loop either returns or raises
        raise RuntimeError("retry loop exited without a result")
