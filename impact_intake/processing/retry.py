"""
Retry policy with a capped exponential backoff table.

The policy only computes when the next attempt may run. Invoking the
pipeline again at or after that time is the job of an external scheduler.
"""

from datetime import datetime, timedelta

from pydantic import BaseModel

from impact_intake.processing.config import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAYS_MS, PipelineConfig


class RetryDecision(BaseModel):
    """
    Outcome of a failed attempt.

    Attributes:
        retry_count: Attempt counter after this failure
        should_retry: False once the retry ceiling is exceeded
        delay_ms: Backoff before the next attempt (None when not retrying)
        next_retry_at: Earliest time of the next attempt (None when not retrying)
    """

    retry_count: int
    should_retry: bool
    delay_ms: int | None = None
    next_retry_at: datetime | None = None


class RetryPolicy:
    """
    Bounded retry with delays taken from a fixed table.

    With the defaults the delays are 1s, 2s, 4s, 8s, 16s indexed by
    min(retry_count - 1, 4), and at most 3 retries are scheduled.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        delays_ms: list[int] | tuple[int, ...] = DEFAULT_RETRY_DELAYS_MS,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if not delays_ms:
            raise ValueError("delays_ms must contain at least one delay")
        self.max_retries = max_retries
        self.delays_ms = tuple(delays_ms)

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "RetryPolicy":
        return cls(max_retries=config.max_retries, delays_ms=config.retry_delays_ms)

    def delay_for(self, retry_count: int) -> int:
        """
        Backoff in milliseconds for the given (1-based) retry count.

        Examples:
            >>> RetryPolicy().delay_for(1)
            1000
            >>> RetryPolicy().delay_for(9)
            16000
        """
        if retry_count < 1:
            raise ValueError("retry_count must be >= 1")
        index = min(retry_count - 1, len(self.delays_ms) - 1)
        return self.delays_ms[index]

    def on_failure(self, previous_retry_count: int, now: datetime) -> RetryDecision:
        """
        Decide what happens after a failed attempt.

        Args:
            previous_retry_count: retry_count stored on the submission before this failure
            now: Time of the failure

        Returns:
            RetryDecision with the incremented retry count
        """
        retry_count = previous_retry_count + 1
        if retry_count > self.max_retries:
            return RetryDecision(retry_count=retry_count, should_retry=False)

        delay = self.delay_for(retry_count)
        return RetryDecision(
            retry_count=retry_count,
            should_retry=True,
            delay_ms=delay,
            next_retry_at=now + timedelta(milliseconds=delay),
        )
