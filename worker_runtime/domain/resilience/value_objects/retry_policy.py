import random
from dataclasses import dataclass, replace

from worker_runtime.domain.resilience.exceptions.resilience_exceptions import (
    InvalidRetryPolicyError,
)

UNLIMITED = 0


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff with an optional cap, retry budget and deadline.

    Durations are in seconds. ``maximum_interval``, ``expiration_interval`` and
    ``maximum_attempts`` use 0 for "unlimited". ``maximum_attempts`` counts retries,
    so a budget of 3 allows the initial call plus three retries.

    Example:
        policy = RetryPolicy(initial_interval=0.2).with_maximum_attempts(5)
        policy.compute_next_delay(1, elapsed=0.0)  # 0.2
        policy.compute_next_delay(6, elapsed=0.0)  # None
    """

    initial_interval: float
    backoff_coefficient: float = 2.0
    maximum_interval: float = 10.0
    expiration_interval: float = 60.0
    maximum_attempts: int = UNLIMITED
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.initial_interval <= 0:
            raise InvalidRetryPolicyError("initial_interval", self.initial_interval, "must be > 0")
        if self.backoff_coefficient <= 1.0:
            raise InvalidRetryPolicyError(
                "backoff_coefficient", self.backoff_coefficient, "must be > 1.0"
            )
        if self.maximum_interval < 0:
            raise InvalidRetryPolicyError("maximum_interval", self.maximum_interval, "must be >= 0")
        if self.maximum_interval and self.maximum_interval < self.initial_interval:
            raise InvalidRetryPolicyError(
                "maximum_interval", self.maximum_interval, "must be >= initial_interval"
            )
        if self.expiration_interval < 0:
            raise InvalidRetryPolicyError(
                "expiration_interval", self.expiration_interval, "must be >= 0"
            )
        if self.maximum_attempts < 0:
            raise InvalidRetryPolicyError("maximum_attempts", self.maximum_attempts, "must be >= 0")
        if not 0.0 <= self.jitter < 1.0:
            raise InvalidRetryPolicyError("jitter", self.jitter, "must be in [0, 1)")

    def with_maximum_interval(self, maximum_interval: float) -> "RetryPolicy":
        return replace(self, maximum_interval=maximum_interval)

    def with_maximum_attempts(self, maximum_attempts: int) -> "RetryPolicy":
        return replace(self, maximum_attempts=maximum_attempts)

    def with_expiration_interval(self, expiration_interval: float) -> "RetryPolicy":
        return replace(self, expiration_interval=expiration_interval)

    def compute_next_delay(self, attempt: int, elapsed: float) -> float | None:
        """
        Delay before retry number ``attempt`` (1-based), or None to stop.

        Args:
            attempt: The retry about to be made; the initial call is attempt 0 and is never delayed.
            elapsed: Seconds since the first attempt started.
        """
        if self.maximum_attempts != UNLIMITED and attempt > self.maximum_attempts:
            return None

        remaining = None
        if self.expiration_interval != UNLIMITED:
            remaining = self.expiration_interval - elapsed
            if remaining <= 0:
                return None

        # attempt=1 -> initial_interval, attempt=2 -> initial_interval * coefficient, ...
        exponent = max(attempt - 1, 0)
        try:
            delay = self.initial_interval * self.backoff_coefficient**exponent
        except OverflowError:
            delay = float("inf")

        if self.maximum_interval != UNLIMITED:
            delay = min(delay, self.maximum_interval)
        if remaining is not None:
            delay = min(delay, remaining)

        if self.jitter:
            delay = delay * (1.0 - self.jitter) + random.uniform(0.0, delay * self.jitter)
        return delay

    def to_dict(self) -> dict:
        return {
            "initial_interval": self.initial_interval,
            "backoff_coefficient": self.backoff_coefficient,
            "maximum_interval": self.maximum_interval,
            "expiration_interval": self.expiration_interval,
            "maximum_attempts": self.maximum_attempts,
            "jitter": self.jitter,
        }
