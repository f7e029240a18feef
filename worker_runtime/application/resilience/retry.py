import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from worker_runtime.domain.resilience.exceptions.resilience_exceptions import RetryCancelledError
from worker_runtime.domain.resilience.value_objects.retry_policy import RetryPolicy
from worker_runtime.shared.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    is_retryable: Callable[[BaseException], bool] | None = None,
    *,
    cancel_event: asyncio.Event | None = None,
) -> T:
    """
    Awaits ``operation`` until it succeeds, the policy gives up, or the caller cancels.

    Logic:
    1. Await the operation; return its result on success.
    2. Non-retryable error (``is_retryable`` returns False): re-raise it at once.
    3. Ask the policy for the next delay; None re-raises the last operation error.
    4. Wait out the delay. Setting ``cancel_event`` during the wait raises
       RetryCancelledError chained from the last operation error. Task cancellation
       and ``asyncio.timeout`` also interrupt the wait and propagate as usual.
    """
    started_at = time.monotonic()
    attempt = 0

    while True:
        try:
            return await operation()
        except Exception as error:
            last_error = error

        if is_retryable is not None and not is_retryable(last_error):
            logger.warning(
                "retry_aborted_non_retryable",
                attempt=attempt,
                error=str(last_error),
                error_type=type(last_error).__name__,
            )
            raise last_error

        attempt += 1
        delay = policy.compute_next_delay(attempt, time.monotonic() - started_at)
        if delay is None:
            logger.warning(
                "retry_exhausted",
                attempts=attempt,
                error=str(last_error),
                error_type=type(last_error).__name__,
            )
            raise last_error

        logger.debug("retry_backoff", attempt=attempt, delay_seconds=delay, error=str(last_error))
        if await _wait_or_cancelled(delay, cancel_event):
            raise RetryCancelledError(attempt, last_error) from last_error


async def _wait_or_cancelled(delay: float, cancel_event: asyncio.Event | None) -> bool:
    """Sleeps for ``delay`` seconds; returns True if cancel_event fired first."""
    if cancel_event is None:
        await asyncio.sleep(delay)
        return False
    if cancel_event.is_set():
        return True
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except TimeoutError:
        return False
    return True
