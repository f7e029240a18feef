import asyncio
import threading

from worker_runtime.domain.resilience.value_objects.retry_policy import RetryPolicy


class ConcurrentRetrier:
    """
    Shared backoff clock driven by one rolling failure signal.

    Every caller of the same remote operation reports into one instance: repeated
    failures slow all of them down together, and a single success lets all of them
    resume immediately. Safe to share between threads and coroutines.

    Only the policy's attempt limit ends throttling. Its expiration interval does not
    apply: a streak of failures may last indefinitely, and callers must keep backing
    off for as long as it does.
    """

    def __init__(self, policy: RetryPolicy):
        self._policy = policy
        self._lock = threading.Lock()
        self._failure_count = 0

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def failed(self) -> None:
        with self._lock:
            self._failure_count += 1

    def succeeded(self) -> None:
        with self._lock:
            self._failure_count = 0

    def throttle_duration(self) -> float | None:
        """Seconds to wait before the next call, or None when no wait is needed."""
        with self._lock:
            failure_count = self._failure_count
        if failure_count == 0:
            return None
        # zero elapsed time keeps the expiration interval out of the computation
        return self._policy.compute_next_delay(failure_count, 0.0)

    async def throttle(self, cancel_event: asyncio.Event | None = None) -> None:
        """Sleeps for the current throttle duration; returns early once cancel_event is set."""
        delay = self.throttle_duration()
        if delay is None or delay <= 0:
            return
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except TimeoutError:
            pass
