import asyncio
import threading
from collections.abc import Callable

from worker_runtime.application.resilience.retry import retry
from worker_runtime.domain.resilience.value_objects.retry_policy import RetryPolicy
from worker_runtime.domain.sticky.value_objects.execution_key import EvictionNotice
from worker_runtime.domain.workflow.exceptions import is_service_error_retryable
from worker_runtime.ports.secondary.metrics import IWorkerMetrics
from worker_runtime.ports.secondary.workflow_service import IWorkflowService
from worker_runtime.shared.logger import get_logger

logger = get_logger(__name__)


class StickyResetDispatcher:
    """
    Turns cache eviction notices into fire-and-forget ``reset_sticky_task_list`` calls.

    Used as the cache's ``on_evict`` listener. Calling it never blocks: the notice is
    handed to the event loop and the reset runs as its own task, retried with the
    service policy. Failures are logged and counted, never raised to the cache.
    Notices that arrive before ``start`` are held and sent once the loop is bound.
    """

    def __init__(
        self,
        service: IWorkflowService,
        policy: RetryPolicy,
        metrics: IWorkerMetrics | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        self._service = service
        self._policy = policy
        self._metrics = metrics
        self._cancel_event = cancel_event
        self._is_stale: Callable[[EvictionNotice], bool] | None = None
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: list[EvictionNotice] = []
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    def use_staleness_check(self, is_stale: Callable[[EvictionNotice], bool]) -> None:
        """Skips resets for keys that were cached again after the eviction."""
        self._is_stale = is_stale

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        with self._lock:
            self._loop = loop
            pending, self._pending = self._pending, []
        for notice in pending:
            loop.call_soon_threadsafe(self._spawn, notice)

    def __call__(self, notice: EvictionNotice) -> None:
        with self._lock:
            if self._closed:
                logger.warning(
                    "sticky_reset_dropped",
                    workflow_id=notice.key.workflow_id,
                    run_id=notice.key.run_id,
                    reason="dispatcher_closed",
                )
                return
            loop = self._loop
            if loop is None:
                self._pending.append(notice)
                return
        loop.call_soon_threadsafe(self._spawn, notice)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def close(self) -> None:
        """Stops accepting notices and waits for the resets already dispatched."""
        with self._lock:
            self._closed = True
        # let call_soon_threadsafe callbacks already queued create their tasks
        await asyncio.sleep(0)
        if self._tasks:
            logger.info("sticky_reset_dispatcher_draining", in_flight=self.in_flight)
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, notice: EvictionNotice) -> None:
        task = asyncio.get_running_loop().create_task(self._reset(notice))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _reset(self, notice: EvictionNotice) -> None:
        key = notice.key
        if self._is_stale is not None and self._is_stale(notice):
            logger.info(
                "sticky_reset_skipped_stale",
                workflow_id=key.workflow_id,
                run_id=key.run_id,
                generation=notice.generation,
            )
            self._record("skipped")
            return

        try:
            await retry(
                lambda: self._service.reset_sticky_task_list(key, notice.task_list, notice.generation),
                self._policy,
                is_service_error_retryable,
                cancel_event=self._cancel_event,
            )
        except Exception as e:
            logger.error(
                "sticky_reset_failed",
                workflow_id=key.workflow_id,
                run_id=key.run_id,
                task_list=notice.task_list,
                error=str(e),
            )
            self._record("failed")
            return

        logger.info(
            "sticky_reset_sent",
            workflow_id=key.workflow_id,
            run_id=key.run_id,
            task_list=notice.task_list,
        )
        self._record("success")

    def _record(self, status: str) -> None:
        if self._metrics:
            self._metrics.record_sticky_reset(status)
