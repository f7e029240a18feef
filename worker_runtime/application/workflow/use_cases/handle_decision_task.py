import asyncio
import time

from worker_runtime.adapters.secondary.cache.workflow_execution_cache import WorkflowExecutionCache
from worker_runtime.adapters.secondary.workers.base_worker import WorkflowHandler
from worker_runtime.application.resilience.retry import retry
from worker_runtime.domain.resilience.value_objects.retry_policy import RetryPolicy
from worker_runtime.domain.workflow.exceptions import HandlerNotFoundError, is_service_error_retryable
from worker_runtime.ports.secondary.metrics import IWorkerMetrics
from worker_runtime.ports.secondary.workflow_service import (
    DecisionResult,
    DecisionTask,
    IWorkflowService,
)
from worker_runtime.shared.logger import get_logger, task_context

logger = get_logger(__name__)


class HandleDecisionTaskUseCase:
    """
    Runs one decision task against the execution's cached state, or a fresh one.

    Key Features:
        - Sticky hit: the cached state only applies the new events of a partial history.
        - Consistency check: a cached state met by a full-history task is dropped, since
          the service evidently no longer considers this worker sticky for it.
        - Ownership: states go back into the cache while the execution is open, and are
          removed (and closed) once it completes or the decision fails.
    """

    def __init__(
        self,
        service: IWorkflowService,
        handlers: dict[str, WorkflowHandler],
        service_policy: RetryPolicy,
        cache: WorkflowExecutionCache | None = None,
        sticky_task_list: str | None = None,
        metrics: IWorkerMetrics | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        self._service = service
        self._handlers = handlers
        self._service_policy = service_policy
        self._cache = cache
        self._sticky_task_list = sticky_task_list if cache is not None else None
        self._metrics = metrics
        self._cancel_event = cancel_event

    async def execute(self, task: DecisionTask) -> None:
        with task_context(**task.execution_key.to_dict()):
            await self._execute(task)

    async def _execute(self, task: DecisionTask) -> None:
        handler = self._handlers.get(task.workflow_type)
        if handler is None:
            logger.error("handler_not_found", workflow_type=task.workflow_type)
            await self._report_failure(task, str(HandlerNotFoundError(task.workflow_type)))
            return

        key = task.execution_key
        start_time = time.time()

        state = self._cache.get(key) if self._cache is not None else None
        if state is not None and task.is_full_history:
            logger.warning("sticky_cache_inconsistent", task_list=task.task_list)
            self._cache.remove(key)
            state = None

        cold_start = state is None
        if cold_start:
            state = handler.new_state(task)
        logger.info("processing_decision_task", cold_start=cold_start, events=len(task.events))

        try:
            result = await handler.process(task, state)
        except Exception as e:
            logger.error("decision_task_failed", error=str(e), exc_info=True)
            self._release(key, state)
            self._record(task, "FAILED", start_time)
            await self._report_failure(task, str(e))
            return

        generation = 0
        if result.completed or self._cache is None:
            self._release(key, state)
        else:
            generation = self._cache.put(key, state, task.task_list)

        self._record(task, "COMPLETED" if result.completed else "SUCCESS", start_time)
        await self._report_completion(task, result, generation)

    async def _report_completion(self, task: DecisionTask, result: DecisionResult, generation: int) -> None:
        sticky_task_list = None if result.completed else self._sticky_task_list
        try:
            await retry(
                lambda: self._service.respond_decision_task_completed(
                    task, result, sticky_task_list, generation
                ),
                self._service_policy,
                is_service_error_retryable,
                cancel_event=self._cancel_event,
            )
        except Exception as e:
            # the service will hand the task out again with full history
            logger.error("respond_decision_task_completed_failed", error=str(e))
            if self._cache is not None:
                self._cache.remove(task.execution_key)

    async def _report_failure(self, task: DecisionTask, cause: str) -> None:
        try:
            await retry(
                lambda: self._service.respond_decision_task_failed(task, cause),
                self._service_policy,
                is_service_error_retryable,
                cancel_event=self._cancel_event,
            )
        except Exception as e:
            logger.error("respond_decision_task_failed_failed", error=str(e))

    def _release(self, key, state) -> None:
        """Closes ``state``, dropping its cache entry only if the entry still holds it."""
        # another task may have cached a newer state for the key meanwhile; leave that one alone
        if self._cache is not None and self._cache.discard(key, state):
            return
        state.close()

    def _record(self, task: DecisionTask, status: str, start_time: float) -> None:
        if self._metrics:
            self._metrics.record_decision_task(task.workflow_type, status, time.time() - start_time)
