import asyncio
import signal
from uuid import uuid4

from prometheus_client import start_http_server

from worker_runtime.adapters.secondary.cache.sticky_reset_dispatcher import StickyResetDispatcher
from worker_runtime.adapters.secondary.cache.workflow_execution_cache import WorkflowExecutionCache
from worker_runtime.adapters.secondary.redis.redis_workflow_service import RedisWorkflowService
from worker_runtime.adapters.secondary.workers.activity_sequence_workflow import (
    ActivitySequenceWorkflow,
)
from worker_runtime.adapters.secondary.workers.base_worker import WorkflowHandler
from worker_runtime.application.workflow.use_cases.handle_decision_task import (
    HandleDecisionTaskUseCase,
)
from worker_runtime.domain.resilience.entities.concurrent_retrier import ConcurrentRetrier
from worker_runtime.ports.secondary.workflow_service import IWorkflowService
from worker_runtime.shared.config import Settings, settings
from worker_runtime.shared.logger import bind_context, configure_logging, get_logger
from worker_runtime.shared.metrics import MetricsRegistry, metrics_registry
from worker_runtime.shared.retry_policies import poll_retry_policy, service_retry_policy

logger = get_logger(__name__)


class WorkerRunner:
    """Polls decision tasks, runs them against sticky cached state, and reports results."""

    def __init__(
        self,
        service: IWorkflowService,
        task_list: str | None = None,
        config: Settings = settings,
        metrics: MetricsRegistry | None = metrics_registry,
    ):
        self._service = service
        self._config = config
        self._metrics = metrics
        self._task_list = task_list or config.TASK_LIST
        self._identity = f"worker-{uuid4().hex[:8]}"
        self._handlers: dict[str, WorkflowHandler] = {}
        self._shutdown_event = asyncio.Event()
        self._poll_retrier = ConcurrentRetrier(poll_retry_policy(config))

        service_policy = service_retry_policy(config)
        self._dispatcher = StickyResetDispatcher(
            service, service_policy, metrics=metrics, cancel_event=self._shutdown_event
        )
        self._cache: WorkflowExecutionCache | None = None
        self._sticky_task_list: str | None = None
        if config.STICKY_CACHE_SIZE > 0:
            self._cache = WorkflowExecutionCache(
                config.STICKY_CACHE_SIZE, on_evict=self._dispatcher, metrics=metrics
            )
            self._dispatcher.use_staleness_check(self._cache.is_stale)
            self._sticky_task_list = f"{self._task_list}:{self._identity}"

        self._use_case = HandleDecisionTaskUseCase(
            service=service,
            handlers=self._handlers,
            service_policy=service_policy,
            cache=self._cache,
            sticky_task_list=self._sticky_task_list,
            metrics=metrics,
            cancel_event=self._shutdown_event,
        )

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def cache(self) -> WorkflowExecutionCache | None:
        return self._cache

    @property
    def sticky_task_list(self) -> str | None:
        return self._sticky_task_list

    def register_handler(self, handler: WorkflowHandler) -> None:
        self._handlers[handler.workflow_type] = handler

    def stop(self) -> None:
        self._shutdown_event.set()

    async def run(self) -> None:
        # pollers and reset tasks are spawned below and inherit this binding
        bind_context({"worker": self._identity})
        logger.info(
            "worker_starting",
            identity=self._identity,
            task_list=self._task_list,
            sticky_task_list=self._sticky_task_list,
            pollers=self._config.DECISION_POLLERS,
            poll_policy=self._poll_retrier.policy.to_dict(),
        )
        loop = asyncio.get_running_loop()

        installed_signals = []
        try:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self.stop)
                installed_signals.append(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            # - NotImplementedError: Signals not supported on some platforms (e.g. Windows)
            # - RuntimeError/ValueError: not running in the main thread
            pass

        self._dispatcher.start(loop)
        pollers = [
            asyncio.create_task(self._poll_loop(i)) for i in range(self._config.DECISION_POLLERS)
        ]
        try:
            await self._shutdown_event.wait()
        finally:
            for poller in pollers:
                poller.cancel()
            await asyncio.gather(*pollers, return_exceptions=True)
            await self._dispatcher.close()
            if self._cache is not None:
                cleared = self._cache.clear()
                logger.info("sticky_cache_cleared", entries=cleared)
            for sig in installed_signals:
                loop.remove_signal_handler(sig)

        logger.info("worker_shutdown_complete")

    async def _poll_loop(self, poller_id: int) -> None:
        while not self._shutdown_event.is_set():
            await self._poll_retrier.throttle(self._shutdown_event)
            if self._shutdown_event.is_set():
                break

            try:
                tasks = await self._service.poll_for_decision_tasks(
                    task_list=self._task_list,
                    sticky_task_list=self._sticky_task_list,
                    identity=self._identity,
                    block_ms=self._config.POLL_BLOCK_MS,
                )
            except Exception as e:
                self._poll_retrier.failed()
                self._record_poll("FAILED")
                logger.error(
                    "decision_poll_failed",
                    poller_id=poller_id,
                    failure_count=self._poll_retrier.failure_count,
                    error=str(e),
                )
                continue

            self._poll_retrier.succeeded()
            self._record_poll("SUCCESS" if tasks else "EMPTY")
            for task in tasks:
                try:
                    await self._use_case.execute(task)
                except Exception as e:
                    logger.error("decision_task_unhandled_error", poller_id=poller_id, error=str(e), exc_info=True)

    def _record_poll(self, status: str) -> None:
        if self._metrics:
            self._metrics.record_poll(status)


async def main():
    from worker_runtime.shared.redis_client import redis_client

    if settings.METRICS_ENABLED:
        start_http_server(settings.METRICS_PORT)

    runner = WorkerRunner(RedisWorkflowService(redis_client))
    runner.register_handler(ActivitySequenceWorkflow())
    try:
        await runner.run()
    finally:
        await redis_client.aclose()


if __name__ == "__main__":
    configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
    asyncio.run(main())
