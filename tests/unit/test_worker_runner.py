import asyncio
import itertools
from unittest.mock import AsyncMock

import pytest

from worker_runtime.adapters.secondary.workers.activity_sequence_workflow import (
    ActivitySequenceWorkflow,
)
from worker_runtime.domain.workflow.exceptions import ServiceUnavailableError
from worker_runtime.ports.secondary.workflow_service import DecisionTask
from worker_runtime.shared.config import Settings
from worker_runtime.worker import WorkerRunner


def make_settings(**overrides) -> Settings:
    values = {
        "STICKY_CACHE_SIZE": 5,
        "DECISION_POLLERS": 1,
        "POLL_BLOCK_MS": 10,
        "POLL_RETRY_INITIAL_INTERVAL_SECONDS": 0.001,
        "POLL_RETRY_MAX_INTERVAL_SECONDS": 0.01,
        "SERVICE_RETRY_INITIAL_INTERVAL_SECONDS": 0.001,
        "SERVICE_RETRY_MAX_INTERVAL_SECONDS": 0.01,
    }
    values.update(overrides)
    return Settings(**values)


def new_execution_task(task_id: int) -> DecisionTask:
    # an execution that blocks on an activity, so its state stays cached
    return DecisionTask(
        task_token=f"token-{task_id}",
        workflow_id=f"testID{task_id}",
        run_id=f"runID{task_id}",
        workflow_type="activity_sequence",
        task_list="tasklist",
        events=[{
            "event_id": 1,
            "event_type": "WorkflowExecutionStarted",
            "attributes": {"activities": ["testActivity"]},
        }],
    )


async def run_until(runner: WorkerRunner, event: asyncio.Event, timeout: float = 5.0) -> bool:
    worker_task = asyncio.create_task(runner.run())
    try:
        await asyncio.wait_for(event.wait(), timeout=timeout)
        return True
    except TimeoutError:
        return False
    finally:
        runner.stop()
        await worker_task


class TestWorkerRunner:
    @pytest.fixture
    def mock_service(self):
        service = AsyncMock()
        service.respond_decision_task_completed.return_value = None
        service.respond_decision_task_failed.return_value = None
        service.reset_sticky_task_list.return_value = None
        return service

    def test_sticky_task_list_derived_from_identity(self, mock_service):
        runner = WorkerRunner(mock_service, task_list="tasklist", config=make_settings(), metrics=None)

        assert runner.sticky_task_list == f"tasklist:{runner.identity}"
        assert runner.cache.capacity == 5

    def test_zero_cache_size_disables_sticky_execution(self, mock_service):
        runner = WorkerRunner(
            mock_service, task_list="tasklist", config=make_settings(STICKY_CACHE_SIZE=0), metrics=None
        )

        assert runner.cache is None
        assert runner.sticky_task_list is None

    @pytest.mark.asyncio
    async def test_reset_sticky_on_eviction(self, mock_service):
        cache_size = 5
        counter = itertools.count(1)

        async def poll(**kwargs):
            task_id = next(counter)
            if task_id <= cache_size + 1:
                return [new_execution_task(task_id)]
            await asyncio.sleep(0.01)
            return []

        reset_called = asyncio.Event()

        async def reset(key, task_list, generation):
            reset_called.set()

        mock_service.poll_for_decision_tasks.side_effect = poll
        mock_service.reset_sticky_task_list.side_effect = reset

        runner = WorkerRunner(
            mock_service, task_list="tasklist", config=make_settings(STICKY_CACHE_SIZE=cache_size), metrics=None
        )
        runner.register_handler(ActivitySequenceWorkflow())

        assert await run_until(runner, reset_called) is True
        mock_service.reset_sticky_task_list.assert_awaited_once()
        evicted_key, task_list, _ = mock_service.reset_sticky_task_list.await_args.args
        assert evicted_key.workflow_id == "testID1"
        assert task_list == "tasklist"
        # shutdown releases every cached state
        assert runner.cache.size() == 0

    @pytest.mark.asyncio
    async def test_poll_failures_throttle_and_recover(self, mock_service):
        outcomes = iter([
            ServiceUnavailableError("poll_for_decision_tasks", "down"),
            ServiceUnavailableError("poll_for_decision_tasks", "down"),
        ])
        recovered = asyncio.Event()
        failure_counts = []

        async def poll(**kwargs):
            failure_counts.append(runner._poll_retrier.failure_count)
            outcome = next(outcomes, None)
            if outcome is not None:
                raise outcome
            recovered.set()
            await asyncio.sleep(0.01)
            return []

        mock_service.poll_for_decision_tasks.side_effect = poll
        runner = WorkerRunner(mock_service, task_list="tasklist", config=make_settings(), metrics=None)

        assert await run_until(runner, recovered) is True
        assert failure_counts[:3] == [0, 1, 2]
        assert runner._poll_retrier.failure_count == 0

    @pytest.mark.asyncio
    async def test_completion_reports_sticky_task_list(self, mock_service):
        delivered = iter([[new_execution_task(1)]])
        reported = asyncio.Event()

        async def poll(**kwargs):
            tasks = next(delivered, None)
            if tasks is None:
                await asyncio.sleep(0.01)
                return []
            return tasks

        async def respond(task, result, sticky_task_list, generation):
            reported.set()

        mock_service.poll_for_decision_tasks.side_effect = poll
        mock_service.respond_decision_task_completed.side_effect = respond
        runner = WorkerRunner(mock_service, task_list="tasklist", config=make_settings(), metrics=None)
        runner.register_handler(ActivitySequenceWorkflow())

        assert await run_until(runner, reported) is True
        _, result, sticky_task_list, generation = mock_service.respond_decision_task_completed.await_args.args
        assert sticky_task_list == runner.sticky_task_list
        assert generation >= 1
        assert result.decisions == [{"decision_type": "ScheduleActivityTask", "activity_type": "testActivity"}]
