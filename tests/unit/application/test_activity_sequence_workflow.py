import pytest

from worker_runtime.adapters.secondary.workers.activity_sequence_workflow import (
    ActivitySequenceWorkflow,
)
from worker_runtime.ports.secondary.workflow_service import DecisionTask


def make_task(events) -> DecisionTask:
    return DecisionTask(
        task_token="token",
        workflow_id="wf-1",
        run_id="run-1",
        workflow_type="activity_sequence",
        task_list="tasklist",
        events=events,
    )


@pytest.mark.asyncio
async def test_schedules_activities_in_order_then_completes():
    worker = ActivitySequenceWorkflow()
    task = make_task([
        {"event_id": 1, "event_type": "WorkflowExecutionStarted", "attributes": {"activities": ["a", "b"]}},
    ])
    state = worker.new_state(task)

    result = await worker.process(task, state)
    assert result.decisions == [{"decision_type": "ScheduleActivityTask", "activity_type": "a"}]

    result = await worker.process(make_task([
        {"event_id": 2, "event_type": "ActivityTaskCompleted", "attributes": {"result": 1}},
    ]), state)
    assert result.decisions[0]["activity_type"] == "b"
    assert result.completed is False

    result = await worker.process(make_task([
        {"event_id": 3, "event_type": "ActivityTaskCompleted", "attributes": {"result": 2}},
    ]), state)
    assert result.completed is True
    assert result.decisions == [{"decision_type": "CompleteWorkflowExecution", "result": [1, 2]}]


@pytest.mark.asyncio
async def test_waits_while_activity_is_scheduled():
    worker = ActivitySequenceWorkflow()
    task = make_task([
        {"event_id": 1, "event_type": "WorkflowExecutionStarted", "attributes": {"activities": ["a"]}},
    ])
    state = worker.new_state(task)
    await worker.process(task, state)

    result = await worker.process(make_task([{"event_id": 2, "event_type": "TimerFired"}]), state)

    assert result.decisions == []
    assert result.completed is False


@pytest.mark.asyncio
async def test_activity_failure_fails_workflow():
    worker = ActivitySequenceWorkflow()
    task = make_task([
        {"event_id": 1, "event_type": "WorkflowExecutionStarted", "attributes": {"activities": ["a"]}},
        {"event_id": 2, "event_type": "ActivityTaskFailed", "attributes": {"reason": "card declined"}},
    ])

    result = await worker.process(task, worker.new_state(task))

    assert result.completed is True
    assert result.decisions[0]["decision_type"] == "FailWorkflowExecution"
    assert result.decisions[0]["reason"] == "card declined"
