from worker_runtime.adapters.secondary.workers.base_worker import WorkflowHandler
from worker_runtime.domain.sticky.entities.execution_state import WorkflowExecutionState
from worker_runtime.ports.secondary.workflow_service import DecisionResult, DecisionTask


class ActivitySequenceWorkflow(WorkflowHandler):
    """
    Runs the activities named in the start event one after another, then completes.

    The started event carries ``{"activities": [...]}`` in its attributes. Each decision
    schedules the next activity once the previous one has completed, so the execution
    stays open (and cached) between tasks.
    """
    @property
    def workflow_type(self) -> str:
        return "activity_sequence"

    async def process(self, task: DecisionTask, state: WorkflowExecutionState) -> DecisionResult:
        for event in state.apply_events(task.events):
            event_type = event.get("event_type")
            attributes = event.get("attributes", {})
            if event_type == "WorkflowExecutionStarted":
                state.data["remaining"] = list(attributes.get("activities", []))
                state.data["results"] = []
                state.data["scheduled"] = None
            elif event_type == "ActivityTaskCompleted":
                state.data["results"].append(attributes.get("result"))
                state.data["scheduled"] = None
            elif event_type == "ActivityTaskFailed":
                return DecisionResult(
                    decisions=[{
                        "decision_type": "FailWorkflowExecution",
                        "reason": attributes.get("reason", "activity failed"),
                    }],
                    completed=True,
                )

        if state.data.get("scheduled"):
            # still waiting for the scheduled activity
            return DecisionResult()

        remaining = state.data.get("remaining", [])
        if not remaining:
            return DecisionResult(
                decisions=[{
                    "decision_type": "CompleteWorkflowExecution",
                    "result": state.data.get("results", []),
                }],
                completed=True,
            )

        activity = remaining.pop(0)
        state.data["scheduled"] = activity
        return DecisionResult(
            decisions=[{"decision_type": "ScheduleActivityTask", "activity_type": activity}]
        )
