from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from worker_runtime.domain.sticky.value_objects.execution_key import ExecutionKey


@dataclass
class DecisionTask:
    """
    A unit of decision work handed out by the orchestration service.

    Attributes:
        task_token (str): Opaque token identifying the task to the service.
        workflow_id (str): Workflow the task belongs to.
        run_id (str): Run of that workflow.
        workflow_type (str): Name used to look up the registered handler.
        task_list (str): Task list the execution is scheduled on.
        events (list[dict]): History events; partial when delivered on a sticky task list.
        previous_started_event_id (int): Last event id the previous decision saw.
        stream_id (str | None): Internal Stream ID (assigned by Redis).
        source_stream (str | None): Stream the task was read from.
    """
    task_token: str
    workflow_id: str
    run_id: str
    workflow_type: str
    task_list: str
    events: list[dict] = field(default_factory=list)
    previous_started_event_id: int = 0
    stream_id: str | None = None
    source_stream: str | None = None

    @property
    def execution_key(self) -> ExecutionKey:
        return ExecutionKey(self.workflow_id, self.run_id)

    @property
    def is_full_history(self) -> bool:
        """True when the history starts at the first event, i.e. no sticky state is assumed."""
        return bool(self.events) and self.events[0].get("event_id") == 1


@dataclass
class DecisionResult:
    """
    Outcome of processing one decision task.

    Attributes:
        decisions (list[dict]): Commands for the service (schedule activity, complete, ...).
        completed (bool): Whether the workflow execution finished with this decision.
    """
    decisions: list[dict] = field(default_factory=list)
    completed: bool = False


class IWorkflowService(ABC):
    """
    Interface for the remote orchestration service the worker talks to.

    Implementations raise ``WorkflowServiceError`` subclasses; anything not marked
    non-retryable is retried by the caller.
    """
    @abstractmethod
    async def poll_for_decision_tasks(
        self,
        task_list: str,
        sticky_task_list: str | None,
        identity: str,
        block_ms: int = 2000,
    ) -> list[DecisionTask]:
        """Long-polls the normal and sticky task lists; empty when nothing arrived."""
        pass

    @abstractmethod
    async def respond_decision_task_completed(
        self,
        task: DecisionTask,
        result: DecisionResult,
        sticky_task_list: str | None,
        sticky_generation: int = 0,
    ) -> None:
        """
        Reports decisions. When sticky_task_list is set, asks the service to route the
        execution's next tasks there, tagged with the cache generation holding its state.
        """
        pass

    @abstractmethod
    async def respond_decision_task_failed(self, task: DecisionTask, cause: str) -> None:
        pass

    @abstractmethod
    async def reset_sticky_task_list(
        self, key: ExecutionKey, task_list: str, generation: int
    ) -> None:
        """
        Stops routing the execution to this worker's sticky task list.
        The generation lets the service ignore a reset that predates a newer sticky entry.
        """
        pass
