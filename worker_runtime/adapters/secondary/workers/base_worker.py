from abc import ABC, abstractmethod

from worker_runtime.domain.sticky.entities.execution_state import WorkflowExecutionState
from worker_runtime.ports.secondary.workflow_service import DecisionResult, DecisionTask


class WorkflowHandler(ABC):
    @property
    @abstractmethod
    def workflow_type(self) -> str:
        pass

    def new_state(self, task: DecisionTask) -> WorkflowExecutionState:
        return WorkflowExecutionState(key=task.execution_key, workflow_type=task.workflow_type)

    @abstractmethod
    async def process(self, task: DecisionTask, state: WorkflowExecutionState) -> DecisionResult:
        pass
