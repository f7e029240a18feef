from dataclasses import dataclass

from worker_runtime.domain.sticky.exceptions import InvalidExecutionKeyError


@dataclass(frozen=True)
class ExecutionKey:
    """Identity of one workflow execution instance."""

    workflow_id: str
    run_id: str

    def __post_init__(self) -> None:
        if not self.workflow_id or not self.run_id:
            raise InvalidExecutionKeyError(self.workflow_id, self.run_id)

    def __str__(self) -> str:
        return f"{self.workflow_id}/{self.run_id}"

    def to_dict(self) -> dict:
        return {"workflow_id": self.workflow_id, "run_id": self.run_id}


@dataclass(frozen=True)
class EvictionNotice:
    """
    Handed to the cache's eviction listener when an entry is pushed out by capacity.

    Attributes:
        key (ExecutionKey): The evicted execution.
        task_list (str): Task list the execution was last processed from.
        generation (int): Generation of the evicted entry. A later put of the same key
            always carries a higher generation, so stale notices can be recognised.
    """

    key: ExecutionKey
    task_list: str
    generation: int
