from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from worker_runtime.domain.sticky.value_objects.execution_key import ExecutionKey


@dataclass
class WorkflowExecutionState:
    """
    In-memory state of one workflow execution, kept between decision tasks.

    A worker that still holds this state only needs the history events it has not
    applied yet; a cold start has to rebuild it from the full history.
    """

    key: ExecutionKey
    workflow_type: str
    last_event_id: int = 0
    data: dict[str, Any] = field(default_factory=dict)
    closed: bool = False
    _cleanups: list[Callable[[], None]] = field(default_factory=list, repr=False)

    def new_events(self, events: list[dict]) -> list[dict]:
        """Returns the events this state has not applied yet."""
        return [e for e in events if e.get("event_id", 0) > self.last_event_id]

    def apply_events(self, events: list[dict]) -> list[dict]:
        pending = self.new_events(events)
        if pending:
            self.last_event_id = max(e["event_id"] for e in pending)
        return pending

    def on_close(self, callback: Callable[[], None]) -> None:
        self._cleanups.append(callback)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        cleanups, self._cleanups = self._cleanups, []
        for callback in reversed(cleanups):
            callback()
        self.data.clear()


@dataclass
class CachedExecution:
    """Cache slot: the owned state plus the metadata needed to evict it."""

    state: Any
    task_list: str
    generation: int
    last_access: float

    def touch(self, now: float) -> None:
        self.last_access = now
