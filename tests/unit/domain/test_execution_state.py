import pytest

from worker_runtime.domain.sticky.entities.execution_state import WorkflowExecutionState
from worker_runtime.domain.sticky.exceptions import InvalidExecutionKeyError
from worker_runtime.domain.sticky.value_objects.execution_key import ExecutionKey


class TestExecutionKey:
    def test_keys_are_value_objects(self):
        assert ExecutionKey("wf", "run") == ExecutionKey("wf", "run")
        assert hash(ExecutionKey("wf", "run")) == hash(ExecutionKey("wf", "run"))
        assert ExecutionKey("wf", "run") != ExecutionKey("wf", "run-2")

    @pytest.mark.parametrize("workflow_id, run_id", [("", "run"), ("wf", ""), ("", "")])
    def test_empty_parts_are_rejected(self, workflow_id, run_id):
        with pytest.raises(InvalidExecutionKeyError):
            ExecutionKey(workflow_id, run_id)

    def test_key_is_immutable(self):
        key = ExecutionKey("wf", "run")
        with pytest.raises(AttributeError):
            key.run_id = "other"

    def test_string_and_dict_forms(self):
        key = ExecutionKey("wf", "run")
        assert str(key) == "wf/run"
        assert key.to_dict() == {"workflow_id": "wf", "run_id": "run"}


class TestWorkflowExecutionState:
    @pytest.fixture
    def state(self):
        return WorkflowExecutionState(key=ExecutionKey("wf", "run"), workflow_type="test")

    def test_apply_events_skips_already_applied(self, state):
        first = state.apply_events([{"event_id": 1}, {"event_id": 2}])
        second = state.apply_events([{"event_id": 1}, {"event_id": 2}, {"event_id": 3}])

        assert [e["event_id"] for e in first] == [1, 2]
        assert [e["event_id"] for e in second] == [3]
        assert state.last_event_id == 3

    def test_close_runs_cleanups_once_in_reverse_order(self, state):
        calls = []
        state.on_close(lambda: calls.append("first"))
        state.on_close(lambda: calls.append("second"))
        state.data["x"] = 1

        state.close()
        state.close()

        assert calls == ["second", "first"]
        assert state.closed is True
        assert state.data == {}
