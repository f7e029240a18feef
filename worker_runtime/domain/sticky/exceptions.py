from typing import Any, Dict, Optional


class StickyCacheException(Exception):
    def __init__(
        self,
        message: str,
        error_code: str = "STICKY_CACHE_ERROR",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        super().__init__(self.message)


class InvalidCacheCapacityError(StickyCacheException, ValueError):
    def __init__(self, capacity: int):
        self.capacity = capacity
        super().__init__(
            message=f"Workflow execution cache capacity must be at least 1, got {capacity}",
            error_code="INVALID_CACHE_CAPACITY",
            context={"capacity": capacity},
        )


class InvalidExecutionKeyError(StickyCacheException, ValueError):
    def __init__(self, workflow_id: str, run_id: str):
        super().__init__(
            message=f"Execution key requires non-empty workflow_id and run_id, got ({workflow_id!r}, {run_id!r})",
            error_code="INVALID_EXECUTION_KEY",
            context={"workflow_id": workflow_id, "run_id": run_id},
        )
