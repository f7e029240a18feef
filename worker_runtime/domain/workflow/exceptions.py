from typing import Any, Dict, Optional


class WorkflowServiceError(Exception):
    retryable = True

    def __init__(
        self,
        message: str,
        error_code: str = "WORKFLOW_SERVICE_ERROR",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        super().__init__(self.message)


class ServiceUnavailableError(WorkflowServiceError):
    def __init__(self, operation: str, details: str):
        self.operation = operation
        super().__init__(
            message=f"Workflow service unavailable during '{operation}': {details}",
            error_code="SERVICE_UNAVAILABLE",
            context={"operation": operation, "details": details},
        )


class NonRetryableServiceError(WorkflowServiceError):
    retryable = False


class BadRequestError(NonRetryableServiceError):
    def __init__(self, operation: str, details: str):
        self.operation = operation
        super().__init__(
            message=f"Bad request for '{operation}': {details}",
            error_code="BAD_REQUEST",
            context={"operation": operation, "details": details},
        )


class HandlerNotFoundError(NonRetryableServiceError):
    def __init__(self, workflow_type: str):
        self.workflow_type = workflow_type
        super().__init__(
            message=f"No handler registered for workflow type '{workflow_type}'",
            error_code="HANDLER_NOT_FOUND",
            context={"workflow_type": workflow_type},
        )


def is_service_error_retryable(error: BaseException) -> bool:
    """Retry predicate for service calls: everything except explicitly terminal errors."""
    if isinstance(error, WorkflowServiceError):
        return error.retryable
    return True
