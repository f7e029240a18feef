class ResilienceException(Exception):
    pass


class InvalidRetryPolicyError(ResilienceException, ValueError):
    def __init__(self, field_name: str, value: object, requirement: str):
        self.field_name = field_name
        self.value = value
        super().__init__(f"Invalid retry policy: {field_name}={value!r} ({requirement}).")


class RetryCancelledError(ResilienceException):
    """Raised when a backoff wait is interrupted by the caller's cancel event.

    The last operation error, if any, is kept on ``last_error`` and chained as ``__cause__``.
    """

    def __init__(self, attempts: int, last_error: BaseException | None = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Retry cancelled after {attempts} attempt(s).")
