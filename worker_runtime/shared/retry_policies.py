from worker_runtime.domain.resilience.value_objects.retry_policy import UNLIMITED, RetryPolicy
from worker_runtime.shared.config import Settings, settings


def poll_retry_policy(config: Settings = settings) -> RetryPolicy:
    """Throttle policy for poll failures: never gives up, only slows down."""
    return RetryPolicy(
        initial_interval=config.POLL_RETRY_INITIAL_INTERVAL_SECONDS,
        backoff_coefficient=config.POLL_RETRY_BACKOFF_COEFFICIENT,
        maximum_interval=config.POLL_RETRY_MAX_INTERVAL_SECONDS,
        expiration_interval=UNLIMITED,
        maximum_attempts=UNLIMITED,
    )


def service_retry_policy(config: Settings = settings) -> RetryPolicy:
    """Policy for one-off service calls such as completion reports and sticky resets."""
    return RetryPolicy(
        initial_interval=config.SERVICE_RETRY_INITIAL_INTERVAL_SECONDS,
        backoff_coefficient=config.SERVICE_RETRY_BACKOFF_COEFFICIENT,
        maximum_interval=config.SERVICE_RETRY_MAX_INTERVAL_SECONDS,
        expiration_interval=config.SERVICE_RETRY_EXPIRATION_SECONDS,
        jitter=config.SERVICE_RETRY_JITTER,
    )
