from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from worker_runtime.ports.secondary.metrics import ICacheMetrics, IWorkerMetrics


class MetricsRegistry(ICacheMetrics, IWorkerMetrics):
    """Prometheus metrics registry."""

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        # Sticky cache metrics
        self.STICKY_CACHE_REQUESTS_TOTAL = Counter(
            "sticky_cache_requests_total",
            "Sticky cache lookups by result",
            ["result"],
            registry=registry,
        )

        self.STICKY_CACHE_EVICTIONS_TOTAL = Counter(
            "sticky_cache_evictions_total",
            "Entries evicted from the sticky cache by capacity",
            registry=registry,
        )

        self.STICKY_CACHE_SIZE = Gauge(
            "sticky_cache_size", "Current number of cached workflow executions", registry=registry
        )

        self.STICKY_RESETS_TOTAL = Counter(
            "sticky_resets_total",
            "Sticky task list reset calls by outcome",
            ["status"],
            registry=registry,
        )

        # Poller metrics
        self.DECISION_POLLS_TOTAL = Counter(
            "decision_polls_total", "Decision task polls by outcome", ["status"], registry=registry
        )

        self.DECISION_TASKS_TOTAL = Counter(
            "decision_tasks_total",
            "Processed decision tasks",
            ["workflow_type", "status"],
            registry=registry,
        )

        self.DECISION_TASK_DURATION_SECONDS = Histogram(
            "decision_task_duration_seconds",
            "Time taken to process a decision task",
            ["workflow_type"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0),
            registry=registry,
        )

    def record_cache_hit(self) -> None:
        self.STICKY_CACHE_REQUESTS_TOTAL.labels(result="hit").inc()

    def record_cache_miss(self) -> None:
        self.STICKY_CACHE_REQUESTS_TOTAL.labels(result="miss").inc()

    def record_cache_eviction(self) -> None:
        self.STICKY_CACHE_EVICTIONS_TOTAL.inc()

    def update_cache_size(self, size: int) -> None:
        self.STICKY_CACHE_SIZE.set(size)

    def record_poll(self, status: str) -> None:
        self.DECISION_POLLS_TOTAL.labels(status=status).inc()

    def record_decision_task(self, workflow_type: str, status: str, duration: float) -> None:
        self.DECISION_TASKS_TOTAL.labels(workflow_type=workflow_type, status=status).inc()
        self.DECISION_TASK_DURATION_SECONDS.labels(workflow_type=workflow_type).observe(duration)

    def record_sticky_reset(self, status: str) -> None:
        self.STICKY_RESETS_TOTAL.labels(status=status).inc()


# Global registry instance for adapter/framework layer
metrics_registry = MetricsRegistry()
