import logging
import sys
from contextlib import contextmanager
from typing import Any, Dict, Iterator

import structlog


def configure_logging(level: str = "INFO", json_output: bool = True):
    """
    Configures structlog for the worker process.

    JSON output emits one document per event so poll and eviction activity can be
    aggregated; the console renderer is for local runs. Events below ``level`` are
    dropped by the bound logger itself, so per-retry debug events are free when off.
    """
    log_level = logging.getLevelName(level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None):
    return structlog.get_logger(name)


def bind_context(context: Dict[str, Any]):
    """
    Binds fields to every later log call of the current task and the tasks it spawns.
    Example: bind_context({"worker": "worker-1a2b3c4d"})
    """
    structlog.contextvars.bind_contextvars(**context)


@contextmanager
def task_context(**fields: Any) -> Iterator[None]:
    """Binds fields for the duration of one decision task, restoring the outer context after."""
    with structlog.contextvars.bound_contextvars(**fields):
        yield
