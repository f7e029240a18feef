import threading
import time
from collections.abc import Callable
from typing import Any

from cachetools import Cache, LRUCache

from worker_runtime.domain.sticky.entities.execution_state import CachedExecution
from worker_runtime.domain.sticky.exceptions import InvalidCacheCapacityError
from worker_runtime.domain.sticky.value_objects.execution_key import EvictionNotice, ExecutionKey
from worker_runtime.ports.secondary.metrics import ICacheMetrics
from worker_runtime.shared.logger import get_logger

logger = get_logger(__name__)

EvictionListener = Callable[[EvictionNotice], None]


class _EvictingLRUCache(LRUCache):
    """LRUCache that keeps the entries it pushes out until the owner drains them."""

    def __init__(self, maxsize: int):
        super().__init__(maxsize)
        self._evicted: list[tuple[ExecutionKey, CachedExecution]] = []

    def popitem(self):
        key, value = super().popitem()
        self._evicted.append((key, value))
        return key, value

    def drain_evicted(self) -> list[tuple[ExecutionKey, CachedExecution]]:
        evicted, self._evicted = self._evicted, []
        return evicted


class WorkflowExecutionCache:
    """
    Bounded, thread-safe LRU map of workflow execution states kept for sticky routing.

    The cache owns every state it holds: states are closed when they are evicted,
    removed, replaced or cleared. Capacity evictions are also reported to the
    ``on_evict`` listener so the service stops routing the execution here; explicit
    removal is not reported.

    Concurrency: one lock guards the LRU order and the size bound. Disposal and the
    eviction listener run after the lock is released but before ``put`` returns.
    """

    def __init__(
        self,
        capacity: int,
        on_evict: EvictionListener | None = None,
        metrics: ICacheMetrics | None = None,
        clock=time.monotonic,
    ):
        if capacity < 1:
            raise InvalidCacheCapacityError(capacity)
        self._capacity = capacity
        self._on_evict = on_evict
        self._metrics = metrics
        self._clock = clock
        self._lock = threading.Lock()
        self._entries = _EvictingLRUCache(maxsize=capacity)
        self._generation = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: ExecutionKey) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: ExecutionKey) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                entry.touch(self._clock())

        if self._metrics:
            if entry is None:
                self._metrics.record_cache_miss()
            else:
                self._metrics.record_cache_hit()
        return entry.state if entry is not None else None

    def put(self, key: ExecutionKey, state: Any, task_list: str) -> int:
        """Caches ``state`` as most recently used; returns the generation of the new entry."""
        with self._lock:
            self._generation += 1
            generation = self._generation
            previous = self._peek(key)
            self._entries[key] = CachedExecution(
                state=state,
                task_list=task_list,
                generation=generation,
                last_access=self._clock(),
            )
            evicted = self._entries.drain_evicted()
            size = len(self._entries)

        if previous is not None and previous.state is not state:
            self._dispose(key, previous.state)

        for victim_key, victim in evicted:
            logger.info(
                "sticky_cache_evicted",
                workflow_id=victim_key.workflow_id,
                run_id=victim_key.run_id,
                task_list=victim.task_list,
                generation=victim.generation,
            )
            self._dispose(victim_key, victim.state)
            if self._metrics:
                self._metrics.record_cache_eviction()
            self._notify(EvictionNotice(victim_key, victim.task_list, victim.generation))

        if self._metrics:
            self._metrics.update_cache_size(size)
        return generation

    def remove(self, key: ExecutionKey) -> bool:
        with self._lock:
            entry = self._entries.pop(key, None)
            size = len(self._entries)

        if entry is None:
            return False
        self._dispose(key, entry.state)
        if self._metrics:
            self._metrics.update_cache_size(size)
        return True

    def discard(self, key: ExecutionKey, state: Any) -> bool:
        """Like ``remove``, but only while the entry still holds this very state object."""
        with self._lock:
            entry = self._peek(key)
            if entry is None or entry.state is not state:
                return False
            del self._entries[key]
            size = len(self._entries)

        self._dispose(key, state)
        if self._metrics:
            self._metrics.update_cache_size(size)
        return True

    def clear(self) -> int:
        """Disposes every entry without reporting evictions; used on worker shutdown."""
        with self._lock:
            entries = [(key, self._entries.pop(key)) for key in list(self._entries)]
            self._entries.drain_evicted()

        for key, entry in entries:
            self._dispose(key, entry.state)
        if self._metrics:
            self._metrics.update_cache_size(0)
        return len(entries)

    def is_stale(self, notice: EvictionNotice) -> bool:
        """True when the key was cached again after the notice's entry was evicted."""
        with self._lock:
            entry = self._peek(notice.key)
        return entry is not None and entry.generation > notice.generation

    def _peek(self, key: ExecutionKey) -> CachedExecution | None:
        # Cache.__getitem__ skips the LRU bookkeeping done by LRUCache.__getitem__
        if key not in self._entries:
            return None
        return Cache.__getitem__(self._entries, key)

    def _dispose(self, key: ExecutionKey, state: Any) -> None:
        close = getattr(state, "close", None)
        if not callable(close):
            return
        try:
            close()
        except Exception as e:
            logger.warning(
                "sticky_cache_dispose_failed",
                workflow_id=key.workflow_id,
                run_id=key.run_id,
                error=str(e),
                exc_info=True,
            )

    def _notify(self, notice: EvictionNotice) -> None:
        if self._on_evict is None:
            return
        try:
            self._on_evict(notice)
        except Exception as e:
            logger.error(
                "sticky_eviction_listener_failed",
                workflow_id=notice.key.workflow_id,
                run_id=notice.key.run_id,
                error=str(e),
                exc_info=True,
            )
