from abc import ABC, abstractmethod


class ICacheMetrics(ABC):
    @abstractmethod
    def record_cache_hit(self) -> None:
        pass

    @abstractmethod
    def record_cache_miss(self) -> None:
        pass

    @abstractmethod
    def record_cache_eviction(self) -> None:
        pass

    @abstractmethod
    def update_cache_size(self, size: int) -> None:
        pass


class IWorkerMetrics(ABC):
    @abstractmethod
    def record_poll(self, status: str) -> None:
        pass

    @abstractmethod
    def record_decision_task(self, workflow_type: str, status: str, duration: float) -> None:
        pass

    @abstractmethod
    def record_sticky_reset(self, status: str) -> None:
        pass
