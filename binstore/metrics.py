from __future__ import annotations

import time
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Histogram

if TYPE_CHECKING:
    from types import TracebackType


class Timer:
    """Timing span of one store operation, from issue to completion or failure."""

    def __init__(self, metrics: StoreMetrics, record: str, operation: str):
        self._metrics = metrics
        self._labels = (record, operation)
        self._started = time.perf_counter()
        self._done = False

    def stop(self) -> None:
        self._finish(error=False)

    def error(self) -> None:
        self._finish(error=True)

    def _finish(self, *, error: bool) -> None:
        if self._done:
            return
        self._done = True
        elapsed = time.perf_counter() - self._started
        self._metrics.latency.labels(*self._labels).observe(elapsed)
        if error:
            self._metrics.errors.labels(*self._labels).inc()

    def __enter__(self) -> Timer:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._finish(error=exc is not None)


class StoreMetrics:
    """Latency and error metrics of record store operations.

    Each instance registers its collectors in ``registry``; when none is given
    a private registry is used so several stores can coexist in one process.
    """

    def __init__(
        self, registry: CollectorRegistry | None = None, namespace: str = "binstore"
    ):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.latency = Histogram(
            "operation_seconds",
            "Latency of binary store record operations",
            ["record", "operation"],
            namespace=namespace,
            registry=self.registry,
        )
        self.errors = Counter(
            "operation_errors",
            "Failed binary store record operations",
            ["record", "operation"],
            namespace=namespace,
            registry=self.registry,
        )

    def time_read(self, record: str) -> Timer:
        return Timer(self, record, "read")

    def time_write(self, record: str) -> Timer:
        return Timer(self, record, "write")
