"""
Command metrics for MDB_ADMIN.

Every command the executor sends, and the connection lifecycle, is timed
here. Figures are kept per operation, namespace and server, so a slow
secondary or a collection whose index builds keep failing stands out from
the aggregate.
"""

import threading
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, NamedTuple


class MetricsKey(NamedTuple):
    """Where a figure was measured. namespace / server are None when not applicable."""

    operation: str
    namespace: str | None = None
    server: str | None = None

    def matches(
        self, operation: str, namespace: str | None = None, server: str | None = None
    ) -> bool:
        return (
            self.operation == operation
            and (namespace is None or self.namespace == namespace)
            and (server is None or self.server == server)
        )


@dataclass
class CommandMetrics:
    """Running totals for one MetricsKey."""

    key: MetricsKey
    count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    # server error code -> occurrences (CursorNotFound, IndexOptionsConflict, ...)
    error_codes: Counter = field(default_factory=Counter)
    last_execution: datetime | None = None

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.count if self.count else 0.0

    def record(self, duration_ms: float, success: bool = True, error_code: int | None = None):
        self.count += 1
        self.total_duration_ms += duration_ms
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if not success:
            self.error_count += 1
            if error_code is not None:
                self.error_codes[error_code] += 1
        self.last_execution = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.key.operation,
            "namespace": self.key.namespace,
            "server": self.key.server,
            "count": self.count,
            "error_count": self.error_count,
            "error_codes": dict(self.error_codes),
            "avg_duration_ms": round(self.avg_duration_ms, 2),
            "max_duration_ms": round(self.max_duration_ms, 2),
            "last_execution": self.last_execution.isoformat() if self.last_execution else None,
        }


class MetricsCollector:
    """
    Thread-safe store of CommandMetrics.

    The least recently updated key is evicted once max_entries is reached,
    so long runs over many namespaces stay bounded.
    """

    def __init__(self, max_entries: int = 10000):
        self._metrics: OrderedDict[MetricsKey, CommandMetrics] = OrderedDict()
        self._lock = threading.Lock()
        self._max_entries = max_entries

    def record(
        self,
        operation: str,
        duration_ms: float,
        success: bool = True,
        *,
        namespace: str | None = None,
        server: str | None = None,
        error_code: int | None = None,
    ) -> None:
        """
        Record one execution.

        Args:
            operation: e.g. "command.createIndexes" or "connection.initialize"
            duration_ms: Wall time in milliseconds
            success: Whether the operation succeeded
            namespace: "db.collection" the command targeted, if any
            server: "host:port" of a pinned server, if any
            error_code: Server error code of a failed command
        """
        key = MetricsKey(operation, namespace, server)
        with self._lock:
            metrics = self._metrics.get(key)
            if metrics is None:
                if len(self._metrics) >= self._max_entries:
                    self._metrics.popitem(last=False)
                metrics = self._metrics[key] = CommandMetrics(key)
            else:
                self._metrics.move_to_end(key)
            metrics.record(duration_ms, success, error_code)

    def snapshot(self, prefix: str | None = None) -> list[dict[str, Any]]:
        """All entries (optionally only operations starting with ``prefix``) as dicts."""
        with self._lock:
            return [
                m.to_dict()
                for key, m in self._metrics.items()
                if prefix is None or key.operation.startswith(prefix)
            ]

    def get_operation_count(
        self, operation: str, *, namespace: str | None = None, server: str | None = None
    ) -> int:
        """Executions of ``operation``, across all namespaces / servers unless narrowed."""
        with self._lock:
            return sum(
                m.count
                for key, m in self._metrics.items()
                if key.matches(operation, namespace, server)
            )

    def get_error_count(
        self, operation: str, *, namespace: str | None = None, server: str | None = None
    ) -> int:
        with self._lock:
            return sum(
                m.error_count
                for key, m in self._metrics.items()
                if key.matches(operation, namespace, server)
            )

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()


# Global metrics collector instance
_metrics_collector: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get or create the global metrics collector."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


def record_operation(
    operation: str,
    duration_ms: float,
    success: bool = True,
    *,
    namespace: str | None = None,
    server: str | None = None,
    error_code: int | None = None,
) -> None:
    """Record an execution in the global collector. See MetricsCollector.record."""
    get_metrics_collector().record(
        operation,
        duration_ms,
        success,
        namespace=namespace,
        server=server,
        error_code=error_code,
    )
