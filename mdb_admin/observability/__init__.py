"""
Observability components.

Provides contextual logging and per-namespace / per-server command metrics.
"""

from .logging import (
    ContextualLoggerAdapter,
    clear_correlation_id,
    get_logger,
    get_logging_context,
    log_operation,
    operation_context,
    set_correlation_id,
)
from .metrics import (
    CommandMetrics,
    MetricsCollector,
    MetricsKey,
    get_metrics_collector,
    record_operation,
)

__all__ = [
    # Metrics
    "CommandMetrics",
    "MetricsCollector",
    "MetricsKey",
    "get_metrics_collector",
    "record_operation",
    # Logging
    "set_correlation_id",
    "clear_correlation_id",
    "operation_context",
    "get_logging_context",
    "ContextualLoggerAdapter",
    "get_logger",
    "log_operation",
]
