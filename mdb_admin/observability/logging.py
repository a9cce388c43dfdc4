"""
Contextual logging for MDB_ADMIN.

Records emitted through get_logger() carry the correlation id of the
current CLI invocation plus the target of the work in progress: the
collection namespace for index commands, the server for replication
control.
"""

import contextvars
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

# namespace, server, fail_point, ... of the operation in progress
_target: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "target", default=None
)


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Set a correlation ID in the current context.

    Args:
        correlation_id: Optional correlation ID (generates new one if None)

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    _correlation_id.set(None)


@contextmanager
def operation_context(
    namespace: str | None = None, server: str | None = None, **fields: Any
) -> Iterator[dict[str, Any]]:
    """
    Attach an operation's target to every contextual record logged inside the block.

    Blocks nest; inner values win and the outer target is restored on exit.
    None values are ignored.

    Usage:
        with operation_context(namespace="db.orders"):
            await manager.create_index({"customerId": 1})
    """
    fields.update(namespace=namespace, server=server)
    target = {**(_target.get() or {}), **{k: v for k, v in fields.items() if v is not None}}
    token = _target.set(target)
    try:
        yield target
    finally:
        _target.reset(token)


def get_logging_context() -> dict[str, Any]:
    """Correlation id plus the current operation target."""
    context: dict[str, Any] = {}
    correlation_id = _correlation_id.get()
    if correlation_id:
        context["correlation_id"] = correlation_id
    context.update(_target.get() or {})
    return context


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds the logging context to each record.

    Precedence: explicit ``extra`` over the adapter's bound fields over the
    current operation target.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = get_logging_context()
        context.update(self.extra or {})
        context.update(kwargs.get("extra") or {})
        kwargs["extra"] = context
        return msg, kwargs


def get_logger(name: str, **bound: Any) -> ContextualLoggerAdapter:
    """
    Get a contextual logger.

    Args:
        name: Logger name (typically __name__)
        **bound: Fields attached to every record of this logger
    """
    return ContextualLoggerAdapter(logging.getLogger(name), bound)


def log_operation(
    logger: logging.Logger | logging.LoggerAdapter,
    operation: str,
    success: bool = True,
    duration_ms: float | None = None,
    level: int | None = None,
    **fields: Any,
) -> None:
    """
    Log the outcome of an admin operation against its target.

    The message names the server (or else the namespace) the operation acted
    on, e.g. "configureFailPoint on mongo2:27017 succeeded in 1.52ms".
    Failures default to WARNING, successes to INFO.
    """
    extra = get_logging_context()
    extra.update(fields)
    extra.update(operation=operation, success=success)

    message = operation
    target = extra.get("server") or extra.get("namespace")
    if target:
        message += f" on {target}"
    message += " succeeded" if success else " failed"
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)
        message += f" in {duration_ms:.2f}ms"

    if level is None:
        level = logging.INFO if success else logging.WARNING
    logger.log(level, message, extra=extra)
