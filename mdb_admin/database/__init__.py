"""
Database layer: client lifecycle and administrative command execution.
"""

from .connection import ConnectionManager
from .executor import CommandExecutor, PinnedRequest, run_cancellable

__all__ = [
    "ConnectionManager",
    "CommandExecutor",
    "PinnedRequest",
    "run_cancellable",
]
