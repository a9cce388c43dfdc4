"""
MDB_ADMIN - MongoDB Admin Control

Client-side control surface for a MongoDB collection: index lifecycle
management and deterministic replication pause / resume for test scenarios.
"""

from .config import AdminConfig
from .core import CollectionNamespace, ServerInstanceHandle, TopologyKind, TopologyProbe
from .core.context import AdminContext
from .database import CommandExecutor, ConnectionManager
from .exceptions import (
    AmbiguousIndexError,
    ConfigurationError,
    IndexConflictError,
    IndexNotFoundError,
    InitializationError,
    InvalidArgumentError,
    MongoDBAdminError,
    OperationCancelledError,
    ReplicationControlError,
    TopologyError,
    TransportError,
)
from .indexes import (
    IndexDescriptor,
    IndexKeys,
    IndexManager,
    IndexOptions,
    IndexSpecification,
)
from .replication import ReplicationController, ReplicationGuard

__version__ = "0.1.0"

__all__ = [
    # Bootstrap
    "AdminConfig",
    "AdminContext",
    "ConnectionManager",
    "CommandExecutor",
    # Types
    "CollectionNamespace",
    "ServerInstanceHandle",
    "TopologyKind",
    "TopologyProbe",
    # Indexes
    "IndexManager",
    "IndexKeys",
    "IndexOptions",
    "IndexSpecification",
    "IndexDescriptor",
    # Replication
    "ReplicationController",
    "ReplicationGuard",
    # Errors
    "MongoDBAdminError",
    "InvalidArgumentError",
    "IndexNotFoundError",
    "IndexConflictError",
    "AmbiguousIndexError",
    "TransportError",
    "OperationCancelledError",
    "ReplicationControlError",
    "TopologyError",
    "InitializationError",
    "ConfigurationError",
]
