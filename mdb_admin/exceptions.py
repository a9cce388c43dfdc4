"""
Custom exceptions for MDB_ADMIN.

Every error raised by the index manager, the replication controller and the
bootstrap context derives from MongoDBAdminError, which keeps backward
compatibility with RuntimeError.
"""

import re
from typing import Any

# userinfo ("user:password@") of any MongoDB connection string
_URI_CREDENTIALS = re.compile(r"(mongodb(?:\+srv)?://)[^@/\s]+@")


def redact_uri(text: str) -> str:
    """Replace the credentials of every MongoDB URI in ``text`` with ``***``."""
    return _URI_CREDENTIALS.sub(r"\1***@", text)


class MongoDBAdminError(RuntimeError):
    """
    Base exception for MDB_ADMIN errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (namespace,
                 index_name, server, etc.)
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class InvalidArgumentError(MongoDBAdminError, ValueError):
    """
    Raised when a key specification, option or namespace is malformed.

    Raised at construction time, before any command reaches the server.
    """


class IndexNotFoundError(MongoDBAdminError):
    """
    Raised when a drop targets an index that does not exist.

    Attributes:
        index_name: Name of the missing index
        namespace: Full collection namespace
    """

    def __init__(
        self,
        message: str,
        index_name: str | None = None,
        namespace: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if index_name:
            context["index_name"] = index_name
        if namespace:
            context["namespace"] = namespace
        super().__init__(message, context=context)
        self.index_name = index_name
        self.namespace = namespace


class IndexConflictError(MongoDBAdminError):
    """
    Raised when an index name collides with an existing, different definition.

    Attributes:
        index_name: Name of the conflicting index
        code: Server error code (85 or 86)
    """

    def __init__(
        self,
        message: str,
        index_name: str | None = None,
        code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if index_name:
            context["index_name"] = index_name
        if code is not None:
            context["code"] = code
        super().__init__(message, context=context)
        self.index_name = index_name
        self.code = code


class AmbiguousIndexError(MongoDBAdminError):
    """
    Raised when a drop-by-keys matches zero or several indexes.

    Attributes:
        keys: The key specification that was looked up
        candidates: Names of every index whose key mapping matched
    """

    def __init__(
        self,
        message: str,
        keys: Any = None,
        candidates: list[str] | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if keys is not None:
            context["keys"] = keys
        context["candidates"] = candidates or []
        super().__init__(message, context=context)
        self.keys = keys
        self.candidates = candidates or []


class TransportError(MongoDBAdminError):
    """
    Raised when a command could not be delivered or the server is unreachable.

    Not retried: retry policy belongs to the driver.
    """


class OperationCancelledError(MongoDBAdminError):
    """
    Raised when the caller's cancellation signal fired before a response.

    Cancellation makes no claim about server-side completion.
    """


class ReplicationControlError(MongoDBAdminError):
    """
    Raised when a fail-point toggle is rejected or its target is unreachable.

    A failure during resume may leave the secondary paused and must be treated
    as fatal by the enclosing scenario.

    Attributes:
        server: Address of the targeted secondary
        mode: Fail-point mode that was being applied
    """

    def __init__(
        self,
        message: str,
        server: str | None = None,
        mode: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if server:
            context["server"] = server
        if mode:
            context["mode"] = mode
        super().__init__(message, context=context)
        self.server = server
        self.mode = mode


class TopologyError(MongoDBAdminError):
    """Raised when an operation requires a topology the deployment lacks."""


class InitializationError(MongoDBAdminError):
    """
    Raised when the admin context fails to initialize.

    Credentials in the connection string are redacted before they reach
    the message or the context.

    Attributes:
        mongo_uri: MongoDB connection URI (if available)
        db_name: Database name (if available)
    """

    def __init__(
        self,
        message: str,
        mongo_uri: str | None = None,
        db_name: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if mongo_uri:
            mongo_uri = redact_uri(mongo_uri)
            context["mongo_uri"] = mongo_uri
        if db_name:
            context["db_name"] = db_name
        super().__init__(redact_uri(message), context=context)
        self.mongo_uri = mongo_uri
        self.db_name = db_name


class ConfigurationError(MongoDBAdminError):
    """
    Raised when configuration is invalid or missing.

    Attributes:
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
    """

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_value: Any | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value
