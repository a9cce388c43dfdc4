"""
Constants for MDB_ADMIN.

This module contains all shared constants used across the codebase to avoid
magic numbers and improve maintainability.
"""

from typing import Final

# ============================================================================
# DATABASE CONSTANTS
# ============================================================================

# Connection pool defaults
DEFAULT_MAX_POOL_SIZE: Final[int] = 10
"""Default maximum MongoDB connection pool size."""

DEFAULT_MIN_POOL_SIZE: Final[int] = 1
"""Default minimum MongoDB connection pool size."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

DEFAULT_MAX_IDLE_TIME_MS: Final[int] = 45000
"""Default maximum idle time before closing connections (milliseconds)."""

DEFAULT_APP_NAME: Final[str] = "MDB_ADMIN"
"""Application name reported to the server in the connection handshake."""

ADMIN_DATABASE: Final[str] = "admin"
"""Database that receives administrative commands."""

DEFAULT_COLLECTION_NAME: Final[str] = "testcollection"
"""Collection bound by the admin context when none is configured."""

DEFAULT_DATABASE_NAME: Final[str] = "test"
"""Database used when neither the URI nor the configuration names one."""

# ============================================================================
# INDEX MANAGEMENT CONSTANTS
# ============================================================================

ID_INDEX_NAME: Final[str] = "_id_"
"""Name of the index MongoDB creates on every collection."""

DEFAULT_LIST_BATCH_SIZE: Final[int] = 100
"""Batch size requested from listIndexes / getMore."""

VALID_INDEX_DIRECTIONS: Final[tuple[int | str, ...]] = (
    1,
    -1,
    "text",
    "hashed",
    "2d",
    "2dsphere",
)
"""Key directives accepted in an index key specification."""

MAX_INDEX_NAME_LENGTH: Final[int] = 127
"""Maximum index name length accepted by the server (bytes)."""

# Server error codes that the index manager translates
ERROR_CODE_NAMESPACE_NOT_FOUND: Final[int] = 26
ERROR_CODE_INDEX_NOT_FOUND: Final[int] = 27
ERROR_CODE_COMMAND_NOT_FOUND: Final[int] = 59
ERROR_CODE_INVALID_OPTIONS: Final[int] = 72
ERROR_CODE_INDEX_OPTIONS_CONFLICT: Final[int] = 85
ERROR_CODE_INDEX_KEY_SPECS_CONFLICT: Final[int] = 86

INDEX_CONFLICT_CODES: Final[tuple[int, ...]] = (
    ERROR_CODE_INDEX_OPTIONS_CONFLICT,
    ERROR_CODE_INDEX_KEY_SPECS_CONFLICT,
)
"""Codes returned when an index name or key pattern collides."""

INDEX_NOT_FOUND_CODES: Final[tuple[int, ...]] = (
    ERROR_CODE_NAMESPACE_NOT_FOUND,
    ERROR_CODE_INDEX_NOT_FOUND,
)
"""Codes returned when the drop target (or its collection) is absent."""

# ============================================================================
# REPLICATION CONTROL CONSTANTS
# ============================================================================

DEFAULT_FAIL_POINT: Final[str] = "rsSyncApplyStop"
"""Fail point that suspends oplog application on a secondary."""

FAIL_POINT_MODE_ON: Final[str] = "alwaysOn"
FAIL_POINT_MODE_OFF: Final[str] = "off"

# ============================================================================
# VALIDATION CONSTANTS
# ============================================================================

MAX_COLLECTION_NAME_LENGTH: Final[int] = 255
"""Maximum length for MongoDB collection names."""

MAX_DATABASE_NAME_LENGTH: Final[int] = 64
"""Maximum length for MongoDB database names."""

INVALID_DATABASE_NAME_CHARS: Final[tuple[str, ...]] = ("/", "\\", ".", " ", '"', "$")
"""Characters MongoDB rejects in database names."""
