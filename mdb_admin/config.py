"""
Configuration management for MDB_ADMIN.

AdminConfig collects the connection settings the admin context needs. Values
passed directly win over environment variables, which win over defaults.
"""

import os

from .constants import (
    DEFAULT_COLLECTION_NAME,
    DEFAULT_FAIL_POINT,
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)
from .exceptions import ConfigurationError


class AdminConfig:
    """
    MongoDB admin configuration.

    Example:
        # Using environment variables
        config = AdminConfig()

        # Or using direct parameters
        config = AdminConfig(
            mongo_uri="mongodb://localhost:27017/?replicaSet=rs0",
            db_name="orders_db",
        )
    """

    def __init__(
        self,
        mongo_uri: str | None = None,
        db_name: str | None = None,
        collection_name: str | None = None,
        max_pool_size: int | None = None,
        min_pool_size: int | None = None,
        server_selection_timeout_ms: int | None = None,
        fail_point: str | None = None,
    ):
        """
        Initialize configuration.

        Args:
            mongo_uri: MongoDB connection URI (defaults to MONGO_URI env var)
            db_name: Database name used when the URI names none (defaults to DB_NAME)
            collection_name: Default collection (defaults to MDB_ADMIN_COLLECTION
                or "testcollection")
            max_pool_size: Maximum connection pool size (defaults to MONGO_MAX_POOL_SIZE)
            min_pool_size: Minimum connection pool size (defaults to MONGO_MIN_POOL_SIZE)
            server_selection_timeout_ms: Server selection timeout in ms
            fail_point: Fail point toggled to pause replication
                (defaults to MDB_ADMIN_FAIL_POINT or "rsSyncApplyStop")
        """
        self.mongo_uri = mongo_uri or os.getenv("MONGO_URI", "")
        self.db_name = db_name or os.getenv("DB_NAME", "")
        self.collection_name = collection_name or os.getenv(
            "MDB_ADMIN_COLLECTION", DEFAULT_COLLECTION_NAME
        )
        self.max_pool_size = max_pool_size or self._int_from_env(
            "MONGO_MAX_POOL_SIZE", DEFAULT_MAX_POOL_SIZE
        )
        self.min_pool_size = min_pool_size or self._int_from_env(
            "MONGO_MIN_POOL_SIZE", DEFAULT_MIN_POOL_SIZE
        )
        self.server_selection_timeout_ms = server_selection_timeout_ms or self._int_from_env(
            "MONGO_SERVER_SELECTION_TIMEOUT_MS", DEFAULT_SERVER_SELECTION_TIMEOUT_MS
        )
        self.fail_point = fail_point or os.getenv("MDB_ADMIN_FAIL_POINT", DEFAULT_FAIL_POINT)

    @staticmethod
    def _int_from_env(key: str, default: int) -> int:
        raw = os.getenv(key)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError as e:
            raise ConfigurationError(
                f"{key} must be an integer, got {raw!r}", config_key=key, config_value=raw
            ) from e

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: If required configuration is missing or invalid
        """
        if not self.mongo_uri:
            raise ConfigurationError(
                "mongo_uri is required (set MONGO_URI environment variable or pass directly)",
                config_key="mongo_uri",
            )

        if not self.mongo_uri.startswith(("mongodb://", "mongodb+srv://")):
            raise ConfigurationError(
                "mongo_uri must use the mongodb:// or mongodb+srv:// scheme",
                config_key="mongo_uri",
            )

        if not self.collection_name:
            raise ConfigurationError(
                "collection_name must not be empty", config_key="collection_name"
            )

        if self.max_pool_size < 1:
            raise ConfigurationError(
                f"max_pool_size must be >= 1, got {self.max_pool_size}",
                config_key="max_pool_size",
                config_value=self.max_pool_size,
            )

        if self.min_pool_size < 0:
            raise ConfigurationError(
                f"min_pool_size must be >= 0, got {self.min_pool_size}",
                config_key="min_pool_size",
                config_value=self.min_pool_size,
            )

        if self.min_pool_size > self.max_pool_size:
            raise ConfigurationError(
                f"min_pool_size ({self.min_pool_size}) cannot be greater than "
                f"max_pool_size ({self.max_pool_size})",
                config_key="min_pool_size",
                config_value=self.min_pool_size,
            )

        if self.server_selection_timeout_ms < 1000:
            raise ConfigurationError(
                f"server_selection_timeout_ms must be >= 1000, got "
                f"{self.server_selection_timeout_ms}",
                config_key="server_selection_timeout_ms",
                config_value=self.server_selection_timeout_ms,
            )

        if not self.fail_point:
            raise ConfigurationError("fail_point must not be empty", config_key="fail_point")
