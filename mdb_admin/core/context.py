"""
Explicit bootstrap context.

AdminContext replaces process-wide test singletons with an object that is
constructed, initialized and shut down explicitly:

    async with AdminContext(AdminConfig()) as ctx:
        indexes = ctx.index_manager()
        if ctx.is_replica_set:
            controller = ctx.replication_controller()

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

import logging
import time

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from ..config import AdminConfig
from ..database.connection import ConnectionManager
from ..database.executor import CommandExecutor
from ..exceptions import InitializationError, MongoDBAdminError, TopologyError
from ..indexes.manager import CollectionSettings, IndexManager
from ..observability import get_logger as get_contextual_logger
from ..observability import get_metrics_collector, record_operation
from ..replication.controller import ReplicationController
from .topology import TopologyProbe
from .types import CollectionNamespace, ServerInstanceHandle, TopologyDescription

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


class AdminContext:
    """
    Owns the client, the default namespace and the topology classification
    for one test run or tool invocation.
    """

    def __init__(self, config: AdminConfig | None = None) -> None:
        """
        Args:
            config: Connection settings (environment-driven AdminConfig if omitted)
        """
        self.config = config or AdminConfig()
        self._connection: ConnectionManager | None = None
        self._executor: CommandExecutor | None = None
        self._probe: TopologyProbe | None = None
        self._namespace: CollectionNamespace | None = None
        self._topology: TopologyDescription | None = None

    async def initialize(self) -> None:
        """
        Connect, resolve the default collection and classify the deployment.

        Raises:
            ConfigurationError: The configuration is invalid
            InitializationError: The server is unreachable or the probe failed
        """
        if self._topology is not None:
            logger.warning("AdminContext already initialized. Skipping re-initialization.")
            return

        start_time = time.time()
        self.config.validate()

        connection = ConnectionManager(
            mongo_uri=self.config.mongo_uri,
            db_name=self.config.db_name or None,
            max_pool_size=self.config.max_pool_size,
            min_pool_size=self.config.min_pool_size,
            server_selection_timeout_ms=self.config.server_selection_timeout_ms,
        )
        await connection.initialize()
        self._connection = connection

        try:
            self._executor = CommandExecutor(
                connection.mongo_client,
                mongo_uri=self.config.mongo_uri,
                server_selection_timeout_ms=self.config.server_selection_timeout_ms,
            )
            self._namespace = CollectionNamespace(
                connection.mongo_db.name, self.config.collection_name
            )
            self._probe = TopologyProbe(self._executor)
            self._topology = await self._probe.probe()
        except MongoDBAdminError as e:
            await self.shutdown()
            record_operation("context.initialize", (time.time() - start_time) * 1000, False)
            raise InitializationError(
                f"Failed to classify deployment: {e}",
                mongo_uri=self.config.mongo_uri,
                db_name=self.config.db_name,
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        record_operation("context.initialize", duration_ms, success=True)
        contextual_logger.info(
            "AdminContext initialized",
            extra={
                "namespace": self._namespace.full_name,
                "topology": self._topology.kind.value,
                "duration_ms": round(duration_ms, 2),
            },
        )

    async def shutdown(self) -> None:
        """Close the client. Safe to call more than once."""
        if self._connection is not None:
            if logger.isEnabledFor(logging.DEBUG):
                for entry in get_metrics_collector().snapshot("command."):
                    logger.debug(f"Command metrics: {entry}")
            await self._connection.shutdown()
        self._connection = None
        self._executor = None
        self._probe = None
        self._namespace = None
        self._topology = None

    async def __aenter__(self) -> "AdminContext":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    def _require_initialized(self) -> None:
        if self._topology is None:
            raise RuntimeError("AdminContext not initialized. Call initialize() first.")

    @property
    def initialized(self) -> bool:
        return self._topology is not None

    @property
    def client(self) -> AsyncIOMotorClient:
        self._require_initialized()
        return self._connection.mongo_client

    @property
    def database(self) -> AsyncIOMotorDatabase:
        self._require_initialized()
        return self._connection.mongo_db

    @property
    def executor(self) -> CommandExecutor:
        self._require_initialized()
        return self._executor

    @property
    def collection_namespace(self) -> CollectionNamespace:
        """Default collection bound by index_manager() when none is named."""
        self._require_initialized()
        return self._namespace

    @property
    def topology(self) -> TopologyDescription:
        self._require_initialized()
        return self._topology

    @property
    def is_replica_set(self) -> bool:
        return self.topology.is_replica_set

    @property
    def secondaries(self) -> tuple[ServerInstanceHandle, ...]:
        return self.topology.secondaries

    def require_replica_set(self) -> TopologyDescription:
        """
        Gate for replication control.

        Raises:
            TopologyError: The deployment is standalone
        """
        topology = self.topology
        if not topology.is_replica_set:
            raise TopologyError(
                "Replication control requires a replica set deployment",
                context={"topology": topology.kind.value},
            )
        return topology

    async def refresh_topology(self) -> TopologyDescription:
        """Re-classify the deployment (e.g. after a failover)."""
        self._require_initialized()
        self._topology = await self._probe.refresh()
        return self._topology

    def index_manager(
        self,
        collection_name: str | None = None,
        settings: CollectionSettings | None = None,
    ) -> IndexManager:
        """
        Bind an IndexManager to ``collection_name`` in the context database,
        or to the default collection.
        """
        namespace = self.collection_namespace
        if collection_name:
            namespace = CollectionNamespace(namespace.database_name, collection_name)
        return IndexManager(self._executor, namespace, settings)

    def replication_controller(self) -> ReplicationController:
        self._require_initialized()
        return ReplicationController(self._executor, fail_point=self.config.fail_point)
