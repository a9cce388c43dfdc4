"""
Collection-scoped index lifecycle management.

IndexManager translates create / drop / list intents into createIndexes,
dropIndexes and listIndexes commands against one bound namespace. It keeps
no state beyond that binding: listings are always re-fetched and no two
operations are serialized against each other.

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pymongo.errors import OperationFailure

from ..constants import (
    DEFAULT_LIST_BATCH_SIZE,
    ERROR_CODE_INVALID_OPTIONS,
    ERROR_CODE_NAMESPACE_NOT_FOUND,
    INDEX_CONFLICT_CODES,
    INDEX_NOT_FOUND_CODES,
)
from ..core.types import CollectionNamespace
from ..database.executor import CommandExecutor
from ..exceptions import (
    AmbiguousIndexError,
    IndexConflictError,
    IndexNotFoundError,
    InvalidArgumentError,
    MongoDBAdminError,
)
from ..observability import log_operation
from .specification import (
    IndexDescriptor,
    IndexKeys,
    IndexOptions,
    IndexSpecification,
    KeySpec,
    coerce_options,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectionSettings:
    """Per-manager command settings, fixed at construction."""

    # None routes to the primary
    read_preference: Any = None
    max_time_ms: int | None = None
    batch_size: int = DEFAULT_LIST_BATCH_SIZE

    def __post_init__(self) -> None:
        if self.max_time_ms is not None and self.max_time_ms <= 0:
            raise InvalidArgumentError(
                f"max_time_ms must be positive, got {self.max_time_ms}"
            )
        if self.batch_size <= 0:
            raise InvalidArgumentError(f"batch_size must be positive, got {self.batch_size}")


class IndexCursor:
    """
    Lazy, finite sequence of IndexDescriptor produced by list_indexes().

    The first batch arrives with listIndexes; further batches are fetched
    with getMore only as iteration reaches them. Not restartable: call
    list_indexes() again for a fresh listing.
    """

    def __init__(
        self,
        manager: "IndexManager",
        first_batch: list[Mapping[str, Any]],
        cursor_id: int,
        cancellation: asyncio.Event | None = None,
    ) -> None:
        self._manager = manager
        self._buffer = list(first_batch)
        self._cursor_id = cursor_id
        self._cancellation = cancellation

    @property
    def alive(self) -> bool:
        """True while buffered documents or a server-side cursor remain."""
        return bool(self._buffer) or self._cursor_id != 0

    def __aiter__(self) -> "IndexCursor":
        return self

    async def __anext__(self) -> IndexDescriptor:
        while not self._buffer:
            if self._cursor_id == 0:
                raise StopAsyncIteration
            await self._get_more()
        return IndexDescriptor.from_document(self._buffer.pop(0), self._manager.namespace)

    async def _get_more(self) -> None:
        namespace = self._manager.namespace
        command: dict[str, Any] = {
            "getMore": self._cursor_id,
            "collection": namespace.collection_name,
            "batchSize": self._manager.settings.batch_size,
        }
        try:
            response = await self._manager._execute(command, self._cancellation)
        except OperationFailure as e:
            # The server-side cursor is gone (e.g. CursorNotFound); nothing more to fetch
            self._cursor_id = 0
            logger.exception(f"{self._manager._log_prefix} OperationFailure fetching more indexes")
            raise MongoDBAdminError(
                "Failed to fetch the next batch of indexes",
                context={"namespace": namespace.full_name, "code": e.code},
            ) from e
        cursor = response.get("cursor", {})
        self._buffer.extend(cursor.get("nextBatch", []))
        self._cursor_id = cursor.get("id", 0)

    async def to_list(self, length: int | None = None) -> list[IndexDescriptor]:
        """Collect up to ``length`` remaining descriptors (all when None)."""
        descriptors: list[IndexDescriptor] = []
        async for descriptor in self:
            descriptors.append(descriptor)
            if length is not None and len(descriptors) >= length:
                break
        return descriptors

    async def close(self) -> None:
        """Kill the server-side cursor if it was not exhausted."""
        self._buffer.clear()
        if self._cursor_id == 0:
            return
        cursor_id, self._cursor_id = self._cursor_id, 0
        namespace = self._manager.namespace
        try:
            await self._manager._execute(
                {"killCursors": namespace.collection_name, "cursors": [cursor_id]}
            )
        except OperationFailure as e:
            logger.exception(f"{self._manager._log_prefix} OperationFailure closing index cursor")
            raise MongoDBAdminError(
                f"Failed to close index cursor {cursor_id}",
                context={"namespace": namespace.full_name, "code": e.code},
            ) from e

    async def __aenter__(self) -> "IndexCursor":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class IndexManager:
    """
    Manages the indexes of one collection.

    Bound once to a namespace and settings; both are read-only afterwards.
    Every public operation accepts ``cancellation``, an asyncio.Event that
    abandons the wait for the server's response when set.
    """

    __slots__ = ("_executor", "_namespace", "_settings")

    def __init__(
        self,
        executor: CommandExecutor,
        namespace: CollectionNamespace | str,
        settings: CollectionSettings | None = None,
    ) -> None:
        """
        Args:
            executor: Command executor shared with the rest of the context
            namespace: Target collection, as a CollectionNamespace or "db.coll"
            settings: Read preference, server time limit and batch size
        """
        if isinstance(namespace, str):
            namespace = CollectionNamespace.parse(namespace)
        self._executor = executor
        self._namespace = namespace
        self._settings = settings or CollectionSettings()

    @property
    def namespace(self) -> CollectionNamespace:
        return self._namespace

    @property
    def settings(self) -> CollectionSettings:
        return self._settings

    @property
    def _log_prefix(self) -> str:
        return f"[{self._namespace}]"

    async def _execute(
        self, command: dict[str, Any], cancellation: asyncio.Event | None = None
    ) -> dict[str, Any]:
        if self._settings.max_time_ms is not None and "getMore" not in command:
            command["maxTimeMS"] = self._settings.max_time_ms
        return await self._executor.execute(
            self._namespace.database_name,
            command,
            read_preference=self._settings.read_preference,
            cancellation=cancellation,
        )

    # --- Creation ---

    async def create_index(
        self,
        keys: KeySpec | IndexKeys,
        options: IndexOptions | Mapping[str, Any] | None = None,
        cancellation: asyncio.Event | None = None,
    ) -> str:
        """
        Create an index on the bound collection.

        Creating an index identical to an existing one succeeds without
        change.

        Args:
            keys: Non-empty key specification, e.g. ``{"customerId": 1}``
            options: IndexOptions or a mapping of options
            cancellation: Event that abandons the wait when set

        Returns:
            The index name

        Raises:
            InvalidArgumentError: Empty or malformed keys or options
            IndexConflictError: The name is taken by a different definition
        """
        specification = IndexSpecification(IndexKeys(keys), coerce_options(options))
        names = await self.create_indexes([specification], cancellation=cancellation)
        return names[0]

    async def create_indexes(
        self,
        specifications: Iterable[IndexSpecification | Mapping[str, Any]],
        cancellation: asyncio.Event | None = None,
    ) -> list[str]:
        """
        Create several indexes with one createIndexes command.

        Mappings are read as declarative definitions
        (``{"keys": ..., "options": ...}``).
        """
        specs = [
            spec if isinstance(spec, IndexSpecification) else IndexSpecification.from_document(spec)
            for spec in specifications
        ]
        if not specs:
            raise InvalidArgumentError("At least one index specification is required")

        names = [spec.index_name for spec in specs]
        command: dict[str, Any] = {
            "createIndexes": self._namespace.collection_name,
            "indexes": [spec.to_document() for spec in specs],
        }

        logger.debug(f"{self._log_prefix} Creating index(es) {names}")
        try:
            response = await self._execute(command, cancellation)
        except OperationFailure as e:
            if e.code in INDEX_CONFLICT_CODES:
                errmsg = (e.details or {}).get("errmsg") or str(e)
                logger.warning(f"{self._log_prefix} Index conflict creating {names}: {errmsg}")
                raise IndexConflictError(
                    f"Index conflicts with an existing definition: {errmsg}",
                    index_name=names[0] if len(names) == 1 else ",".join(names),
                    code=e.code,
                    context={"namespace": self._namespace.full_name},
                ) from e
            if e.code == ERROR_CODE_INVALID_OPTIONS:
                raise InvalidArgumentError(
                    f"Server rejected index options: {e}",
                    context={"namespace": self._namespace.full_name, "indexes": names},
                ) from e
            logger.exception(f"{self._log_prefix} OperationFailure creating index(es) {names}")
            raise MongoDBAdminError(
                f"Failed to create index(es) {names}",
                context={"namespace": self._namespace.full_name, "code": e.code},
            ) from e

        note = response.get("note")
        if note:
            logger.info(f"{self._log_prefix} {note}: {names}")
        log_operation(logger, "createIndexes", namespace=self._namespace.full_name, indexes=names)
        return names

    # --- Removal ---

    async def drop_index(
        self,
        index: str | KeySpec | IndexKeys,
        cancellation: asyncio.Event | None = None,
    ) -> None:
        """
        Drop an index by name, or by key specification for non-string input.

        Raises:
            IndexNotFoundError: No index with that name exists
            AmbiguousIndexError: Drop by keys matched zero or several indexes
        """
        if isinstance(index, str):
            await self.drop_index_by_name(index, cancellation=cancellation)
        else:
            await self.drop_index_by_keys(index, cancellation=cancellation)

    async def drop_index_by_name(
        self, name: str, cancellation: asyncio.Event | None = None
    ) -> None:
        """Drop the index called ``name``; raise IndexNotFoundError when absent."""
        if not name or name == "*":
            raise InvalidArgumentError(
                "An explicit index name is required", context={"index_name": name}
            )

        command = {"dropIndexes": self._namespace.collection_name, "index": name}
        try:
            await self._execute(command, cancellation)
        except OperationFailure as e:
            if e.code in INDEX_NOT_FOUND_CODES:
                logger.info(f"{self._log_prefix} Index '{name}' does not exist. Nothing to drop.")
                raise IndexNotFoundError(
                    f"Index '{name}' not found",
                    index_name=name,
                    namespace=self._namespace.full_name,
                ) from e
            if e.code == ERROR_CODE_INVALID_OPTIONS:
                raise InvalidArgumentError(
                    f"Index '{name}' cannot be dropped: {e}",
                    context={"index_name": name},
                ) from e
            logger.exception(f"{self._log_prefix} OperationFailure dropping index '{name}'")
            raise MongoDBAdminError(
                f"Failed to drop index '{name}'",
                context={"namespace": self._namespace.full_name, "code": e.code},
            ) from e
        log_operation(logger, "dropIndexes", namespace=self._namespace.full_name, index_name=name)

    async def drop_index_by_keys(
        self,
        keys: KeySpec | IndexKeys,
        cancellation: asyncio.Event | None = None,
    ) -> str:
        """
        Drop the single index whose key mapping equals ``keys``.

        Options are ignored for the comparison. Returns the dropped name.

        Raises:
            AmbiguousIndexError: Zero or more than one index matched
        """
        wanted = IndexKeys(keys, validate_directions=False)
        cursor = await self.list_indexes(cancellation=cancellation)
        candidates = [d.name for d in await cursor.to_list() if d.matches_keys(wanted)]

        if len(candidates) != 1:
            reason = "No index matches" if not candidates else "Several indexes match"
            logger.warning(f"{self._log_prefix} {reason} keys {wanted.to_document()}: {candidates}")
            raise AmbiguousIndexError(
                f"{reason} key specification {wanted.to_document()}",
                keys=wanted.to_document(),
                candidates=candidates,
                context={"namespace": self._namespace.full_name},
            )

        await self.drop_index_by_name(candidates[0], cancellation=cancellation)
        return candidates[0]

    # --- Listing ---

    async def list_indexes(self, cancellation: asyncio.Event | None = None) -> IndexCursor:
        """
        Start a fresh listing of the collection's indexes.

        A collection that does not exist has no indexes. Ordering is
        server-defined.
        """
        command = {
            "listIndexes": self._namespace.collection_name,
            "cursor": {"batchSize": self._settings.batch_size},
        }
        try:
            response = await self._execute(command, cancellation)
        except OperationFailure as e:
            if e.code == ERROR_CODE_NAMESPACE_NOT_FOUND:
                logger.debug(f"{self._log_prefix} Collection does not exist; no indexes")
                return IndexCursor(self, [], 0)
            logger.exception(f"{self._log_prefix} OperationFailure listing indexes")
            raise MongoDBAdminError(
                "Failed to list indexes",
                context={"namespace": self._namespace.full_name, "code": e.code},
            ) from e

        cursor = response.get("cursor", {})
        return IndexCursor(self, cursor.get("firstBatch", []), cursor.get("id", 0), cancellation)

    async def get_index(
        self, name: str, cancellation: asyncio.Event | None = None
    ) -> IndexDescriptor | None:
        """Gets a single index by name from a fresh listing."""
        cursor = await self.list_indexes(cancellation=cancellation)
        return next((d for d in await cursor.to_list() if d.name == name), None)
