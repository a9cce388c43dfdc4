"""
Administrative command execution.

CommandExecutor is the single seam between the admin components and the
driver: "run command C on database D, optionally pinned to server S, unless
the caller cancels first". Network-level driver errors are translated to
TransportError here; OperationFailure is left to the caller, which knows how
to interpret server error codes.

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Mapping
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ReadPreference, uri_parser
from pymongo.errors import (
    ConnectionFailure,
    InvalidOperation,
    InvalidURI,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from ..constants import DEFAULT_APP_NAME, DEFAULT_SERVER_SELECTION_TIMEOUT_MS
from ..core.types import ServerInstanceHandle
from ..exceptions import OperationCancelledError, TransportError
from ..observability import record_operation

logger = logging.getLogger(__name__)

# Commands whose metrics are tagged with the collection they target
_COLLECTION_COMMANDS = frozenset(
    {"createIndexes", "dropIndexes", "listIndexes", "getMore", "killCursors", "create", "drop"}
)

# URI options that would defeat a direct connection to one member
_PINNED_EXCLUDED_OPTIONS = frozenset(
    {
        "replicaset",
        "directconnection",
        "readpreference",
        "readpreferencetags",
        "maxstalenessseconds",
        "loadbalanced",
        "srvservicename",
        "srvmaxhosts",
    }
)


async def run_cancellable(awaitable: Awaitable[Any], cancellation: asyncio.Event | None) -> Any:
    """
    Await ``awaitable`` unless ``cancellation`` fires first.

    When the event wins the race the pending command is cancelled and
    OperationCancelledError is raised. The server may still have applied it.
    """
    if cancellation is None:
        return await awaitable

    command_task = asyncio.ensure_future(awaitable)
    if cancellation.is_set():
        command_task.cancel()
        await asyncio.gather(command_task, return_exceptions=True)
        raise OperationCancelledError("Operation cancelled before it was sent")

    cancel_task = asyncio.ensure_future(cancellation.wait())
    try:
        done, _ = await asyncio.wait(
            {command_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        command_task.cancel()
        cancel_task.cancel()
        raise

    if command_task in done:
        cancel_task.cancel()
        return command_task.result()

    command_task.cancel()
    # Drain the cancelled command so its outcome is not reported as unretrieved
    await asyncio.gather(command_task, return_exceptions=True)
    raise OperationCancelledError("Operation cancelled while awaiting the server response")


def _command_name(command: Mapping[str, Any]) -> str:
    return next(iter(command), "unknown")


def _command_namespace(database: str, command: Mapping[str, Any]) -> str | None:
    """Namespace ("db.collection") targeted by a collection-level command."""
    name = _command_name(command)
    if name not in _COLLECTION_COMMANDS:
        return None
    target = command.get("collection") if name == "getMore" else command[name]
    return f"{database}.{target}" if isinstance(target, str) else None


class CommandExecutor:
    """
    Executes administrative commands on behalf of the admin components.

    Commands go through the shared Motor client by default. Passing a
    ``server`` (or using ``pinned()``) routes them over a direct connection
    to that one member instead.
    """

    def __init__(
        self,
        client: AsyncIOMotorClient,
        mongo_uri: str | None = None,
        server_selection_timeout_ms: int = DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
    ) -> None:
        """
        Args:
            client: Shared Motor client
            mongo_uri: Connection string the client was built from; its
                credentials and TLS options are reused for pinned connections
            server_selection_timeout_ms: Timeout applied to pinned connections
        """
        self._client = client
        self._mongo_uri = mongo_uri
        self._server_selection_timeout_ms = server_selection_timeout_ms

    @property
    def client(self) -> AsyncIOMotorClient:
        return self._client

    async def execute(
        self,
        database: str,
        command: Mapping[str, Any],
        read_preference: Any = None,
        cancellation: asyncio.Event | None = None,
        server: ServerInstanceHandle | None = None,
    ) -> dict[str, Any]:
        """
        Run one command and return the server's response document.

        Args:
            database: Target database name
            command: Command document; its first key is the command name
            read_preference: pymongo read preference (primary if omitted)
            cancellation: Event that abandons the wait when set
            server: Pin the command to this member

        Raises:
            TransportError: The server could not be reached
            OperationCancelledError: ``cancellation`` fired first
            pymongo.errors.OperationFailure: The server rejected the command
        """
        if server is not None:
            async with self.pinned(server) as request:
                return await request.execute(database, command, read_preference, cancellation)

        return await self._run(self._client, database, command, read_preference, cancellation)

    def pinned(self, server: ServerInstanceHandle) -> "PinnedRequest":
        """Open a request scope whose commands all reach ``server``."""
        return PinnedRequest(self, server)

    def _pinned_client_options(self) -> dict[str, Any]:
        """Credentials and transport options for a direct connection."""
        options: dict[str, Any] = {}
        if not self._mongo_uri:
            return options

        try:
            parsed = uri_parser.parse_uri(self._mongo_uri)
        except (InvalidURI, ValueError) as e:
            raise TransportError(
                f"Cannot derive pinned connection options from URI: {e}"
            ) from e

        for key, value in parsed.get("options", {}).items():
            if key.lower() not in _PINNED_EXCLUDED_OPTIONS:
                options[key] = value
        if parsed.get("username"):
            options["username"] = parsed["username"]
            options["password"] = parsed.get("password")
        return options

    def _open_pinned_client(self, server: ServerInstanceHandle) -> AsyncIOMotorClient:
        options = self._pinned_client_options()
        options.setdefault("serverSelectionTimeoutMS", self._server_selection_timeout_ms)
        options.setdefault("appname", DEFAULT_APP_NAME)
        logger.debug(f"Opening pinned connection to {server}")
        return AsyncIOMotorClient(
            host=server.host,
            port=server.port,
            directConnection=True,
            **options,
        )

    async def _run(
        self,
        client: AsyncIOMotorClient,
        database: str,
        command: Mapping[str, Any],
        read_preference: Any,
        cancellation: asyncio.Event | None,
        server: ServerInstanceHandle | None = None,
    ) -> dict[str, Any]:
        name = _command_name(command)
        if cancellation is not None and cancellation.is_set():
            raise OperationCancelledError(
                f"'{name}' cancelled before it was sent",
                context={"database": database, "command": name},
            )

        start_time = time.time()
        success = False
        error_code = None
        try:
            response = await run_cancellable(
                client[database].command(
                    dict(command),
                    read_preference=read_preference or ReadPreference.PRIMARY,
                ),
                cancellation,
            )
            success = True
            return response
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.exception(f"Connection error running '{name}' on '{database}'")
            raise TransportError(
                f"Connection failed while running '{name}'",
                context={
                    "database": database,
                    "command": name,
                    "server": str(server) if server else "default",
                },
            ) from e
        except InvalidOperation as e:
            logger.debug(f"Cannot run '{name}': MongoDB client is closed")
            raise TransportError(
                f"Cannot run '{name}': MongoDB client is closed",
                context={"database": database, "command": name},
            ) from e
        except OperationFailure as e:
            logger.debug(f"Server rejected '{name}' on '{database}': code={e.code} {e}")
            error_code = e.code
            raise
        finally:
            record_operation(
                f"command.{name}",
                (time.time() - start_time) * 1000,
                success=success,
                namespace=_command_namespace(database, command),
                server=str(server) if server else None,
                error_code=error_code,
            )


class PinnedRequest:
    """
    Request scope pinned to a single server instance.

    Used as ``async with executor.pinned(server) as request``; the direct
    connection is opened on entry and closed on exit.
    """

    def __init__(self, executor: CommandExecutor, server: ServerInstanceHandle) -> None:
        self._executor = executor
        self._server = server
        self._client: AsyncIOMotorClient | None = None

    @property
    def server(self) -> ServerInstanceHandle:
        return self._server

    async def __aenter__(self) -> "PinnedRequest":
        try:
            self._client = self._executor._open_pinned_client(self._server)
        except (ConnectionFailure, TypeError, ValueError) as e:
            raise TransportError(
                f"Cannot open pinned connection to {self._server}",
                context={"server": str(self._server)},
            ) from e
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.debug(f"Closed pinned connection to {self._server}")

    async def execute(
        self,
        database: str,
        command: Mapping[str, Any],
        read_preference: Any = None,
        cancellation: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """Run ``command`` on the pinned server (secondary read preference by default)."""
        if self._client is None:
            raise RuntimeError("PinnedRequest used outside of its 'async with' block")
        return await self._executor._run(
            self._client,
            database,
            command,
            read_preference or ReadPreference.SECONDARY,
            cancellation,
            server=self._server,
        )
