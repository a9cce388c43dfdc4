"""
Pytest configuration and shared fixtures for MDB_ADMIN tests.

This module provides:
- Mock Motor client fixtures
- An in-memory stand-in for the index commands of a server
- Environment and metrics isolation
- Testcontainers fixtures for integration tests
"""

import asyncio
import itertools
import os
from collections.abc import Mapping
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from pymongo.errors import OperationFailure

from mdb_admin.config import AdminConfig
from mdb_admin.observability import (
    clear_correlation_id,
    get_metrics_collector,
)


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that need a running MongoDB container")


# ============================================================================
# MOCK MONGODB FIXTURES
# ============================================================================


def make_hello_response(
    set_name: str | None = "rs0",
    primary: str = "mongo1:27017",
    secondaries: tuple[str, ...] = ("mongo2:27017", "mongo3:27017"),
) -> dict[str, Any]:
    """Build a hello reply for a replica set (or a standalone when set_name is None)."""
    if set_name is None:
        return {"isWritablePrimary": True, "maxWireVersion": 21, "ok": 1.0}
    return {
        "isWritablePrimary": True,
        "setName": set_name,
        "primary": primary,
        "me": primary,
        "hosts": [primary, *secondaries],
        "maxWireVersion": 21,
        "ok": 1.0,
    }


@pytest.fixture
def hello_factory():
    """Factory for hello replies (see make_hello_response)."""
    return make_hello_response


@pytest.fixture
def hello_response() -> dict[str, Any]:
    return make_hello_response()


@pytest.fixture
def mock_mongo_client(hello_response) -> MagicMock:
    """
    Create a mock Motor client.

    ``client.admin.command`` answers the connection ping; ``client[db].command``
    answers every command routed through the executor with ``hello_response``.
    """
    client = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1.0})
    client.write_concern.acknowledged = True

    default_db = MagicMock()
    default_db.name = "test_db"
    client.get_default_database.return_value = default_db

    command_db = MagicMock()
    command_db.command = AsyncMock(return_value=hello_response)
    client.__getitem__.return_value = command_db
    return client


@pytest.fixture
def mock_executor() -> MagicMock:
    """Create a mock CommandExecutor."""
    executor = MagicMock()
    executor.execute = AsyncMock(return_value={"ok": 1.0})
    return executor


@pytest.fixture
def admin_config() -> AdminConfig:
    """Provide a valid configuration for AdminContext."""
    return AdminConfig(
        mongo_uri="mongodb://localhost:27017/?replicaSet=rs0",
        db_name="test_db",
        max_pool_size=10,
        min_pool_size=1,
    )


# ============================================================================
# IN-MEMORY INDEX COMMANDS
# ============================================================================


class FakeIndexServer:
    """
    Executor double that answers createIndexes / dropIndexes / listIndexes /
    getMore / killCursors from in-memory state, with the server's error codes.
    """

    def __init__(self) -> None:
        self.collections: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.commands: list[tuple[str, dict[str, Any]]] = []
        self._cursors: dict[int, list[dict[str, Any]]] = {}
        self._cursor_ids = itertools.count(1001)

    def create_collection(self, database: str, collection: str) -> None:
        self.collections.setdefault(
            (database, collection), [{"v": 2, "key": {"_id": 1}, "name": "_id_"}]
        )

    def indexes(self, database: str, collection: str) -> list[dict[str, Any]]:
        return self.collections.get((database, collection), [])

    def command_names(self) -> list[str]:
        return [next(iter(command)) for _, command in self.commands]

    async def execute(
        self,
        database: str,
        command: Mapping[str, Any],
        read_preference: Any = None,
        cancellation: asyncio.Event | None = None,
        server: Any = None,
    ) -> dict[str, Any]:
        command = dict(command)
        self.commands.append((database, command))
        name = next(iter(command))
        handler = getattr(self, f"_{name}")
        return handler(database, command)

    @staticmethod
    def _options(document: Mapping[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in document.items() if k not in ("v", "key", "name")}

    @staticmethod
    def _stored_form(spec: Mapping[str, Any]) -> dict[str, Any]:
        """Text fields are kept as _fts / _ftsx plus weights, as the server stores them."""
        text_fields = [f for f, d in spec["key"].items() if d == "text"]
        if not text_fields:
            return {"v": 2, **spec}
        key: dict[str, Any] = {}
        for field_name, direction in spec["key"].items():
            if direction != "text":
                key[field_name] = direction
            elif "_fts" not in key:
                key["_fts"] = "text"
                key["_ftsx"] = 1
        weights = {f: 1 for f in sorted(text_fields)}
        weights.update(spec.get("weights", {}))
        return {
            "v": 2,
            **spec,
            "key": key,
            "weights": weights,
            "default_language": spec.get("default_language", "english"),
            "language_override": "language",
            "textIndexVersion": 3,
        }

    def _createIndexes(self, database: str, command: dict[str, Any]) -> dict[str, Any]:
        self.create_collection(database, command["createIndexes"])
        stored = self.collections[(database, command["createIndexes"])]
        before = len(stored)
        for requested in command["indexes"]:
            spec = self._stored_form(requested)
            for existing in stored:
                same_name = existing["name"] == spec["name"]
                same_keys = list(existing["key"].items()) == list(spec["key"].items())
                if same_name and not same_keys:
                    raise OperationFailure(
                        f"An existing index has the same name as the requested index: {spec['name']}",
                        code=86,
                        details={"codeName": "IndexKeySpecsConflict"},
                    )
                if same_keys and (
                    not same_name or self._options(existing) != self._options(spec)
                ):
                    raise OperationFailure(
                        "Index already exists with a different name or options",
                        code=85,
                        details={"codeName": "IndexOptionsConflict"},
                    )
                if same_name:
                    break
            else:
                stored.append(spec)
        response: dict[str, Any] = {
            "numIndexesBefore": before,
            "numIndexesAfter": len(stored),
            "ok": 1.0,
        }
        if len(stored) == before:
            response["note"] = "all indexes already exist"
        return response

    def _dropIndexes(self, database: str, command: dict[str, Any]) -> dict[str, Any]:
        key = (database, command["dropIndexes"])
        if key not in self.collections:
            raise OperationFailure(f"ns not found {database}.{key[1]}", code=26)
        if command["index"] == "_id_":
            raise OperationFailure("cannot drop _id index", code=72)
        stored = self.collections[key]
        for existing in stored:
            if existing["name"] == command["index"]:
                stored.remove(existing)
                return {"nIndexesWas": len(stored) + 1, "ok": 1.0}
        raise OperationFailure(f"index not found with name [{command['index']}]", code=27)

    def _listIndexes(self, database: str, command: dict[str, Any]) -> dict[str, Any]:
        key = (database, command["listIndexes"])
        if key not in self.collections:
            raise OperationFailure(f"ns does not exist: {database}.{key[1]}", code=26)
        documents = [dict(d) for d in self.collections[key]]
        batch_size = command.get("cursor", {}).get("batchSize", 101)
        cursor_id = 0
        if len(documents) > batch_size:
            cursor_id = next(self._cursor_ids)
            self._cursors[cursor_id] = documents[batch_size:]
        return {
            "cursor": {
                "id": cursor_id,
                "ns": f"{database}.{key[1]}",
                "firstBatch": documents[:batch_size],
            },
            "ok": 1.0,
        }

    def _getMore(self, database: str, command: dict[str, Any]) -> dict[str, Any]:
        if command["getMore"] not in self._cursors:
            raise OperationFailure(f"cursor id {command['getMore']} not found", code=43)
        remaining = self._cursors.pop(command["getMore"])
        batch_size = command.get("batchSize", 101)
        cursor_id = 0
        if len(remaining) > batch_size:
            cursor_id = command["getMore"]
            self._cursors[cursor_id] = remaining[batch_size:]
        return {
            "cursor": {
                "id": cursor_id,
                "ns": f"{database}.{command['collection']}",
                "nextBatch": remaining[:batch_size],
            },
            "ok": 1.0,
        }

    def _killCursors(self, database: str, command: dict[str, Any]) -> dict[str, Any]:
        killed = [c for c in command["cursors"] if self._cursors.pop(c, None) is not None]
        return {"cursorsKilled": killed, "ok": 1.0}


@pytest.fixture
def fake_server() -> FakeIndexServer:
    return FakeIndexServer()


# ============================================================================
# ENVIRONMENT VARIABLES
# ============================================================================


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch):
    """Reset environment variables before each test."""
    env_vars_to_clear = [
        "MONGO_URI",
        "DB_NAME",
        "MDB_ADMIN_COLLECTION",
        "MONGO_MAX_POOL_SIZE",
        "MONGO_MIN_POOL_SIZE",
        "MONGO_SERVER_SELECTION_TIMEOUT_MS",
        "MDB_ADMIN_FAIL_POINT",
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def reset_observability():
    """Start every test with empty metrics and no logging context."""
    get_metrics_collector().reset()
    clear_correlation_id()
    yield
    clear_correlation_id()


# ============================================================================
# TESTCONTAINERS FIXTURES (Real MongoDB for Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def mongodb_container():
    """
    Start a MongoDB container for integration tests.

    Session-scoped: container starts once and is reused for all integration tests.
    """
    from testcontainers.mongodb import MongoDbContainer

    with MongoDbContainer(image="mongo:7.0") as container:
        yield container


@pytest.fixture
def mongodb_connection_string(mongodb_container) -> str:
    return mongodb_container.get_connection_url()


@pytest_asyncio.fixture
async def real_admin_context(mongodb_connection_string):
    """
    Create a fully initialized AdminContext against the container.

    Uses a unique database per test and drops it afterwards.
    """
    from mdb_admin.core.context import AdminContext

    db_name = f"test_db_{os.getpid()}_{next(_database_counter)}"
    context = AdminContext(
        AdminConfig(mongo_uri=mongodb_connection_string, db_name=db_name, max_pool_size=5)
    )
    await context.initialize()
    yield context
    await context.client.drop_database(db_name)
    await context.shutdown()


_database_counter = itertools.count()
