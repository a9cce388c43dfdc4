"""
Unit tests for IndexManager.

Runs the index lifecycle against the in-memory FakeIndexServer, which
replies with the server's error codes.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import ReadPreference
from pymongo.errors import OperationFailure

from mdb_admin.core.types import CollectionNamespace
from mdb_admin.database.executor import CommandExecutor
from mdb_admin.exceptions import (
    AmbiguousIndexError,
    IndexConflictError,
    IndexNotFoundError,
    InvalidArgumentError,
    MongoDBAdminError,
    OperationCancelledError,
)
from mdb_admin.indexes.manager import CollectionSettings, IndexManager
from mdb_admin.indexes.specification import IndexKeys, IndexOptions, IndexSpecification
from mdb_admin.observability import get_metrics_collector


@pytest.fixture
def orders(fake_server) -> IndexManager:
    return IndexManager(fake_server, "db.orders")


async def secondary_index_names(manager: IndexManager) -> list[str]:
    cursor = await manager.list_indexes()
    return [d.name for d in await cursor.to_list() if d.name != "_id_"]


class TestIndexManagerBinding:
    """Test namespace and settings binding."""

    def test_namespace_from_string(self, fake_server):
        manager = IndexManager(fake_server, "db.orders")
        assert manager.namespace == CollectionNamespace("db", "orders")

    def test_invalid_namespace_string(self, fake_server):
        with pytest.raises(InvalidArgumentError):
            IndexManager(fake_server, "orders")

    def test_binding_is_read_only(self, orders):
        with pytest.raises(AttributeError):
            orders.namespace = CollectionNamespace("db", "other")

    def test_invalid_settings(self):
        with pytest.raises(InvalidArgumentError):
            CollectionSettings(max_time_ms=0)
        with pytest.raises(InvalidArgumentError):
            CollectionSettings(batch_size=-1)

    def test_default_settings(self, fake_server):
        settings = CollectionSettings()

        assert settings.read_preference is None
        assert settings.max_time_ms is None
        assert settings.batch_size > 0
        assert IndexManager(fake_server, "db.orders").settings == settings


@pytest.mark.asyncio
class TestCreateIndex:
    """Test index creation."""

    async def test_create_returns_default_name(self, orders, fake_server):
        name = await orders.create_index({"customerId": 1})

        assert name == "customerId_1"
        database, command = fake_server.commands[-1]
        assert database == "db"
        assert command == {
            "createIndexes": "orders",
            "indexes": [{"key": {"customerId": 1}, "name": "customerId_1"}],
        }

    async def test_create_is_idempotent(self, orders):
        first = await orders.create_index({"customerId": 1})
        second = await orders.create_index({"customerId": 1})

        assert first == second
        assert await secondary_index_names(orders) == ["customerId_1"]

    async def test_create_with_options(self, orders, fake_server):
        options = IndexOptions(name="email_unique", unique=True, expire_after_seconds=3600)
        name = await orders.create_index([("email", 1)], options)

        assert name == "email_unique"
        stored = fake_server.indexes("db", "orders")[-1]
        assert stored["unique"] is True
        assert stored["expireAfterSeconds"] == 3600

    async def test_create_with_options_mapping(self, orders, fake_server):
        await orders.create_index("sku", {"unique": True, "partialFilterExpression": {"a": 1}})

        stored = fake_server.indexes("db", "orders")[-1]
        assert stored["name"] == "sku_1"
        assert stored["partialFilterExpression"] == {"a": 1}

    async def test_create_empty_keys_fails_before_io(self, orders, fake_server):
        with pytest.raises(InvalidArgumentError):
            await orders.create_index({})
        assert fake_server.commands == []

    async def test_create_invalid_option_fails_before_io(self, orders, fake_server):
        with pytest.raises(InvalidArgumentError):
            await orders.create_index({"a": 1}, {"expireAfterSeconds": -5})
        assert fake_server.commands == []

    async def test_same_name_different_keys_conflicts(self, orders):
        await orders.create_index({"a": 1}, IndexOptions(name="my_index"))

        with pytest.raises(IndexConflictError) as exc_info:
            await orders.create_index({"b": 1}, IndexOptions(name="my_index"))

        assert exc_info.value.code == 86
        assert exc_info.value.index_name == "my_index"
        cursor = await orders.list_indexes()
        descriptors = {d.name: d for d in await cursor.to_list()}
        assert descriptors["my_index"].keys == IndexKeys({"a": 1})

    async def test_same_keys_different_options_conflicts(self, orders):
        await orders.create_index({"a": 1})

        with pytest.raises(IndexConflictError) as exc_info:
            await orders.create_index({"a": 1}, {"unique": True})

        assert exc_info.value.code == 85

    async def test_create_indexes_single_command(self, orders, fake_server):
        names = await orders.create_indexes(
            [
                IndexSpecification({"a": 1}),
                {"keys": [["b", -1], ["c", 1]], "options": {"sparse": True}},
            ]
        )

        assert names == ["a_1", "b_-1_c_1"]
        assert fake_server.command_names() == ["createIndexes"]
        assert await secondary_index_names(orders) == ["a_1", "b_-1_c_1"]

    async def test_create_indexes_empty(self, orders):
        with pytest.raises(InvalidArgumentError):
            await orders.create_indexes([])

    async def test_invalid_options_code_maps_to_invalid_argument(self, mock_executor):
        mock_executor.execute.side_effect = OperationFailure("bad option", code=72)
        manager = IndexManager(mock_executor, "db.orders")

        with pytest.raises(InvalidArgumentError):
            await manager.create_index({"a": 1})

    async def test_unexpected_failure_is_wrapped(self, mock_executor):
        mock_executor.execute.side_effect = OperationFailure("not authorized", code=13)
        manager = IndexManager(mock_executor, "db.orders")

        with pytest.raises(MongoDBAdminError) as exc_info:
            await manager.create_index({"a": 1})

        assert exc_info.value.context["code"] == 13
        assert isinstance(exc_info.value.__cause__, OperationFailure)

    async def test_max_time_ms_applied(self, mock_executor):
        manager = IndexManager(
            mock_executor, "db.orders", CollectionSettings(max_time_ms=500)
        )
        await manager.create_index({"a": 1})

        command = mock_executor.execute.call_args.args[1]
        assert command["maxTimeMS"] == 500

    async def test_read_preference_passed_through(self, mock_executor):
        default_manager = IndexManager(mock_executor, "db.orders")
        await default_manager.create_index({"a": 1})
        assert mock_executor.execute.call_args.kwargs["read_preference"] is None

        manager = IndexManager(
            mock_executor,
            "db.orders",
            CollectionSettings(read_preference=ReadPreference.PRIMARY_PREFERRED),
        )
        await manager.create_index({"a": 1})
        assert (
            mock_executor.execute.call_args.kwargs["read_preference"]
            == ReadPreference.PRIMARY_PREFERRED
        )


@pytest.mark.asyncio
class TestDropIndex:
    """Test index removal by name and by keys."""

    async def test_drop_by_name(self, orders):
        await orders.create_index({"customerId": 1})

        await orders.drop_index("customerId_1")

        assert await secondary_index_names(orders) == []

    async def test_drop_nonexistent_raises_not_found(self, orders, fake_server):
        await orders.create_index({"customerId": 1})

        with pytest.raises(IndexNotFoundError) as exc_info:
            await orders.drop_index("nonexistent")

        assert exc_info.value.index_name == "nonexistent"
        assert exc_info.value.namespace == "db.orders"
        assert await secondary_index_names(orders) == ["customerId_1"]

    async def test_drop_on_missing_collection_raises_not_found(self, orders):
        with pytest.raises(IndexNotFoundError):
            await orders.drop_index("customerId_1")

    async def test_drop_id_index_rejected(self, orders, fake_server):
        fake_server.create_collection("db", "orders")

        with pytest.raises(InvalidArgumentError):
            await orders.drop_index("_id_")

    async def test_drop_wildcard_name_rejected(self, orders, fake_server):
        with pytest.raises(InvalidArgumentError):
            await orders.drop_index("*")
        assert fake_server.commands == []

    async def test_drop_by_keys(self, orders):
        await orders.create_index({"customerId": 1}, {"name": "by_customer"})

        dropped = await orders.drop_index_by_keys({"customerId": 1})

        assert dropped == "by_customer"
        assert await secondary_index_names(orders) == []

    async def test_drop_dispatches_on_key_spec(self, orders):
        await orders.create_index([("a", 1), ("b", -1)])

        await orders.drop_index([("a", 1), ("b", -1)])

        assert await secondary_index_names(orders) == []

    async def test_drop_by_keys_respects_order(self, orders):
        await orders.create_index([("a", 1), ("b", 1)])

        with pytest.raises(AmbiguousIndexError) as exc_info:
            await orders.drop_index_by_keys([("b", 1), ("a", 1)])

        assert exc_info.value.candidates == []

    async def test_drop_by_keys_no_match(self, orders):
        await orders.create_index({"a": 1})

        with pytest.raises(AmbiguousIndexError) as exc_info:
            await orders.drop_index_by_keys({"zzz": 1})

        assert exc_info.value.context["candidates"] == []

    async def test_drop_by_keys_ambiguous(self, orders, fake_server):
        fake_server.create_collection("db", "orders")
        fake_server.indexes("db", "orders").extend(
            [
                {"v": 2, "key": {"sku": 1}, "name": "sku_en", "collation": {"locale": "en"}},
                {"v": 2, "key": {"sku": 1}, "name": "sku_fr", "collation": {"locale": "fr"}},
            ]
        )

        with pytest.raises(AmbiguousIndexError) as exc_info:
            await orders.drop_index_by_keys({"sku": 1})

        assert sorted(exc_info.value.candidates) == ["sku_en", "sku_fr"]
        assert "dropIndexes" not in fake_server.command_names()
        assert await secondary_index_names(orders) == ["sku_en", "sku_fr"]

    async def test_drop_text_index_by_keys(self, orders, fake_server):
        await orders.create_index({"title": "text"})
        stored = fake_server.indexes("db", "orders")[-1]
        assert stored["key"] == {"_fts": "text", "_ftsx": 1}

        dropped = await orders.drop_index_by_keys({"title": "text"})

        assert dropped == "title_text"
        assert await secondary_index_names(orders) == []

    async def test_drop_compound_text_index_by_keys(self, orders):
        await orders.create_index([("storeId", 1), ("title", "text"), ("body", "text")])

        dropped = await orders.drop_index_by_keys(
            [("storeId", 1), ("title", "text"), ("body", "text")]
        )

        assert dropped == "storeId_1_title_text_body_text"
        assert await secondary_index_names(orders) == []

    async def test_drop_text_index_by_other_fields_no_match(self, orders):
        await orders.create_index({"title": "text"})

        with pytest.raises(AmbiguousIndexError):
            await orders.drop_index_by_keys({"body": "text"})

        assert await secondary_index_names(orders) == ["title_text"]


@pytest.mark.asyncio
class TestListIndexes:
    """Test index listing."""

    async def test_missing_collection_lists_nothing(self, orders):
        cursor = await orders.list_indexes()

        assert not cursor.alive
        assert await cursor.to_list() == []

    async def test_listing_includes_id_index(self, orders):
        await orders.create_index({"a": 1})

        cursor = await orders.list_indexes()
        names = [d.name for d in await cursor.to_list()]

        assert names == ["_id_", "a_1"]

    async def test_descriptor_fields(self, orders):
        await orders.create_index({"email": 1}, {"unique": True})

        descriptor = await orders.get_index("email_1")

        assert descriptor.namespace == CollectionNamespace("db", "orders")
        assert descriptor.keys == IndexKeys({"email": 1})
        assert descriptor.unique is True
        assert descriptor.version == 2
        assert descriptor.options == {"unique": True}

    async def test_get_index_absent(self, orders):
        assert await orders.get_index("nope") is None

    async def test_batches_fetched_lazily(self, fake_server):
        manager = IndexManager(fake_server, "db.orders", CollectionSettings(batch_size=2))
        for field in ("a", "b", "c", "d"):
            await manager.create_index({field: 1})
        fake_server.commands.clear()

        cursor = await manager.list_indexes()
        assert fake_server.command_names() == ["listIndexes"]

        first = await cursor.__anext__()
        second = await cursor.__anext__()
        assert [first.name, second.name] == ["_id_", "a_1"]
        assert fake_server.command_names() == ["listIndexes"]

        rest = [d.name for d in await cursor.to_list()]
        assert rest == ["b_1", "c_1", "d_1"]
        assert fake_server.command_names() == ["listIndexes", "getMore", "getMore"]
        assert not cursor.alive

    async def test_to_list_length(self, fake_server):
        manager = IndexManager(fake_server, "db.orders", CollectionSettings(batch_size=2))
        for field in ("a", "b", "c"):
            await manager.create_index({field: 1})

        cursor = await manager.list_indexes()
        assert len(await cursor.to_list(length=1)) == 1
        assert len(await cursor.to_list()) == 3

    async def test_close_kills_open_cursor(self, fake_server):
        manager = IndexManager(fake_server, "db.orders", CollectionSettings(batch_size=1))
        for field in ("a", "b"):
            await manager.create_index({field: 1})

        async with await manager.list_indexes() as cursor:
            await cursor.__anext__()

        assert fake_server.command_names()[-1] == "killCursors"
        assert not cursor.alive

    async def test_close_after_exhaustion_sends_nothing(self, orders, fake_server):
        await orders.create_index({"a": 1})
        cursor = await orders.list_indexes()
        await cursor.to_list()
        fake_server.commands.clear()

        await cursor.close()

        assert fake_server.commands == []

    async def test_listing_is_refetched(self, orders, fake_server):
        await orders.create_index({"a": 1})
        await orders.list_indexes()
        await orders.list_indexes()

        assert fake_server.command_names().count("listIndexes") == 2

    async def test_unexpected_failure_is_wrapped(self, mock_executor):
        mock_executor.execute.side_effect = OperationFailure("not authorized", code=13)
        manager = IndexManager(mock_executor, "db.orders")

        with pytest.raises(MongoDBAdminError):
            await manager.list_indexes()

    async def test_expired_cursor_is_wrapped(self, fake_server):
        manager = IndexManager(fake_server, "db.orders", CollectionSettings(batch_size=1))
        for field in ("a", "b"):
            await manager.create_index({field: 1})

        cursor = await manager.list_indexes()
        await cursor.__anext__()
        fake_server._cursors.clear()

        with pytest.raises(MongoDBAdminError) as exc_info:
            await cursor.to_list()

        assert exc_info.value.context["code"] == 43
        assert exc_info.value.context["namespace"] == "db.orders"
        assert not cursor.alive

    async def test_kill_cursors_failure_is_wrapped(self, mock_executor):
        mock_executor.execute.side_effect = [
            {
                "cursor": {
                    "id": 77,
                    "ns": "db.orders",
                    "firstBatch": [{"v": 2, "key": {"_id": 1}, "name": "_id_"}],
                },
                "ok": 1,
            },
            OperationFailure("cursor id 77 not found", code=43),
        ]
        manager = IndexManager(mock_executor, "db.orders")
        cursor = await manager.list_indexes()

        with pytest.raises(MongoDBAdminError) as exc_info:
            await cursor.close()

        assert exc_info.value.context["code"] == 43
        assert not cursor.alive


@pytest.mark.asyncio
class TestOrdersScenario:
    """End-to-end lifecycle on db.orders."""

    async def test_create_list_drop_by_keys(self, orders):
        await orders.create_index({"customerId": 1})

        cursor = await orders.list_indexes()
        descriptors = [d for d in await cursor.to_list() if d.name != "_id_"]
        assert len(descriptors) == 1
        assert descriptors[0].name == "customerId_1"
        assert descriptors[0].keys == IndexKeys([("customerId", 1)])

        await orders.drop_index({"customerId": 1})

        assert await secondary_index_names(orders) == []


@pytest.mark.asyncio
class TestCancellation:
    """Test the cancellation signal through a real CommandExecutor."""

    @pytest.fixture
    def stalled_client(self):
        async def never_answers(*args, **kwargs):
            await asyncio.sleep(30)

        client = MagicMock()
        database = MagicMock()
        database.command = AsyncMock(side_effect=never_answers)
        client.__getitem__.return_value = database
        return client

    async def test_cancel_in_flight_list_indexes(self, stalled_client):
        manager = IndexManager(CommandExecutor(stalled_client), "db.orders")
        cancellation = asyncio.Event()

        task = asyncio.create_task(manager.list_indexes(cancellation=cancellation))
        await asyncio.sleep(0.01)
        cancellation.set()

        with pytest.raises(OperationCancelledError):
            await task
        assert get_metrics_collector().get_error_count("command.listIndexes") == 1

    async def test_cancel_before_send(self, stalled_client):
        manager = IndexManager(CommandExecutor(stalled_client), "db.orders")
        cancellation = asyncio.Event()
        cancellation.set()

        with pytest.raises(OperationCancelledError):
            await manager.create_index({"a": 1}, cancellation=cancellation)

        stalled_client.__getitem__.return_value.command.assert_not_called()

    async def test_cancel_leaves_index_state_unchanged(self, orders, fake_server):
        await orders.create_index({"a": 1})
        before = [dict(d) for d in fake_server.indexes("db", "orders")]

        cancellation = asyncio.Event()
        cancellation.set()
        manager = IndexManager(CommandExecutor(MagicMock()), "db.orders")
        with pytest.raises(OperationCancelledError):
            await manager.list_indexes(cancellation=cancellation)

        assert fake_server.indexes("db", "orders") == before
