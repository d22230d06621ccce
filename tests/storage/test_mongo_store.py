"""Tests for MongoDocumentStore against a mocked motor database."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from pymongo.errors import AutoReconnect, BulkWriteError, OperationFailure

from urms._storage.doc_mongo import STAGING_PREFIX, MongoDocumentStore
from urms.base import PartialSwapError


@pytest_asyncio.fixture
async def store():
    store = MongoDocumentStore(global_config={
        "mongodb_uri": "mongodb://localhost:27017",
        "mongodb_database": "urms_test",
    })
    collections = {}

    def get_collection(name):
        if name not in collections:
            collection = MagicMock()
            collection.insert_many = AsyncMock()
            collection.rename = AsyncMock()
            collection.index_information = AsyncMock(return_value={"_id_": {"key": [("_id", 1)], "v": 2}})
            collection.create_indexes = AsyncMock()
            collections[name] = collection
        return collections[name]

    store.db = MagicMock()
    store.db.__getitem__.side_effect = get_collection
    store.db.list_collection_names = AsyncMock(return_value=[])
    store.db.create_collection = AsyncMock()
    store.db.drop_collection = AsyncMock()
    store.collections = collections
    yield store
    await store.close()


def test_missing_uri():
    with pytest.raises(ValueError, match="mongodb_uri"):
        MongoDocumentStore(global_config={})


@pytest.mark.asyncio
async def test_stage_documents_writes_to_staging_collection(store):
    await store.stage_documents("tok", "users", [{"email": "a@uni.edu"}])

    staged = store.collections[f"{STAGING_PREFIX}tok_users"]
    staged.insert_many.assert_awaited_once_with([{"email": "a@uni.edu"}], ordered=False)


@pytest.mark.asyncio
async def test_stage_documents_retries_transient_errors(store):
    staged = store.db[f"{STAGING_PREFIX}tok_users"]
    staged.insert_many.side_effect = [AutoReconnect("primary stepped down"), None]

    await store.stage_documents("tok", "users", [{"email": "a@uni.edu"}])

    assert staged.insert_many.await_count == 2


@pytest.mark.asyncio
async def test_swap_renames_every_staged_collection(store):
    store.db.list_collection_names.return_value = [f"{STAGING_PREFIX}tok_users"]

    await store.swap_staged("tok", ["users", "files"])

    store.db.create_collection.assert_awaited_once_with(f"{STAGING_PREFIX}tok_files")
    store.collections[f"{STAGING_PREFIX}tok_users"].rename.assert_awaited_once_with("users", dropTarget=True)
    store.collections[f"{STAGING_PREFIX}tok_files"].rename.assert_awaited_once_with("files", dropTarget=True)


@pytest.mark.asyncio
async def test_swap_failure_on_first_rename_raises_driver_error(store):
    store.db[f"{STAGING_PREFIX}tok_users"].rename.side_effect = OperationFailure("not primary")

    with pytest.raises(OperationFailure):
        await store.swap_staged("tok", ["users", "files"])

    store.db[f"{STAGING_PREFIX}tok_files"].rename.assert_not_awaited()


@pytest.mark.asyncio
async def test_swap_failure_after_first_rename_is_partial(store):
    store.db[f"{STAGING_PREFIX}tok_files"].rename.side_effect = OperationFailure("not primary")

    with pytest.raises(PartialSwapError) as exc_info:
        await store.swap_staged("tok", ["users", "files", "reports"])

    assert exc_info.value.swapped == ["users"]


@pytest.mark.asyncio
async def test_discard_drops_only_this_token(store):
    store.db.list_collection_names.return_value = [
        "users",
        f"{STAGING_PREFIX}tok_users",
        f"{STAGING_PREFIX}other_users",
    ]

    await store.discard_staged("tok")

    store.db.drop_collection.assert_awaited_once_with(f"{STAGING_PREFIX}tok_users")


@pytest.mark.asyncio
async def test_list_collections_hides_staging(store):
    store.db.list_collection_names.return_value = ["users", f"{STAGING_PREFIX}tok_users", "courses"]

    assert await store.list_collections() == ["courses", "users"]


@pytest.mark.asyncio
async def test_retried_batch_tolerates_records_already_written(store):
    staged = store.db[f"{STAGING_PREFIX}tok_users"]
    staged.insert_many.side_effect = [
        AutoReconnect("connection reset"),
        BulkWriteError({"writeErrors": [{"index": 0, "code": 11000}], "writeConcernErrors": []}),
    ]

    await store.stage_documents("tok", "users", [{"_id": 1, "email": "a@uni.edu"}])

    assert staged.insert_many.await_count == 2


@pytest.mark.asyncio
async def test_duplicate_key_on_first_attempt_is_an_error(store):
    staged = store.db[f"{STAGING_PREFIX}tok_users"]
    staged.insert_many.side_effect = BulkWriteError(
        {"writeErrors": [{"index": 0, "code": 11000}], "writeConcernErrors": []}
    )

    with pytest.raises(BulkWriteError):
        await store.stage_documents("tok", "users", [{"_id": 1}, {"_id": 1}])

    assert staged.insert_many.await_count == 1


@pytest.mark.asyncio
async def test_swap_copies_live_indexes_to_staged_collection(store):
    store.db["users"].index_information.return_value = {
        "_id_": {"key": [("_id", 1)], "v": 2},
        "email_1": {"key": [("email", 1)], "v": 2, "unique": True},
    }

    await store.swap_staged("tok", ["users", "files"])

    staged_users = store.db[f"{STAGING_PREFIX}tok_users"]
    staged_users.create_indexes.assert_awaited_once()
    (models,), _ = staged_users.create_indexes.await_args
    assert [m.document["name"] for m in models] == ["email_1"]
    assert models[0].document["key"] == {"email": 1}
    assert models[0].document["unique"] is True
    store.db[f"{STAGING_PREFIX}tok_files"].create_indexes.assert_not_awaited()
    staged_users.rename.assert_awaited_once_with("users", dropTarget=True)
