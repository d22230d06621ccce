"""Tests for the in-memory document store."""

import pytest

from urms._storage.doc_memory import MemoryDocumentStore


@pytest.mark.asyncio
async def test_seeded_collections(memory_store, sample_data):
    assert await memory_store.count_documents("students") == len(sample_data["students"])
    assert await memory_store.fetch_all("courses") == sample_data["courses"]
    assert "users" in await memory_store.list_collections()


@pytest.mark.asyncio
async def test_iter_documents_returns_copies(memory_store):
    documents = await memory_store.fetch_all("users")
    documents[0]["role"] = "tampered"

    assert (await memory_store.fetch_all("users"))[0]["role"] == "admin"


@pytest.mark.asyncio
async def test_iter_documents_is_a_snapshot(memory_store):
    seen = []
    async for document in memory_store.iter_documents("courses"):
        seen.append(document["code"])
        await memory_store.insert_documents("courses", [{"code": "LATE"}])

    assert seen == ["CS101", "MA201"]
    assert await memory_store.count_documents("courses") == 4


@pytest.mark.asyncio
async def test_unknown_collection_is_empty(memory_store):
    assert await memory_store.fetch_all("nothing") == []
    assert await memory_store.count_documents("nothing") == 0


@pytest.mark.asyncio
async def test_staged_swap_replaces_collections():
    store = MemoryDocumentStore(global_config={"initial_data": {
        "users": [{"name": "old"}],
        "files": [{"name": "old.pdf"}],
        "audit": [{"event": "kept"}],
    }})

    await store.begin_staging("t1")
    await store.stage_documents("t1", "users", [{"name": "new"}])
    await store.stage_documents("t1", "users", [{"name": "newer"}])

    # Nothing visible before the swap
    assert await store.fetch_all("users") == [{"name": "old"}]

    await store.swap_staged("t1", ["users", "files"])

    assert await store.fetch_all("users") == [{"name": "new"}, {"name": "newer"}]
    assert await store.fetch_all("files") == []
    assert await store.fetch_all("audit") == [{"event": "kept"}]


@pytest.mark.asyncio
async def test_discard_staged(memory_store):
    await memory_store.begin_staging("t1")
    await memory_store.stage_documents("t1", "users", [{"name": "staged"}])

    await memory_store.discard_staged("t1")
    await memory_store.discard_staged("t1")

    assert await memory_store.count_documents("users") == 2
    with pytest.raises(KeyError):
        await memory_store.swap_staged("t1", ["users"])


@pytest.mark.asyncio
async def test_duplicate_staging_token(memory_store):
    await memory_store.begin_staging("t1")

    with pytest.raises(ValueError, match="already exists"):
        await memory_store.begin_staging("t1")


@pytest.mark.asyncio
async def test_health(memory_store):
    assert await memory_store.check_health() is True
