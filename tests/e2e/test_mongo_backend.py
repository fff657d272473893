"""
End-to-end tests for MongoBackend and the data layer on a real MongoDB.

Tests cover:
- Upsert semantics of the update built by MergeEngine
- Scoped upserts colliding on foreign ids
- Collation-aware find
- Trash round-trip through DocumentStore
"""

import os

import pytest

from dbaas.docvault_server.access.gate import AccessGate
from dbaas.docvault_server.access.oracle import AccessLevel, Caller, Grant, StaticGrantOracle
from dbaas.docvault_server.data.documents import DocumentStore
from dbaas.docvault_server.data.options import FindOptions, ResourceOptions
from dbaas.docvault_server.errors import DuplicateKeyError
from dbaas.docvault_server.store.base import CASE_INSENSITIVE, UpsertOp

pytestmark = pytest.mark.skipif(
    os.environ.get("DOCVAULT_E2E_TESTS", "0") != "1",
    reason="E2E tests disabled. Set DOCVAULT_E2E_TESTS=1 to enable.",
)

ALICE = Caller("alice", "acct-1")


@pytest.fixture
def store(mongo_backend):
    oracle = StaticGrantOracle([Grant("alice", "acct-1", AccessLevel.OWNER)])
    return DocumentStore(mongo_backend, AccessGate(oracle), ResourceOptions())


class TestMongoBackend:
    """Tests for MongoBackend against a live server."""

    @pytest.mark.asyncio
    async def test_ping(self, mongo_backend):
        assert await mongo_backend.ping()

    @pytest.mark.asyncio
    async def test_upsert_and_bulk(self, mongo_backend):
        doc = await mongo_backend.upsert_one(
            "widgets", {"_id": "w1"}, {"$set": {"n": 1}, "$setOnInsert": {"c": 1}}
        )
        assert doc == {"_id": "w1", "n": 1, "c": 1}

        result = await mongo_backend.bulk_upsert(
            "widgets",
            [
                UpsertOp({"_id": "w1"}, {"$set": {"n": 2}, "$setOnInsert": {"c": 2}}),
                UpsertOp({"_id": "w2"}, {"$set": {"n": 1}}),
            ],
        )
        assert result.upserted_count == 1
        assert result.modified_count == 1
        assert (await mongo_backend.find_one("widgets", {"_id": "w1"}))["c"] == 1

    @pytest.mark.asyncio
    async def test_insert_duplicate(self, mongo_backend):
        await mongo_backend.insert_many("widgets", [{"_id": "w1"}])
        with pytest.raises(DuplicateKeyError):
            await mongo_backend.insert_many("widgets", [{"_id": "w1"}])

    @pytest.mark.asyncio
    async def test_find_with_collation(self, mongo_backend):
        await mongo_backend.insert_many(
            "widgets", [{"_id": "a", "name": "b"}, {"_id": "b", "name": "C"}, {"_id": "c", "name": "a"}]
        )
        folded = [
            d["_id"]
            async for d in mongo_backend.find(
                "widgets", {}, sort=[("name", 1)], collation=CASE_INSENSITIVE
            )
        ]
        assert folded == ["c", "a", "b"]


class TestDocumentStoreOnMongo:
    """DocumentStore flows against a live server."""

    @pytest.mark.asyncio
    async def test_put_find_remove(self, store):
        doc = await store.put(ALICE, "widgets", {"name": "Bolt"})
        assert doc["_account"] == "acct-1"

        found = await (
            await store.find(ALICE, "widgets", options=FindOptions(where={"name": "bolt"}, nocase=True))
        ).to_list()
        assert [d["_id"] for d in found] == [doc["_id"]]

        await store.remove(ALICE, "widgets", doc["_id"], recoverable=True)
        assert await store.find(ALICE, "widgets", doc["_id"]) == {}

        restored = await store.trash.restore(f"widgets::{doc['_id']}")
        assert restored == 1
        assert (await store.find(ALICE, "widgets", doc["_id"]))["name"] == "Bolt"

    @pytest.mark.asyncio
    async def test_foreign_id_is_not_overwritten(self, store, mongo_backend):
        await mongo_backend.insert_many("widgets", [{"_id": "w9", "_account": "acct-9"}])

        with pytest.raises(DuplicateKeyError):
            await store.put(ALICE, "widgets", {"_id": "w9", "name": "hijack"})
