"""
MongoDB document backend for DocVault.

Production implementation of DocumentBackend using pymongo's asyncio
client. Query and update documents produced by the data layer are already
MongoDB syntax, so this module is a thin adapter that:
- Owns the client lifecycle (connect/close tied to the server)
- Translates Collation and UpsertOp into driver types
- Wraps driver failures in StoreError

Invariants:
    - Bulk upserts are unordered; one failing item does not stop the rest
    - Datetimes are read back timezone-aware (tz_aware=True)
    - Driver exceptions never leak past this module

How to change safely:
    - Keep the selector/update subset in sync with the in-memory backend
    - Test against a real replica set before enabling transactions
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from pymongo import AsyncMongoClient, ReturnDocument, UpdateOne
from pymongo.collation import Collation as MongoCollation
from pymongo.errors import BulkWriteError, DuplicateKeyError as MongoDuplicateKeyError
from pymongo.errors import PyMongoError

from ..errors import DuplicateKeyError, StoreError
from .base import BulkResult, Collation, Document, SortSpec, UpsertOp

if TYPE_CHECKING:
    from ..config import MongoConfig

logger = logging.getLogger(__name__)

_DUPLICATE_KEY = 11000


def _wrap(exc: PyMongoError, action: str) -> StoreError:
    if isinstance(exc, MongoDuplicateKeyError):
        return DuplicateKeyError(f"{action} failed: {exc}")
    if isinstance(exc, BulkWriteError):
        codes = {err.get("code") for err in exc.details.get("writeErrors", [])}
        if _DUPLICATE_KEY in codes:
            return DuplicateKeyError(f"{action} failed: duplicate key")
    return StoreError(f"{action} failed: {exc}")


class MongoBackend:
    """MongoDB implementation of DocumentBackend.

    Attributes:
        config: Mongo connection settings

    Example:
        >>> backend = MongoBackend(MongoConfig(url="mongodb://localhost:27017"))
        >>> await backend.connect()
        >>> doc = await backend.find_one("widgets", {"_id": "w1"})
    """

    def __init__(self, config: MongoConfig) -> None:
        self.config = config
        self._client: AsyncMongoClient | None = None
        self._db: Any = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Create the client and verify the server answers."""
        self._client = AsyncMongoClient(
            self.config.url,
            serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
            maxPoolSize=self.config.max_pool_size,
            tz_aware=True,
        )
        self._db = self._client[self.config.database]
        try:
            await self._db.command("ping")
        except PyMongoError as e:
            await self.close()
            raise StoreError(f"Failed to connect to MongoDB: {e}") from e

        logger.info("MongoBackend connected", extra={"database": self.config.database})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
        self._client = None
        self._db = None
        logger.debug("MongoBackend closed")

    async def ping(self) -> bool:
        if self._db is None:
            return False
        try:
            await self._db.command("ping")
            return True
        except PyMongoError:
            return False

    def _collection(self, name: str) -> Any:
        if self._db is None:
            raise StoreError("Not connected")
        return self._db[name]

    async def find(
        self,
        collection: str,
        selector: Document,
        sort: SortSpec | None = None,
        collation: Collation | None = None,
    ) -> AsyncIterator[Document]:
        cursor = self._collection(collection).find(selector)
        if collation is not None:
            cursor = cursor.collation(
                MongoCollation(locale=collation.locale, strength=collation.strength)
            )
        if sort:
            cursor = cursor.sort(sort)
        try:
            async for doc in cursor:
                yield doc
        except PyMongoError as e:
            raise _wrap(e, f"find on {collection}") from e
        finally:
            await cursor.close()

    async def find_one(self, collection: str, selector: Document) -> Document | None:
        try:
            return await self._collection(collection).find_one(selector)
        except PyMongoError as e:
            raise _wrap(e, f"find_one on {collection}") from e

    async def upsert_one(
        self, collection: str, filter: Document, update: Document
    ) -> Document | None:
        try:
            return await self._collection(collection).find_one_and_update(
                filter,
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise _wrap(e, f"upsert on {collection}") from e

    async def bulk_upsert(self, collection: str, ops: list[UpsertOp]) -> BulkResult:
        writes = [UpdateOne(op.filter, op.update, upsert=True) for op in ops]
        try:
            result = await self._collection(collection).bulk_write(writes, ordered=False)
        except PyMongoError as e:
            raise _wrap(e, f"bulk upsert on {collection}") from e

        return BulkResult(
            upserted_count=result.upserted_count,
            modified_count=result.modified_count,
            matched_count=result.matched_count,
            upserted_ids=list(result.upserted_ids.values()),
        )

    async def insert_many(self, collection: str, docs: list[Document]) -> int:
        try:
            result = await self._collection(collection).insert_many(docs)
        except PyMongoError as e:
            raise _wrap(e, f"insert on {collection}") from e
        return len(result.inserted_ids)

    async def delete_many(self, collection: str, selector: Document) -> int:
        try:
            result = await self._collection(collection).delete_many(selector)
        except PyMongoError as e:
            raise _wrap(e, f"delete on {collection}") from e
        return result.deleted_count
