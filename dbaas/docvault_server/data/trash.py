"""
TrashVault: recoverable delete for DocVault.

Removed documents are parked in a trash holding collection under the
composite id ``{collection}::{original id}`` until they are restored or
purged. Lifecycle per original document:

    Live (origin collection)
      -> Trashed (trash collection)      put
      -> Restored (origin collection)    restore
       | Purged (gone)                   empty

Trash record layout:
    _id         "{col}::{oid}"
    col         origin collection
    oid         original _id
    o           full snapshot taken at delete time
    _account    copied from the snapshot, scopes trash listings
    _created    when it was trashed (first time only)
    _createdBy  who trashed it (first time only)
    _modified   last time it was (re)trashed

Invariants:
    - Re-trashing an id overwrites the snapshot but keeps _created/_createdBy
    - Move and restore are two separate store calls (write, then delete);
      there is no transaction around them. A crash between the calls leaves
      the document in both places. Once a trash record is observed it is
      authoritative.

How to change safely:
    - The composite id format is persisted; changing it orphans old records
    - If the backend gains transactions, wrap put and restore in one
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..access.gate import AccountScope
from ..access.oracle import Caller
from ..errors import AuthorizationDenied, NotFoundError, UsageError
from ..store.base import (
    CASE_INSENSITIVE,
    Document,
    DocumentBackend,
    ResultCursor,
    UpsertOp,
    and_selectors,
)
from .merge import utcnow
from .options import FindOptions

logger = logging.getLogger(__name__)

SEPARATOR = "::"


def trash_id_for(collection: str, original_id: Any) -> str:
    """Composite trash id for a document of collection."""
    return f"{collection}{SEPARATOR}{original_id}"


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _scoped(scope: AccountScope | None) -> Document:
    return scope.selector() if scope is not None else {}


@dataclass
class TrashRecord:
    """A trashed document and its bookkeeping.

    Attributes:
        id: Composite id "{col}::{oid}"
        col: Origin collection
        oid: Original document id
        o: Snapshot of the removed document
        account: Owning account of the snapshot
        created: When first trashed
        created_by: Who first trashed it
        modified: When last (re)trashed
    """

    id: str
    col: str
    oid: Any
    o: Document
    account: str | None = None
    created: datetime | None = None
    created_by: str | None = None
    modified: datetime | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TrashRecord:
        """Create from a stored trash document."""
        return cls(
            id=data["_id"],
            col=data["col"],
            oid=data["oid"],
            o=dict(data.get("o") or {}),
            account=data.get("_account"),
            created=data.get("_created"),
            created_by=data.get("_createdBy"),
            modified=data.get("_modified"),
        )


class TrashVault:
    """Soft-delete engine over a trash holding collection.

    Example:
        >>> vault = TrashVault(backend)
        >>> await vault.put(caller, "widgets", ["w1"])
        ['widgets::w1']
        >>> await vault.restore(["widgets::w1"])
        1
    """

    def __init__(
        self,
        backend: DocumentBackend,
        collection: str = "trash",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the vault.

        Args:
            backend: Document store holding both origin and trash collections
            collection: Name of the trash holding collection
            clock: Source of timestamps
        """
        self.backend = backend
        self.collection = collection
        self._clock = clock

    async def put(
        self,
        caller: Caller,
        collection: str,
        ids_or_docs: Any,
        scope: AccountScope | None = None,
    ) -> list[str]:
        """Move documents from collection into the trash.

        Args:
            caller: Who is trashing, recorded as _createdBy on first trash
            collection: Origin collection
            ids_or_docs: One id, a list of ids, or already-loaded documents
            scope: Account scope limiting which documents may be moved

        Returns:
            Trash ids written

        Raises:
            UsageError: If nothing was given
        """
        items = _as_list(ids_or_docs)
        if not items:
            raise UsageError("Empty data set")

        if isinstance(items[0], Mapping):
            docs = [dict(d) for d in items if scope is None or scope.allows(d.get("_account"))]
        else:
            selector = and_selectors({"_id": {"$in": items}}, _scoped(scope))
            docs = [doc async for doc in self.backend.find(collection, selector)]

        if not docs:
            logger.info(
                "Nothing to trash",
                extra={"collection": collection, "requested": len(items)},
            )
            return []

        now = self._clock()
        ops = [
            UpsertOp(
                filter={"_id": trash_id_for(collection, doc["_id"])},
                update={
                    "$setOnInsert": {"_created": now, "_createdBy": caller.user_id},
                    "$set": {
                        "col": collection,
                        "oid": doc["_id"],
                        "o": doc,
                        "_account": doc.get("_account"),
                        "_modified": now,
                    },
                },
            )
            for doc in docs
        ]
        await self.backend.bulk_upsert(self.collection, ops)

        original_ids = [doc["_id"] for doc in docs]
        await self.backend.delete_many(
            collection, and_selectors({"_id": {"$in": original_ids}}, _scoped(scope))
        )

        trash_ids = [trash_id_for(collection, oid) for oid in original_ids]
        logger.info(
            "Moved documents to trash",
            extra={"collection": collection, "count": len(trash_ids), "user_id": caller.user_id},
        )
        return trash_ids

    async def restore(self, ids: Any, scope: AccountScope | None = None) -> int:
        """Move trashed documents back to their origin collections.

        Snapshots are grouped by origin collection and inserted with one bulk
        insert per collection, then the trash records are deleted.

        Args:
            ids: One trash id or a list of them
            scope: Account scope limiting which records may be restored

        Returns:
            Number of documents restored

        Raises:
            UsageError: If no ids were given
            DuplicateKeyError: If a snapshot's _id is live again in its origin
        """
        trash_ids = _as_list(ids)
        if not trash_ids:
            raise UsageError("Empty data set")

        selector = and_selectors({"_id": {"$in": trash_ids}}, _scoped(scope))
        records = [
            TrashRecord.from_dict(doc) async for doc in self.backend.find(self.collection, selector)
        ]
        if not records:
            return 0

        groups: dict[str, list[Document]] = {}
        for record in records:
            groups.setdefault(record.col, []).append(record.o)

        for col, docs in groups.items():
            await self.backend.insert_many(col, docs)

        await self.backend.delete_many(
            self.collection, {"_id": {"$in": [record.id for record in records]}}
        )
        logger.info(
            "Restored documents from trash",
            extra={"count": len(records), "collections": sorted(groups)},
        )
        return len(records)

    async def pluck(
        self,
        collection: str,
        trash_id: str,
        new_id: Any = None,
        scope: AccountScope | None = None,
    ) -> Document:
        """Copy one trashed snapshot back without removing the trash record.

        Args:
            collection: Origin collection the record must belong to
            trash_id: Trash record id
            new_id: Optional id for the copy, so it can coexist with the original
            scope: Account scope the record must fall in

        Returns:
            The document inserted into collection

        Raises:
            NotFoundError: If no matching trash record exists
        """
        selector = and_selectors({"_id": trash_id, "col": collection}, _scoped(scope))
        found = await self.backend.find_one(self.collection, selector)
        if found is None:
            raise NotFoundError(
                f"Trash item not found: {trash_id}",
                resource_type="trash",
                resource_id=trash_id,
            )

        doc = TrashRecord.from_dict(found).o
        if new_id is not None:
            doc["_id"] = new_id
        await self.backend.insert_many(collection, [doc])
        return doc

    async def empty(
        self,
        collection: str | None = None,
        original_ids: Any = None,
        trash_ids: Any = None,
        scope: AccountScope | None = None,
    ) -> int:
        """Permanently delete trash records.

        Filters combine; with none at all the whole trash is purged, which the
        boundary must only allow for privileged callers.

        Returns:
            Number of records deleted
        """
        query: Document = {}
        if collection:
            query["col"] = collection
        oids = _as_list(original_ids)
        if oids:
            query["oid"] = {"$in": oids}
        tids = _as_list(trash_ids)
        if tids:
            query["_id"] = {"$in": tids}

        selector = and_selectors(query, _scoped(scope))
        deleted = await self.backend.delete_many(self.collection, selector)
        logger.info(
            "Emptied trash",
            extra={"collection": collection, "deleted": deleted, "unfiltered": not selector},
        )
        return deleted

    async def list(
        self,
        options: FindOptions | None = None,
        item: str | None = None,
        collection: str | None = None,
        original_id: Any = None,
        scope: AccountScope | None = None,
        user_id: str | None = None,
    ) -> Document | ResultCursor:
        """List trash records.

        Args:
            options: where/sort/limit/nocase, as for DocumentStore.find
            item: A single trash id; returns that record or {} instead of a cursor
            collection: Only records trashed from this collection
            original_id: Only records for this original id
            scope: Account scope of visible records
            user_id: Who is asking, for authorization errors

        Returns:
            A single record (or {}) when item is given, otherwise a cursor

        Raises:
            AuthorizationDenied: If item or a plain where._account lies outside scope
        """
        options = options or FindOptions()
        where = dict(options.where or {})
        if scope is not None:
            scope.check_requested(where, user_id)
            if item:
                await self._check_visible(item, scope, user_id)

        query: Document = {}
        if item:
            query["_id"] = item
        if collection:
            query["col"] = collection
        if original_id is not None:
            query["oid"] = original_id

        selector = and_selectors(_scoped(scope), query, where)
        sort = list(options.sort) or [("_id", 1)]
        collation = CASE_INSENSITIVE if options.nocase is not False else None
        cursor = ResultCursor(
            self.backend.find(self.collection, selector, sort=sort, collation=collation),
            limit=1 if item else options.limit,
        )
        if item:
            results = await cursor.to_list()
            return results[0] if results else {}
        return cursor

    async def _check_visible(self, trash_id: str, scope: AccountScope, user_id: str | None) -> None:
        found = await self.backend.find_one(self.collection, {"_id": trash_id})
        if found is not None and not scope.allows(found.get("_account")):
            raise AuthorizationDenied(
                f"No {scope.level.value} access to trash item {trash_id}",
                user_id=user_id,
                account=found.get("_account"),
                level=scope.level.value,
            )
