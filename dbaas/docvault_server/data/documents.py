"""
DocumentStore: account-scoped CRUD over arbitrarily named collections.

Operations and the access level each one resolves:

    find                      read
    put                       write
    remove (recoverable)      write   (trashing can be undone)
    remove (permanent)        owner   (ResourceOptions.delete_level)

Reads and deletes are scoped with the ``_account`` selector from the
AccessGate. Writes check the target account explicitly: a single document
naming a foreign account is rejected, a batch silently drops such items
and reports them in BatchResult.skipped.

Invariants:
    - Non-superusers never see or touch documents outside their scope
    - Upsert filters carry the write scope, so a document owned by another
      tenant is never overwritten through an id collision
    - The trash holding collection is not writable through put

How to change safely:
    - Keep the level per operation as listed above; it is policy
    - Any new write path must go through MergeEngine
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..access.gate import AccessGate, AccountScope
from ..access.oracle import AccessLevel, Caller
from ..errors import AuthorizationDenied, NotFoundError, ReferentialConflict, UsageError
from ..store.base import (
    Collation,
    CASE_INSENSITIVE,
    Document,
    DocumentBackend,
    ResultCursor,
    UpsertOp,
    and_selectors,
)
from .ids import new_id
from .merge import ACCOUNT_FIELD, MergeEngine
from .options import FindOptions, ResourceOptions
from .references import Reference, ReferentialGuard, Usage
from .trash import TrashVault

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome of a batch put.

    Attributes:
        upserted_count: Items inserted
        modified_count: Existing items changed
        skipped: Batch indexes dropped because their _account was not writable
    """

    upserted_count: int = 0
    modified_count: int = 0
    skipped: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "upsertedCount": self.upserted_count,
            "modifiedCount": self.modified_count,
            "skipped": list(self.skipped),
        }


def _writable(scope: AccountScope, account: Any) -> bool:
    if account is None:
        return True
    return isinstance(account, str) and scope.allows(account)


class DocumentStore:
    """CRUD engine scoped by account.

    Example:
        >>> store = DocumentStore(backend, AccessGate(oracle))
        >>> doc = await store.put(caller, "widgets", {"name": "bolt"})
        >>> await store.find(caller, "widgets", doc["_id"])
        {'_id': '2026...', 'name': 'bolt', '_account': 'acct-1', ...}
    """

    def __init__(
        self,
        backend: DocumentBackend,
        gate: AccessGate,
        options: ResourceOptions | None = None,
        merge: MergeEngine | None = None,
        id_factory: Callable[[], str] = new_id,
        trash: TrashVault | None = None,
        guard: ReferentialGuard | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            backend: Document store backend
            gate: Access gate resolving account scopes
            options: Resource options (defaults if omitted)
            merge: Update builder
            id_factory: Generator for ids of new documents
            trash: Trash vault used by recoverable deletes
            guard: Referential guard used before deletes
        """
        self.backend = backend
        self.gate = gate
        self.options = options or ResourceOptions()
        self.merge = merge or MergeEngine()
        self.id_factory = id_factory
        self.trash = trash or TrashVault(backend, collection=self.options.trash_collection)
        self.guard = guard or ReferentialGuard(backend)

    def _check_exposed(self, collection: str) -> None:
        if not collection or not self.options.exposes(collection):
            raise NotFoundError(
                f"Collection not found: {collection}",
                resource_type="collection",
                resource_id=collection,
            )

    async def find(
        self,
        caller: Caller,
        collection: str,
        item: Any = None,
        options: FindOptions | None = None,
    ) -> Document | ResultCursor:
        """Query a collection within the caller's read scope.

        Args:
            caller: Request context
            collection: Collection to read
            item: One id (returns a single document or {}), or a list of ids
            options: where/sort/limit/nocase

        Returns:
            A single document ({} when absent) for a single id, else a cursor

        Raises:
            AuthorizationDenied: If where names an _account outside the scope
            NotFoundError: If the collection is not exposed
        """
        self._check_exposed(collection)
        options = options or FindOptions()
        scope = await self.gate.resolve(caller, AccessLevel.READ, collection)

        where = dict(options.where or {})
        scope.check_requested(where, caller.user_id)

        single = item is not None and not isinstance(item, (list, tuple, set, frozenset))
        id_clause: Document = {}
        if single:
            id_clause = {"_id": item}
        elif item is not None:
            id_clause = {"_id": {"$in": list(item)}}

        selector = and_selectors(scope.selector(), id_clause, where)
        collation: Collation | None = CASE_INSENSITIVE if options.nocase else None
        cursor = ResultCursor(
            self.backend.find(collection, selector, sort=list(options.sort), collation=collation),
            limit=1 if single else options.limit,
        )
        if single:
            results = await cursor.to_list()
            return results[0] if results else {}
        return cursor

    async def put(
        self,
        caller: Caller,
        collection: str,
        payload: Mapping[str, Any] | Sequence[Mapping[str, Any]],
        item_id: Any = None,
    ) -> Document | BatchResult:
        """Upsert one document or a batch.

        Args:
            caller: Request context
            collection: Target collection
            payload: A partial document, or a sequence of them
            item_id: Explicit id for a single payload without _id

        Returns:
            The post-write document, or a BatchResult for a batch

        Raises:
            AuthorizationDenied: Single payload naming a non-writable _account
            UsageError: Empty batch, or a write to the trash collection
            NotFoundError: If the collection is not exposed
        """
        self._check_exposed(collection)
        if collection == self.options.trash_collection:
            raise UsageError("Illegal request: trash cannot be written directly")

        scope = await self.gate.resolve(caller, AccessLevel.WRITE, collection)
        if isinstance(payload, Mapping):
            return await self._put_one(caller, collection, dict(payload), item_id, scope)
        return await self._put_batch(caller, collection, [dict(p) for p in payload], scope)

    def _claim_account(self, caller: Caller, collection: str, update: Document) -> str | None:
        """Account an update writes to, read from its final $set bucket.

        Without one, new documents default to the caller's account through
        $setOnInsert and existing documents keep theirs.
        """
        account = update["$set"].get(ACCOUNT_FIELD)
        if account or self.gate.is_global(collection):
            return account
        update["$set"].pop(ACCOUNT_FIELD, None)
        update["$setOnInsert"][ACCOUNT_FIELD] = caller.account_id
        return caller.account_id

    def _upsert_filter(self, doc_id: Any, scope: AccountScope) -> Document:
        return and_selectors({"_id": doc_id}, scope.selector())

    async def _put_one(
        self,
        caller: Caller,
        collection: str,
        doc: Document,
        item_id: Any,
        scope: AccountScope,
    ) -> Document:
        update = self.merge.build_update(caller.user_id, doc)
        account = self._claim_account(caller, collection, update)
        if not _writable(scope, account):
            raise AuthorizationDenied(
                f"No write access to account {account}",
                user_id=caller.user_id,
                account=str(account),
                level=AccessLevel.WRITE.value,
            )

        doc_id = doc.get("_id") or item_id or self.id_factory()
        result = await self.backend.upsert_one(
            collection, self._upsert_filter(doc_id, scope), update
        )
        if result is None:
            result = await self.backend.find_one(collection, {"_id": doc_id})

        logger.debug(
            "Put document",
            extra={"collection": collection, "id": doc_id, "user_id": caller.user_id},
        )
        return result or {}

    async def _put_batch(
        self,
        caller: Caller,
        collection: str,
        docs: list[Document],
        scope: AccountScope,
    ) -> BatchResult:
        if not docs:
            raise UsageError("Empty data set")

        ops = []
        skipped = []
        for index, doc in enumerate(docs):
            update = self.merge.build_update(caller.user_id, doc)
            if not _writable(scope, self._claim_account(caller, collection, update)):
                skipped.append(index)
                continue
            doc_id = doc.get("_id") or self.id_factory()
            ops.append(UpsertOp(filter=self._upsert_filter(doc_id, scope), update=update))

        result = BatchResult(skipped=skipped)
        if ops:
            bulk = await self.backend.bulk_upsert(collection, ops)
            result.upserted_count = bulk.upserted_count
            result.modified_count = bulk.modified_count

        logger.info(
            "Put batch",
            extra={
                "collection": collection,
                "requested": len(docs),
                "attempted": len(ops),
                "skipped": len(skipped),
                "user_id": caller.user_id,
            },
        )
        return result

    async def check_conditions(
        self,
        collection: str,
        ids: Any,
        references: Sequence[Reference] = (),
    ) -> list[Usage]:
        """Report which collections still reference ids.

        The descriptors checked are the explicit ones plus those configured
        for collection in ResourceOptions.references.
        """
        candidates = _normalize_ids(ids)
        descriptors = list(references) + [
            ref for ref in self.options.references_for(collection) if ref not in references
        ]
        return await self.guard.used_by(candidates, descriptors)

    async def remove(
        self,
        caller: Caller,
        collection: str,
        ids: Any,
        recoverable: bool | None = None,
        references: Sequence[Reference] = (),
    ) -> None:
        """Delete documents, permanently or into the trash.

        Args:
            caller: Request context
            collection: Collection holding the documents
            ids: One id or a list of ids
            recoverable: Move to trash instead of deleting; defaults to
                ResourceOptions.safe_delete
            references: Extra descriptors to check before deleting

        Raises:
            UsageError: If no id was given
            ReferentialConflict: If other documents still reference the ids
            AuthorizationDenied: If the caller holds no grant at the level needed
            NotFoundError: If the collection is not exposed
        """
        self._check_exposed(collection)
        candidates = _normalize_ids(ids)
        if not candidates:
            raise UsageError("No id provided")

        usage = await self.check_conditions(collection, candidates, references)
        if usage:
            raise ReferentialConflict(
                f"{collection} item(s) still referenced by "
                + ", ".join(u.collection for u in usage),
                usage=usage,
            )

        if recoverable is None:
            recoverable = self.options.safe_delete
        level = AccessLevel.WRITE if recoverable else self.options.delete_level

        scope = await self.gate.resolve(caller, level, collection)
        if scope.empty:
            raise AuthorizationDenied(
                f"No {level.value} access in {collection}",
                user_id=caller.user_id,
                level=level.value,
            )

        if recoverable:
            await self.trash.put(caller, collection, candidates, scope=scope)
            return

        selector = and_selectors({"_id": {"$in": candidates}}, scope.selector())
        deleted = await self.backend.delete_many(collection, selector)
        logger.info(
            "Deleted documents",
            extra={"collection": collection, "requested": len(candidates), "deleted": deleted},
        )


def _normalize_ids(ids: Any) -> list[Any]:
    if ids is None or ids == "":
        return []
    if isinstance(ids, (list, tuple, set, frozenset)):
        return [i for i in ids if i is not None and i != ""]
    return [ids]
