"""
In-memory document backend for testing.

This module provides a DocumentBackend that keeps every collection in
process memory. It evaluates the subset of MongoDB query and update syntax
DocVault emits, which makes it suitable for:
- Unit tests
- Integration tests of the HTTP boundary
- Local development without a database

Invariants:
    - All data is lost on process exit
    - Documents are copied on the way in and out; callers never share state
    - Mutations are serialized with an asyncio lock

How to change safely:
    - This is test-only code, changes don't affect production
    - Any new operator used by the data layer must be added here and in
      the Mongo backend together
"""

from __future__ import annotations

import asyncio
import copy
import logging
import re
import uuid
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from ..errors import DuplicateKeyError, StoreError
from .base import BulkResult, Collation, Document, SortSpec, UpsertOp

logger = logging.getLogger(__name__)

_MISSING = object()

LOGICAL = {"$and", "$or", "$nor"}


def deep_get(doc: Document, dotted_key: str) -> Any:
    """Resolve a dotted path, returning _MISSING when any hop is absent."""
    cur: Any = doc
    for part in dotted_key.split("."):
        if isinstance(cur, dict) and part in cur:
            cur = cur[part]
        else:
            return _MISSING
    return cur


def deep_set(doc: Document, dotted_key: str, value: Any) -> None:
    parts = dotted_key.split(".")
    cur = doc
    for part in parts[:-1]:
        if not isinstance(cur.get(part), dict):
            cur[part] = {}
        cur = cur[part]
    cur[parts[-1]] = value


def deep_unset(doc: Document, dotted_key: str) -> None:
    parts = dotted_key.split(".")
    cur = doc
    for part in parts[:-1]:
        if not isinstance(cur.get(part), dict):
            return
        cur = cur[part]
    cur.pop(parts[-1], None)


def _fold(value: Any, collation: Collation | None) -> Any:
    if collation is not None and collation.case_insensitive and isinstance(value, str):
        return value.casefold()
    return value


def _equals(a: Any, b: Any, collation: Collation | None) -> bool:
    return _fold(a, collation) == _fold(b, collation)


def _candidates(value: Any) -> list[Any]:
    """A field matches a scalar if it equals it or, for arrays, contains it."""
    if value is _MISSING:
        return [None]
    if isinstance(value, list):
        return [value, *value]
    return [value]


def _compare(value: Any, op: str, arg: Any, collation: Collation | None) -> bool:
    if value is _MISSING or value is None:
        return False
    left, right = _fold(value, collation), _fold(arg, collation)
    try:
        if op == "$gt":
            return left > right
        if op == "$gte":
            return left >= right
        if op == "$lt":
            return left < right
        return left <= right
    except TypeError:
        return False


def _eval_op(value: Any, op: str, arg: Any, collation: Collation | None) -> bool:
    if op == "$eq":
        return any(_equals(c, arg, collation) for c in _candidates(value))
    if op == "$ne":
        return not _eval_op(value, "$eq", arg, collation)
    if op == "$in":
        return any(_equals(c, a, collation) for c in _candidates(value) for a in arg)
    if op == "$nin":
        return not _eval_op(value, "$in", arg, collation)
    if op == "$exists":
        return (value is not _MISSING) == bool(arg)
    if op in ("$gt", "$gte", "$lt", "$lte"):
        items = value if isinstance(value, list) else [value]
        return any(_compare(item, op, arg, collation) for item in items)
    if op == "$regex":
        flags = re.IGNORECASE if collation is not None and collation.case_insensitive else 0
        items = value if isinstance(value, list) else [value]
        return any(isinstance(item, str) and re.search(arg, item, flags) for item in items)
    if op == "$size":
        return isinstance(value, list) and len(value) == arg
    raise StoreError(f"Unsupported query operator: {op}")


def _is_operator_doc(cond: Any) -> bool:
    return isinstance(cond, dict) and bool(cond) and all(k.startswith("$") for k in cond)


def matches(doc: Document, selector: Document, collation: Collation | None = None) -> bool:
    """Evaluate a MongoDB-style selector against a document."""
    for key, cond in selector.items():
        if key in LOGICAL:
            results = [matches(doc, clause, collation) for clause in cond]
            if key == "$and" and not all(results):
                return False
            if key == "$or" and not any(results):
                return False
            if key == "$nor" and any(results):
                return False
            continue

        value = deep_get(doc, key)
        if _is_operator_doc(cond):
            if not all(_eval_op(value, op, arg, collation) for op, arg in cond.items()):
                return False
        elif not _eval_op(value, "$eq", cond, collation):
            return False
    return True


def _sort_key(value: Any, collation: Collation | None) -> tuple[int, Any]:
    # Mongo BSON comparison order, reduced to the types documents carry here
    if value is _MISSING or value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (4, value)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, _fold(value, collation))
    if isinstance(value, datetime):
        return (5, value.timestamp())
    return (3, str(value))


def _pull_matches(item: Any, cond: Any) -> bool:
    if _is_operator_doc(cond):
        return all(_eval_op(item, op, arg, None) for op, arg in cond.items())
    if isinstance(cond, dict) and isinstance(item, dict):
        return matches(item, cond)
    return item == cond


def _each(arg: Any) -> list[Any]:
    if isinstance(arg, dict) and "$each" in arg:
        return list(arg["$each"])
    return [arg]


def apply_update(doc: Document, update: Document, inserting: bool) -> None:
    """Apply MongoDB-style update operators to doc in place."""
    for op, body in update.items():
        if op == "$setOnInsert":
            if inserting:
                for key, value in body.items():
                    deep_set(doc, key, copy.deepcopy(value))
        elif op == "$set":
            for key, value in body.items():
                deep_set(doc, key, copy.deepcopy(value))
        elif op == "$unset":
            for key in body:
                deep_unset(doc, key)
        elif op in ("$push", "$addToSet"):
            for key, arg in body.items():
                current = deep_get(doc, key)
                if current is _MISSING:
                    current = []
                    deep_set(doc, key, current)
                if not isinstance(current, list):
                    raise StoreError(f"Cannot apply {op} to non-array field '{key}'")
                for value in _each(arg):
                    if op == "$push" or value not in current:
                        current.append(copy.deepcopy(value))
        elif op == "$pull":
            for key, cond in body.items():
                current = deep_get(doc, key)
                if isinstance(current, list):
                    current[:] = [item for item in current if not _pull_matches(item, cond)]
        else:
            raise StoreError(f"Unsupported update operator: {op}")


def _seed_from_filter(filter: Document) -> Document:
    """Equality clauses of an upsert filter become fields of the inserted doc."""
    seed: Document = {}
    for key, cond in filter.items():
        if key == "$and":
            for clause in cond:
                seed.update(_seed_from_filter(clause))
            continue
        if key.startswith("$") or _is_operator_doc(cond):
            continue
        deep_set(seed, key, copy.deepcopy(cond))
    return seed


class InMemoryBackend:
    """In-memory implementation of DocumentBackend for testing.

    Attributes:
        fail_next: Optional hook for fault injection; maps an operation name
            ("delete_many", "insert_many", ...) to an exception raised once
            on the next call of that operation

    Thread safety:
        Uses an asyncio lock. Safe to use from multiple coroutines.

    Example:
        >>> backend = InMemoryBackend()
        >>> await backend.connect()
        >>> await backend.insert_many("widgets", [{"_id": "w1", "name": "bolt"}])
        >>> await backend.find_one("widgets", {"_id": "w1"})
        {'_id': 'w1', 'name': 'bolt'}
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[Any, Document]] = {}
        self._connected = False
        self._lock = asyncio.Lock()
        self.fail_next: dict[str, Exception] = {}

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryBackend connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._collections.clear()
        logger.debug("InMemoryBackend closed")

    async def ping(self) -> bool:
        return self._connected

    def _check(self, operation: str) -> None:
        if not self._connected:
            raise StoreError("Not connected")
        failure = self.fail_next.pop(operation, None)
        if failure is not None:
            raise failure

    def _collection(self, name: str) -> dict[Any, Document]:
        return self._collections.setdefault(name, {})

    def _select(
        self, collection: str, selector: Document, collation: Collation | None = None
    ) -> list[Document]:
        return [
            doc
            for doc in self._collection(collection).values()
            if matches(doc, selector, collation)
        ]

    async def find(
        self,
        collection: str,
        selector: Document,
        sort: SortSpec | None = None,
        collation: Collation | None = None,
    ) -> AsyncIterator[Document]:
        self._check("find")
        async with self._lock:
            docs = [copy.deepcopy(d) for d in self._select(collection, selector, collation)]

        for key, direction in reversed(sort or []):
            docs.sort(key=lambda d: _sort_key(deep_get(d, key), collation), reverse=direction < 0)

        for doc in docs:
            yield doc

    async def find_one(self, collection: str, selector: Document) -> Document | None:
        self._check("find_one")
        async with self._lock:
            found = self._select(collection, selector)
            return copy.deepcopy(found[0]) if found else None

    def _upsert(self, collection: str, filter: Document, update: Document) -> tuple[Document, str]:
        docs = self._collection(collection)
        found = self._select(collection, filter)
        if found:
            doc = found[0]
            before = copy.deepcopy(doc)
            apply_update(doc, update, inserting=False)
            return doc, "modified" if doc != before else "matched"

        doc = _seed_from_filter(filter)
        apply_update(doc, update, inserting=True)
        doc.setdefault("_id", uuid.uuid4().hex)
        if doc["_id"] in docs:
            raise DuplicateKeyError(f"Duplicate _id '{doc['_id']}' in {collection}")
        docs[doc["_id"]] = doc
        return doc, "upserted"

    async def upsert_one(
        self, collection: str, filter: Document, update: Document
    ) -> Document | None:
        self._check("upsert_one")
        async with self._lock:
            doc, _ = self._upsert(collection, filter, update)
            return copy.deepcopy(doc)

    async def bulk_upsert(self, collection: str, ops: list[UpsertOp]) -> BulkResult:
        self._check("bulk_upsert")
        result = BulkResult()
        async with self._lock:
            for op in ops:
                doc, outcome = self._upsert(collection, op.filter, op.update)
                if outcome == "upserted":
                    result.upserted_count += 1
                    result.upserted_ids.append(doc["_id"])
                else:
                    result.matched_count += 1
                    if outcome == "modified":
                        result.modified_count += 1
        return result

    async def insert_many(self, collection: str, docs: list[Document]) -> int:
        self._check("insert_many")
        async with self._lock:
            target = self._collection(collection)
            prepared = [copy.deepcopy(d) for d in docs]
            seen: set[Any] = set()
            for doc in prepared:
                doc.setdefault("_id", uuid.uuid4().hex)
                if doc["_id"] in target or doc["_id"] in seen:
                    raise DuplicateKeyError(f"Duplicate _id '{doc['_id']}' in {collection}")
                seen.add(doc["_id"])
            for doc in prepared:
                target[doc["_id"]] = doc
        return len(prepared)

    async def delete_many(self, collection: str, selector: Document) -> int:
        self._check("delete_many")
        async with self._lock:
            target = self._collection(collection)
            doomed = [doc["_id"] for doc in self._select(collection, selector)]
            for _id in doomed:
                del target[_id]
        logger.debug(
            "Deleted documents from in-memory store",
            extra={"collection": collection, "count": len(doomed)},
        )
        return len(doomed)

    # Testing helpers

    def dump(self, collection: str) -> list[Document]:
        """Return copies of every document in a collection."""
        return [copy.deepcopy(d) for d in self._collection(collection).values()]
