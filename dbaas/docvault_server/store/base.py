"""
Base protocol and types for the document store abstraction.

The data layer never talks to a database driver directly. It talks to a
DocumentBackend, which supplies the handful of primitives DocVault needs:
filtered find with sort and collation, single upsert, bulk upsert, bulk
insert and delete-many.

Invariants:
    - Selectors and update documents use MongoDB query/update syntax
    - A backend provides per-document atomicity only; no multi-document
      transactions are assumed
    - Cursors are finite and cannot be restarted

How to change safely:
    - Protocol changes require updating every backend (memory, mongo)
    - Keep update operators limited to what every backend implements
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
import logging

if TYPE_CHECKING:
    from ..config import ServerConfig

logger = logging.getLogger(__name__)

Document = dict[str, Any]
SortSpec = list[tuple[str, int]]


@dataclass(frozen=True)
class Collation:
    """String comparison rules for sort and compare.

    Strength 1 and 2 both ignore case; 3 is case sensitive.
    """

    locale: str = "en_US"
    strength: int = 2

    @property
    def case_insensitive(self) -> bool:
        return self.strength < 3


CASE_INSENSITIVE = Collation(locale="en_US", strength=2)


def and_selectors(*selectors: Document | None) -> Document:
    """Combine selectors so that every one of them must match."""
    parts = [s for s in selectors if s]
    if not parts:
        return {}
    if len(parts) == 1:
        return dict(parts[0])
    return {"$and": parts}


@dataclass
class UpsertOp:
    """One entry of a bulk upsert: update the match or insert it."""

    filter: Document
    update: Document


@dataclass
class BulkResult:
    """Counts reported by a bulk upsert."""

    upserted_count: int = 0
    modified_count: int = 0
    matched_count: int = 0
    upserted_ids: list[Any] = field(default_factory=list)


class ResultCursor:
    """Lazy, finite, non-restartable sequence of documents.

    Wraps the backend's async iterator and stops after ``limit`` results
    (a falsy limit means no cap). Once exhausted it stays exhausted.

    Example:
        >>> cursor = await store.find(caller, "widgets", options=FindOptions(limit=10))
        >>> async for doc in cursor:
        ...     print(doc["_id"])
    """

    def __init__(self, source: AsyncIterator[Document], limit: int | None = None) -> None:
        self._source = source
        self._limit = limit or None
        self._yielded = 0
        self._closed = False

    def __aiter__(self) -> ResultCursor:
        return self

    async def __anext__(self) -> Document:
        if self._closed:
            raise StopAsyncIteration
        if self._limit is not None and self._yielded >= self._limit:
            await self.close()
            raise StopAsyncIteration
        try:
            doc = await self._source.__anext__()
        except StopAsyncIteration:
            self._closed = True
            raise
        self._yielded += 1
        return doc

    async def to_list(self) -> list[Document]:
        """Drain the cursor into a list."""
        return [doc async for doc in self]

    async def close(self) -> None:
        """Release the underlying iterator early."""
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()


@runtime_checkable
class DocumentBackend(Protocol):
    """Protocol for document store backends.

    Example:
        >>> backend = InMemoryBackend()
        >>> await backend.connect()
        >>> await backend.upsert_one("widgets", {"_id": "w1"}, {"$set": {"name": "bolt"}})
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the store. Must be called before any other operation."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected."""
        ...

    @abstractmethod
    def find(
        self,
        collection: str,
        selector: Document,
        sort: SortSpec | None = None,
        collation: Collation | None = None,
    ) -> AsyncIterator[Document]:
        """Iterate documents matching selector in sort order."""
        ...

    @abstractmethod
    async def find_one(self, collection: str, selector: Document) -> Document | None:
        """Return the first document matching selector, or None."""
        ...

    @abstractmethod
    async def upsert_one(
        self, collection: str, filter: Document, update: Document
    ) -> Document | None:
        """Upsert one document.

        Returns:
            The post-write document when the backend can provide it, else None
        """
        ...

    @abstractmethod
    async def bulk_upsert(self, collection: str, ops: list[UpsertOp]) -> BulkResult:
        """Apply many independent upserts as one operation (unordered)."""
        ...

    @abstractmethod
    async def insert_many(self, collection: str, docs: list[Document]) -> int:
        """Insert documents. Raises DuplicateKeyError on _id collision."""
        ...

    @abstractmethod
    async def delete_many(self, collection: str, selector: Document) -> int:
        """Delete every match and return how many were removed."""
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """Check store liveness."""
        ...


def create_backend(config: ServerConfig) -> DocumentBackend:
    """Factory function to create a document backend from configuration.

    Args:
        config: Server configuration

    Returns:
        Appropriate DocumentBackend implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryBackend

    if config.store_backend == StoreBackend.MEMORY:
        return InMemoryBackend()
    elif config.store_backend == StoreBackend.MONGO:
        from .mongo import MongoBackend

        return MongoBackend(config.mongo)
    else:
        raise ValueError(f"Unsupported store backend: {config.store_backend}")
