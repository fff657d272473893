"""
Per-deployment options for the data layer.

A single immutable ResourceOptions value configures DocumentStore and the
HTTP boundary: which collections are exposed, which are global, whether
deletes go to the trash by default, and which references block a delete.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..access.oracle import AccessLevel
from .references import Reference


def _names(raw: str) -> frozenset[str]:
    return frozenset(name.strip() for name in raw.split(",") if name.strip())


def parse_references(raw: str) -> dict[str, tuple[Reference, ...]]:
    """Parse ``widgets=links.widgetId;orders.widgetId|users=project.ownerId``.

    Raises:
        ValueError: If an entry is malformed
    """
    references: dict[str, tuple[Reference, ...]] = {}
    for entry in raw.split("|"):
        if not entry.strip():
            continue
        collection, sep, descriptors = entry.partition("=")
        if not sep or not collection.strip():
            raise ValueError(f"Invalid DATA_REFERENCES entry: {entry!r}")
        references[collection.strip()] = tuple(
            Reference.parse(d) for d in descriptors.split(";") if d.strip()
        )
    return references


@dataclass(frozen=True)
class FindOptions:
    """Caller-supplied query options for find and trash listings.

    Attributes:
        where: Extra selector, MongoDB syntax
        sort: Sort order as (field, direction) pairs
        limit: Result cap, falsy means no cap
        nocase: Case-insensitive collation; None leaves the default of the
            operation (off for find, on for trash listings)
    """

    where: Mapping[str, Any] | None = None
    sort: tuple[tuple[str, int], ...] = ()
    limit: int | None = None
    nocase: bool | None = None


@dataclass(frozen=True)
class ResourceOptions:
    """Data layer options.

    Attributes:
        safe_delete: Send deletes to the trash unless the caller says otherwise
        include: Exposed collections (empty exposes all)
        exclude: Collections never exposed
        global_collections: Collections without _account scoping
        delete_level: Level required for permanent delete
        trash_collection: Name of the trash holding collection
        references: Per-collection descriptors checked before every delete
    """

    safe_delete: bool = False
    include: frozenset[str] = frozenset()
    exclude: frozenset[str] = frozenset()
    global_collections: frozenset[str] = frozenset()
    delete_level: AccessLevel = AccessLevel.OWNER
    trash_collection: str = "trash"
    references: Mapping[str, tuple[Reference, ...]] = field(default_factory=dict)

    def exposes(self, collection: str) -> bool:
        if collection in self.exclude:
            return False
        return not self.include or collection in self.include

    def references_for(self, collection: str) -> tuple[Reference, ...]:
        return tuple(self.references.get(collection, ()))

    @classmethod
    def from_env(cls) -> ResourceOptions:
        """Load configuration from environment variables."""
        return cls(
            safe_delete=os.getenv("DATA_SAFE_DELETE", "false").lower() == "true",
            include=_names(os.getenv("DATA_INCLUDE", "")),
            exclude=_names(os.getenv("DATA_EXCLUDE", "")),
            global_collections=_names(os.getenv("DATA_GLOBAL_COLLECTIONS", "")),
            delete_level=AccessLevel(os.getenv("DATA_DELETE_LEVEL", "owner").lower()),
            trash_collection=os.getenv("TRASH_COLLECTION", "trash"),
            references=parse_references(os.getenv("DATA_REFERENCES", "")),
        )
