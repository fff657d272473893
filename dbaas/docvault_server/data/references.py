"""
ReferentialGuard: veto deletes of documents that are still referenced.

Given candidate ids and a list of (collection, field) descriptors, the
guard probes each collection for documents whose field holds one of the
ids. An empty report means the delete may proceed; anything else is a hard
veto that the caller must surface (HTTP 423) together with the report.

Invariants:
    - One membership query per descriptor
    - The report keeps descriptor order and lists only collections with hits
    - Probes are not account-scoped: a reference from any tenant blocks
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ..store.base import DocumentBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reference:
    """A (collection, field) pair probed for live references.

    Example:
        >>> Reference.parse("project.ownerId")
        Reference(collection='project', field='ownerId')
    """

    collection: str
    field: str

    @classmethod
    def parse(cls, text: str) -> Reference:
        """Parse ``collection.field``; the field may itself be dotted.

        Raises:
            ValueError: If either part is missing
        """
        collection, sep, field_name = text.strip().partition(".")
        if not sep or not collection or not field_name:
            raise ValueError(f"Invalid reference descriptor: {text!r}")
        return cls(collection=collection, field=field_name)

    def __str__(self) -> str:
        return f"{self.collection}.{self.field}"


@dataclass
class Usage:
    """One collection holding references to the candidates."""

    collection: str
    ids: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"collection": self.collection, "ids": list(self.ids)}


class ReferentialGuard:
    """Reports which collections still reference a set of ids."""

    def __init__(self, backend: DocumentBackend) -> None:
        self.backend = backend

    async def _probe(self, ref: Reference, candidate_ids: list[Any]) -> Usage | None:
        ids = [
            doc["_id"]
            async for doc in self.backend.find(ref.collection, {ref.field: {"$in": candidate_ids}})
        ]
        return Usage(collection=ref.collection, ids=ids) if ids else None

    async def used_by(
        self, candidate_ids: Sequence[Any], references: Sequence[Reference]
    ) -> list[Usage]:
        """Probe every descriptor and report the ones with hits.

        Args:
            candidate_ids: Ids about to be deleted
            references: Descriptors to probe

        Returns:
            Ordered usage report, empty when nothing references the ids
        """
        candidates = list(candidate_ids)
        if not candidates or not references:
            return []

        results = await asyncio.gather(*(self._probe(ref, candidates) for ref in references))
        report = [usage for usage in results if usage is not None]
        if report:
            logger.info(
                "Delete vetoed by references",
                extra={
                    "ids": candidates,
                    "used_by": [u.collection for u in report],
                },
            )
        return report
