"""
MergeEngine: turn a caller-supplied partial document into a safe upsert.

The update it builds is handed unmodified to the store's native upsert:

    {
        "$set": {...plain fields..., "_modified": now},
        "$setOnInsert": {"_created": now, "_createdBy": user},
        "$push" / "$pull" / "$addToSet" / "$unset": {...passthrough...},
    }

Invariants:
    - _id, _created and _createdBy are never written by $set, so repeated
      application never changes them after the first insert
    - _modified is refreshed on every application
    - Protected fields are stripped from passthrough operator bodies too
    - _account is only ever written as a whole value through $set, where
      DocumentStore checks it; other operators never touch it

How to change safely:
    - Adding an operator here means adding it to every backend
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

MUTATION_OPERATORS = ("$set", "$push", "$pull", "$addToSet", "$unset")
PROTECTED_FIELDS = frozenset({"_id", "_created", "_createdBy"})
ACCOUNT_FIELD = "_account"

# Fields no passthrough operator may touch; $set gets _modified from us
_SYSTEM_FIELDS = PROTECTED_FIELDS | {"_modified"}


def _is_system_path(key: str) -> bool:
    return key.split(".", 1)[0] in _SYSTEM_FIELDS


def _is_account_path(key: str, whole_allowed: bool) -> bool:
    if key == ACCOUNT_FIELD:
        return not whole_allowed
    return key.startswith(ACCOUNT_FIELD + ".")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MergeEngine:
    """Builds update specs for DocumentStore.put.

    Example:
        >>> engine = MergeEngine()
        >>> engine.build_update("u1", {"name": "bolt", "$push": {"tags": "steel"}})
        {'$set': {'name': 'bolt', '_modified': ...},
         '$push': {'tags': 'steel'},
         '$setOnInsert': {'_created': ..., '_createdBy': 'u1'}}
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    def build_update(self, caller_user_id: str, partial: Mapping[str, Any]) -> dict[str, Any]:
        """Build the upsert update for partial on behalf of caller_user_id.

        Args:
            caller_user_id: User recorded as _createdBy on first insert
            partial: Plain fields and/or passthrough mutation operators

        Returns:
            Update document for the store's upsert primitive
        """
        now = self._clock()
        update: dict[str, Any] = {"$set": {}}

        for key, value in partial.items():
            if key in MUTATION_OPERATORS:
                whole_account = key == "$set"
                body = {
                    k: v
                    for k, v in (value or {}).items()
                    if not _is_system_path(k) and not _is_account_path(k, whole_account)
                }
                if key == "$set":
                    update["$set"].update(body)
                elif body:
                    update[key] = body
            elif key.startswith("$"):
                logger.warning(f"Ignoring unsupported update operator: {key}")
            elif key not in PROTECTED_FIELDS and not _is_account_path(key, True):
                update["$set"][key] = value

        update["$set"]["_modified"] = now
        update["$setOnInsert"] = {
            "_created": now,
            # Supplied _createdBy survives on insert only, for imports
            "_createdBy": partial.get("_createdBy") or caller_user_id,
        }
        return update
