"""
Authorization oracle port for DocVault.

DocVault does not own the account/user/permission model. It asks an
oracle which accounts a user holds grants on at a given level:

    granted_accounts(user_id, level) -> set of account ids

Levels form a lattice read < write < owner. A grant at one level
satisfies every level below it.

Invariants:
    - Oracles are side-effect free queries
    - An unknown user has no grants (empty set, never an error)

How to change safely:
    - New levels must slot into LEVEL_HIERARCHY without reordering
    - Oracle implementations must honour the hierarchy
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering
from typing import Any, Protocol, runtime_checkable

from ..store.base import DocumentBackend

logger = logging.getLogger(__name__)


@total_ordering
class AccessLevel(Enum):
    """Access levels, ordered read < write < owner."""

    READ = "read"
    WRITE = "write"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, AccessLevel):
            return NotImplemented
        return self.rank < other.rank

    def satisfied_by(self) -> list[AccessLevel]:
        """Grant levels that satisfy a request at this level."""
        return [level for level in AccessLevel if level >= self]


_RANK = {AccessLevel.READ: 0, AccessLevel.WRITE: 1, AccessLevel.OWNER: 2}

# Grant level -> request levels it satisfies
LEVEL_HIERARCHY = {
    AccessLevel.READ: {AccessLevel.READ},
    AccessLevel.WRITE: {AccessLevel.READ, AccessLevel.WRITE},
    AccessLevel.OWNER: {AccessLevel.READ, AccessLevel.WRITE, AccessLevel.OWNER},
}


@dataclass(frozen=True)
class Caller:
    """Identity invoking an operation.

    Threaded explicitly through every call instead of riding on a request
    object.

    Attributes:
        user_id: The acting user
        account_id: The caller's own account, default owner of new documents
        superuser: Bypasses account scoping entirely
    """

    user_id: str
    account_id: str
    superuser: bool = False


@dataclass(frozen=True)
class Grant:
    """A (user, account, level) fact."""

    user: str
    account: str
    level: AccessLevel

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for storage."""
        return {"user": self.user, "account": self.account, "level": self.level.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Grant:
        """Create from dictionary."""
        return cls(user=data["user"], account=data["account"], level=AccessLevel(data["level"]))


@runtime_checkable
class AuthorizationOracle(Protocol):
    """Answers which accounts a user may act on at a level."""

    @abstractmethod
    async def granted_accounts(self, user_id: str, level: AccessLevel) -> set[str]:
        """Return the accounts on which user_id holds a grant satisfying level."""
        ...


class StaticGrantOracle:
    """Oracle backed by an in-process list of grants.

    Used in tests and for small fixed deployments.

    Example:
        >>> oracle = StaticGrantOracle([Grant("u1", "acct-1", AccessLevel.WRITE)])
        >>> await oracle.granted_accounts("u1", AccessLevel.READ)
        {'acct-1'}
    """

    def __init__(self, grants: Iterable[Grant] = ()) -> None:
        self._grants: set[Grant] = set(grants)

    def grant(self, user: str, account: str, level: AccessLevel) -> None:
        self._grants.add(Grant(user, account, level))

    def revoke(self, user: str, account: str, level: AccessLevel) -> None:
        self._grants.discard(Grant(user, account, level))

    async def granted_accounts(self, user_id: str, level: AccessLevel) -> set[str]:
        return {
            g.account
            for g in self._grants
            if g.user == user_id and level in LEVEL_HIERARCHY[g.level]
        }


class BackendGrantOracle:
    """Oracle reading grants stored as documents in the document store.

    Each grant document looks like
    ``{"user": "u1", "account": "acct-1", "level": "write"}``.
    """

    def __init__(self, backend: DocumentBackend, collection: str = "grants") -> None:
        self.backend = backend
        self.collection = collection

    async def granted_accounts(self, user_id: str, level: AccessLevel) -> set[str]:
        selector = {
            "user": user_id,
            "level": {"$in": [lvl.value for lvl in level.satisfied_by()]},
        }
        accounts = set()
        async for doc in self.backend.find(self.collection, selector):
            account = doc.get("account")
            if account:
                accounts.add(account)
            else:
                logger.warning(f"Grant without account ignored: {doc.get('_id')}")
        return accounts
