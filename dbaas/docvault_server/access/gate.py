"""
AccessGate: account scoping for DocVault operations.

Every data operation first asks the gate which accounts the caller may act
on at the level the operation needs:

- read for find
- write for put and for recoverable (trash) delete
- owner for permanent delete

The answer becomes an AccountScope, which both checks single accounts and
renders the ``_account`` selector fragment that restricts store queries.

Invariants:
    - An empty account set means nothing is permitted, never everything
    - Superusers are unrestricted and always include their own account
    - Global collections are not account-scoped

How to change safely:
    - Any new operation must pick its level explicitly
    - Keep selector() output a plain equality/$in clause so every backend
      can evaluate it
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..errors import AuthorizationDenied
from .oracle import AccessLevel, AuthorizationOracle, Caller

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountScope:
    """The accounts a caller may touch at one level.

    Attributes:
        level: Level the scope was resolved for
        accounts: Permitted account ids
        unrestricted: True for superusers and global collections
    """

    level: AccessLevel
    accounts: frozenset[str]
    unrestricted: bool = False

    @property
    def empty(self) -> bool:
        """Whether nothing at all is permitted."""
        return not self.unrestricted and not self.accounts

    def allows(self, account: str | None) -> bool:
        return self.unrestricted or account in self.accounts

    def check_requested(self, where: Mapping[str, Any], user_id: str | None = None) -> None:
        """Reject a filter naming a plain _account outside this scope.

        Operator clauses on _account are left to the selector, which narrows
        them to the scope anyway.
        """
        requested = where.get("_account")
        if isinstance(requested, str) and not self.allows(requested):
            raise AuthorizationDenied(
                f"No {self.level.value} access to account {requested}",
                user_id=user_id,
                account=requested,
                level=self.level.value,
            )

    def selector(self) -> dict[str, Any]:
        """Selector fragment limiting a query to this scope."""
        if self.unrestricted:
            return {}
        return {"_account": {"$in": sorted(self.accounts)}}


class AccessGate:
    """Resolves the permitted account set for a caller and level.

    Thread safety:
        Stateless apart from configuration. Safe to share.

    Example:
        >>> gate = AccessGate(oracle)
        >>> await gate.permitted_accounts(caller, AccessLevel.WRITE)
        frozenset({'acct-1'})
    """

    def __init__(
        self,
        oracle: AuthorizationOracle,
        global_collections: Iterable[str] = (),
    ) -> None:
        """Initialize the gate.

        Args:
            oracle: Authorization oracle to query for grants
            global_collections: Collections exempt from account scoping
        """
        self.oracle = oracle
        self.global_collections = frozenset(global_collections)

    def is_global(self, collection: str) -> bool:
        return collection in self.global_collections

    async def permitted_accounts(self, caller: Caller, level: AccessLevel) -> frozenset[str]:
        """Accounts the caller holds a grant on at level.

        Superusers always get their own account in addition to any grants.
        """
        accounts = set(await self.oracle.granted_accounts(caller.user_id, level))
        if caller.superuser and caller.account_id:
            accounts.add(caller.account_id)
        return frozenset(accounts)

    async def resolve(
        self, caller: Caller, level: AccessLevel, collection: str | None = None
    ) -> AccountScope:
        """Build the AccountScope for an operation on collection."""
        accounts = await self.permitted_accounts(caller, level)
        unrestricted = caller.superuser or (
            collection is not None and self.is_global(collection)
        )
        scope = AccountScope(level=level, accounts=accounts, unrestricted=unrestricted)
        logger.debug(
            "Resolved account scope",
            extra={
                "user_id": caller.user_id,
                "level": level.value,
                "collection": collection,
                "accounts": len(accounts),
                "unrestricted": unrestricted,
            },
        )
        return scope
