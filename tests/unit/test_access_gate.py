"""
Unit tests for AccessGate and AccountScope.

Tests cover:
- Permitted account resolution per level
- Superuser self-access
- Empty grants meaning nothing permitted
- Scope selectors for regular, superuser and global access
- Rejecting filters that name an account outside the scope
"""

import pytest

from dbaas.docvault_server.access.gate import AccessGate, AccountScope
from dbaas.docvault_server.access.oracle import AccessLevel, Caller, Grant, StaticGrantOracle
from dbaas.docvault_server.errors import AuthorizationDenied


class TestAccountScope:
    """Tests for AccountScope."""

    def test_selector_lists_accounts_sorted(self):
        scope = AccountScope(AccessLevel.READ, frozenset({"b", "a"}))
        assert scope.selector() == {"_account": {"$in": ["a", "b"]}}

    def test_unrestricted_selector_is_empty(self):
        scope = AccountScope(AccessLevel.READ, frozenset(), unrestricted=True)
        assert scope.selector() == {}
        assert scope.allows("anything")
        assert not scope.empty

    def test_empty_scope_allows_nothing(self):
        """No accounts means nothing, never everything."""
        scope = AccountScope(AccessLevel.WRITE, frozenset())
        assert scope.empty
        assert not scope.allows("acct-1")
        assert not scope.allows(None)
        assert scope.selector() == {"_account": {"$in": []}}

    def test_check_requested_rejects_foreign_account(self):
        scope = AccountScope(AccessLevel.READ, frozenset({"acct-1"}))

        with pytest.raises(AuthorizationDenied) as exc_info:
            scope.check_requested({"_account": "acct-3"}, user_id="alice")

        assert exc_info.value.account == "acct-3"
        assert exc_info.value.level == "read"
        scope.check_requested({"_account": "acct-1"})
        scope.check_requested({"_account": {"$in": ["acct-3"]}})
        scope.check_requested({"name": "bolt"})


class TestAccessGate:
    """Tests for AccessGate."""

    @pytest.fixture
    def gate(self):
        oracle = StaticGrantOracle(
            [
                Grant("alice", "acct-1", AccessLevel.WRITE),
                Grant("alice", "acct-2", AccessLevel.READ),
            ]
        )
        return AccessGate(oracle, global_collections=["countries"])

    @pytest.mark.asyncio
    async def test_permitted_accounts_by_level(self, gate):
        alice = Caller("alice", "acct-1")
        assert await gate.permitted_accounts(alice, AccessLevel.READ) == {"acct-1", "acct-2"}
        assert await gate.permitted_accounts(alice, AccessLevel.WRITE) == {"acct-1"}
        assert await gate.permitted_accounts(alice, AccessLevel.OWNER) == frozenset()

    @pytest.mark.asyncio
    async def test_no_grants_returns_empty_set(self, gate):
        nobody = Caller("nobody", "acct-7")
        assert await gate.permitted_accounts(nobody, AccessLevel.READ) == frozenset()

    @pytest.mark.asyncio
    async def test_superuser_always_has_own_account(self, gate):
        """Superuser gets self-access even without grants."""
        root = Caller("root", "acct-root", superuser=True)
        assert await gate.permitted_accounts(root, AccessLevel.OWNER) == {"acct-root"}

    @pytest.mark.asyncio
    async def test_resolve_regular_caller(self, gate):
        scope = await gate.resolve(Caller("alice", "acct-1"), AccessLevel.READ, "widgets")
        assert not scope.unrestricted
        assert scope.level == AccessLevel.READ
        assert scope.selector() == {"_account": {"$in": ["acct-1", "acct-2"]}}

    @pytest.mark.asyncio
    async def test_resolve_superuser_is_unrestricted(self, gate):
        root = Caller("root", "acct-root", superuser=True)
        scope = await gate.resolve(root, AccessLevel.OWNER, "widgets")
        assert scope.unrestricted
        assert scope.selector() == {}
        assert scope.accounts == {"acct-root"}

    @pytest.mark.asyncio
    async def test_resolve_global_collection_is_unrestricted(self, gate):
        scope = await gate.resolve(Caller("nobody", "acct-7"), AccessLevel.READ, "countries")
        assert scope.unrestricted
        assert gate.is_global("countries")
        assert not gate.is_global("widgets")
