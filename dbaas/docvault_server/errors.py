"""
Error types for DocVault.

Every failure surfaced by the data layer is a DocVaultError subclass
carrying an HTTP-equivalent status so the transport boundary can map it
without inspecting the message:

- AuthorizationDenied (401): caller lacks the required account-level grant
- UsageError (400): missing or empty required input (no id, empty batch)
- NotFoundError (404): a target that must exist does not
- ReferentialConflict (423): delete vetoed by live references
- StoreError (500 or the store's own status): underlying store call failed

Invariants:
    - All errors inherit from DocVaultError
    - No error is retried by this layer
    - The silent per-item skip of a batch put is not an error

How to change safely:
    - New error kinds need a distinct code and status
    - Keep details JSON-serializable, they are returned to HTTP callers
"""

from __future__ import annotations

from typing import Any


class DocVaultError(Exception):
    """Base exception for all DocVault errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        status: HTTP-equivalent status code
        details: Additional error context
    """

    status = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DOCVAULT_ERROR"
        self.details = details or {}
        if status is not None:
            self.status = status


class AuthorizationDenied(DocVaultError):
    """Caller lacks the account-level grant the operation requires.

    Raised when:
    - A single put names an _account the caller cannot write
    - A read filter names an _account outside the caller's read scope
    - The caller holds no grant at all at the required level
    """

    status = 401

    def __init__(
        self,
        message: str,
        user_id: str | None = None,
        account: str | None = None,
        level: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code="AUTHORIZATION_DENIED",
            details={"user_id": user_id, "account": account, "level": level},
        )
        self.user_id = user_id
        self.account = account
        self.level = level


class UsageError(DocVaultError):
    """A required input is missing or empty."""

    status = 400

    def __init__(self, message: str) -> None:
        super().__init__(message, code="USAGE_ERROR")


class NotFoundError(DocVaultError):
    """Resource not found.

    Raised when:
    - A trash record named by pluck does not exist
    - A collection is not exposed by the resource options
    """

    status = 404

    def __init__(self, message: str, resource_type: str, resource_id: str) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ReferentialConflict(DocVaultError):
    """Delete vetoed because other collections still reference the ids.

    Attributes:
        usage: The ReferentialGuard report, one entry per referencing collection
    """

    status = 423

    def __init__(self, message: str, usage: list[Any]) -> None:
        super().__init__(
            message,
            code="REFERENTIAL_CONFLICT",
            details={"used_by": [u.to_dict() for u in usage]},
        )
        self.usage = usage


class StoreError(DocVaultError):
    """The underlying document store call failed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message, code="STORE_ERROR", status=status)


class DuplicateKeyError(StoreError):
    """An insert collided with an existing _id."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status=409)
