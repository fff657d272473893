"""
Access control for DocVault.

This module handles:
- Access levels (read < write < owner) and the caller context
- The authorization oracle port and its implementations
- The AccessGate that turns grants into account scopes

Invariants:
    - Scoping is by the _account field of each document
    - No grants means no access
"""

from .gate import AccessGate, AccountScope
from .oracle import (
    LEVEL_HIERARCHY,
    AccessLevel,
    AuthorizationOracle,
    BackendGrantOracle,
    Caller,
    Grant,
    StaticGrantOracle,
)

__all__ = [
    "AccessGate",
    "AccountScope",
    "AccessLevel",
    "LEVEL_HIERARCHY",
    "AuthorizationOracle",
    "BackendGrantOracle",
    "StaticGrantOracle",
    "Caller",
    "Grant",
]
