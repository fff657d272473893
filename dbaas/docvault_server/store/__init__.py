"""
Document store abstraction for DocVault.

This module provides a pluggable backend interface supporting:
- MongoDB (production)
- In-memory (for testing)

Invariants:
    - Backends speak MongoDB selector/update syntax
    - No backend is assumed to support multi-document transactions
    - Driver errors surface as StoreError

How to change safely:
    - New backends must implement the DocumentBackend protocol
    - Run the data layer test suite against every backend
"""

from .base import (
    CASE_INSENSITIVE,
    BulkResult,
    Collation,
    Document,
    DocumentBackend,
    ResultCursor,
    SortSpec,
    UpsertOp,
    create_backend,
)
from .memory import InMemoryBackend
from .mongo import MongoBackend

__all__ = [
    # Protocol and types
    "DocumentBackend",
    "Document",
    "SortSpec",
    "Collation",
    "CASE_INSENSITIVE",
    "UpsertOp",
    "BulkResult",
    "ResultCursor",
    # Factory
    "create_backend",
    # Implementations
    "InMemoryBackend",
    "MongoBackend",
]
