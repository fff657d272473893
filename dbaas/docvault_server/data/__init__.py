"""
Data layer for DocVault.

This module provides:
- DocumentStore: account-scoped find/put/remove
- MergeEngine: partial document to safe upsert
- ReferentialGuard: delete vetoes for referenced ids
- TrashVault: recoverable delete
- ResourceOptions / FindOptions: immutable option values
- IdForge: dated ids for new documents
"""

from .documents import BatchResult, DocumentStore
from .ids import IdForge, new_id
from .merge import MUTATION_OPERATORS, PROTECTED_FIELDS, MergeEngine
from .options import FindOptions, ResourceOptions, parse_references
from .references import Reference, ReferentialGuard, Usage
from .trash import TrashRecord, TrashVault, trash_id_for

__all__ = [
    "DocumentStore",
    "BatchResult",
    "MergeEngine",
    "MUTATION_OPERATORS",
    "PROTECTED_FIELDS",
    "ReferentialGuard",
    "Reference",
    "Usage",
    "TrashVault",
    "TrashRecord",
    "trash_id_for",
    "FindOptions",
    "ResourceOptions",
    "parse_references",
    "IdForge",
    "new_id",
]
