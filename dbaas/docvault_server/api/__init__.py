"""
API module for DocVault server.

This module provides the external interface:
- HTTP server (REST API over DocumentStore and TrashVault)
- Query-string parsing for where/sort/limit/nocase

Invariants:
    - All data operations require X-Actor and X-Account-ID
    - Errors map from DocVaultError.status

How to change safely:
    - Keep handlers thin; semantics belong in the data layer
"""

from .http_server import create_http_app, extract_caller
from .query import parse_find_options

__all__ = [
    "create_http_app",
    "extract_caller",
    "parse_find_options",
]
