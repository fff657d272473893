"""
DocVault Server - multi-tenant document access layer.

This package puts generic CRUD over named collections in front of a
schemaless document store, with:
- Per-account access control (read < write < owner grants)
- Safe partial upserts that protect creation metadata
- Referential checks that veto deletes of referenced documents
- A recoverable soft-delete lifecycle (the trash)

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│    HTTP     │────▶│  DocumentStore  │
    │             │     │   Server    │     │                 │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                        ┌──────────────┬─────────────┼──────────────┐
                        │              │             │              │
                        ▼              ▼             ▼              ▼
                  ┌──────────┐  ┌────────────┐ ┌──────────┐  ┌────────────┐
                  │AccessGate│  │MergeEngine │ │TrashVault│  │Referential │
                  │ (oracle) │  │            │ │          │  │   Guard    │
                  └──────────┘  └────────────┘ └────┬─────┘  └─────┬──────┘
                                                    │              │
                                                    ▼              ▼
                        ┌─────────────────────────────────────────────┐
                        │     DocumentBackend (MongoDB / in-memory)   │
                        └─────────────────────────────────────────────┘

Invariants:
    - Every operation carries an explicit Caller (user, account, superuser)
    - Non-superusers only see and change documents of their granted accounts
    - _id, _created and _createdBy never change after the first insert
    - There are no multi-document transactions; see TrashVault

How to change safely:
    - Backends must keep to the selector/update subset in store/memory.py
    - Access levels per operation are policy, change them deliberately

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
