"""
DocVault Test Suite.

This package contains:
- unit/: Unit tests (in-memory backend, static grants)
- integration/: HTTP API tests against the aiohttp app
- e2e/: MongoDB backend tests (need a running mongod)
"""
