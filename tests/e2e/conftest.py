"""
E2E test fixtures for DocVault.

These tests require a reachable MongoDB. Start one with
``docker run -p 27017:27017 mongo:7`` and set DOCVAULT_E2E_TESTS=1.
"""

import os
import uuid

import pytest
import pytest_asyncio

from dbaas.docvault_server.config import MongoConfig
from dbaas.docvault_server.store.mongo import MongoBackend


@pytest.fixture
def mongo_config() -> MongoConfig:
    """Connection settings with a throwaway database for test isolation."""
    return MongoConfig(
        url=os.environ.get("MONGO_URL", "mongodb://localhost:27017"),
        database=f"docvault_test_{uuid.uuid4().hex[:8]}",
        server_selection_timeout_ms=3000,
    )


@pytest_asyncio.fixture
async def mongo_backend(mongo_config):
    """Connected MongoBackend; the test database is dropped afterwards."""
    backend = MongoBackend(mongo_config)
    await backend.connect()
    try:
        yield backend
    finally:
        await backend._client.drop_database(mongo_config.database)
        await backend.close()
