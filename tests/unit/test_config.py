"""
Unit tests for configuration loading.

Tests cover:
- ResourceOptions from environment, including DATA_REFERENCES
- ServerConfig aggregation and validation
- Secret redaction
"""

import pytest

from dbaas.docvault_server.access.oracle import AccessLevel
from dbaas.docvault_server.config import (
    HttpConfig,
    MongoConfig,
    ServerConfig,
    StoreBackend,
    redact_url,
)
from dbaas.docvault_server.data.options import ResourceOptions, parse_references
from dbaas.docvault_server.data.references import Reference
from dbaas.docvault_server.store import InMemoryBackend, MongoBackend, create_backend


class TestResourceOptions:
    """Tests for ResourceOptions."""

    def test_defaults(self):
        options = ResourceOptions()
        assert not options.safe_delete
        assert options.delete_level == AccessLevel.OWNER
        assert options.trash_collection == "trash"
        assert options.exposes("anything")

    def test_exposes(self):
        options = ResourceOptions(include=frozenset({"a", "b"}), exclude=frozenset({"b"}))
        assert options.exposes("a")
        assert not options.exposes("b")
        assert not options.exposes("c")

    def test_parse_references(self):
        parsed = parse_references("widgets=links.widgetId;orders.item.widgetId|users=project.ownerId")
        assert parsed == {
            "widgets": (Reference("links", "widgetId"), Reference("orders", "item.widgetId")),
            "users": (Reference("project", "ownerId"),),
        }
        assert parse_references("") == {}

    @pytest.mark.parametrize("raw", ["widgets", "=links.widgetId", "widgets=links"])
    def test_parse_references_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_references(raw)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DATA_SAFE_DELETE", "true")
        monkeypatch.setenv("DATA_INCLUDE", "widgets, gadgets")
        monkeypatch.setenv("DATA_EXCLUDE", "secrets")
        monkeypatch.setenv("DATA_GLOBAL_COLLECTIONS", "countries")
        monkeypatch.setenv("DATA_DELETE_LEVEL", "WRITE")
        monkeypatch.setenv("TRASH_COLLECTION", "bin")
        monkeypatch.setenv("DATA_REFERENCES", "widgets=links.widgetId")

        options = ResourceOptions.from_env()

        assert options.safe_delete
        assert options.include == {"widgets", "gadgets"}
        assert options.exclude == {"secrets"}
        assert options.global_collections == {"countries"}
        assert options.delete_level == AccessLevel.WRITE
        assert options.trash_collection == "bin"
        assert options.references_for("widgets") == (Reference("links", "widgetId"),)
        assert options.references_for("gadgets") == ()


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("STORE_BACKEND", "mongo")
        monkeypatch.setenv("MONGO_URL", "mongodb://db:27017")
        monkeypatch.setenv("MONGO_DB", "vault")
        monkeypatch.setenv("HTTP_PORT", "9000")
        monkeypatch.setenv("HTTP_CORS_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.setenv("SUPERUSERS", "root,admin")
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = ServerConfig.from_env()

        assert config.store_backend == StoreBackend.MONGO
        assert config.mongo == MongoConfig(url="mongodb://db:27017", database="vault")
        assert config.http.port == 9000
        assert config.http.cors_origins == ("https://a.example", "https://b.example")
        assert config.access.superusers == {"root", "admin"}
        assert config.observability.log_format == "text"

    def test_defaults_use_memory_backend(self, monkeypatch):
        monkeypatch.delenv("STORE_BACKEND", raising=False)
        config = ServerConfig.from_env()
        assert config.store_backend == StoreBackend.MEMORY
        assert config.http == HttpConfig()

    def test_invalid_backend(self, monkeypatch):
        monkeypatch.setenv("STORE_BACKEND", "sqlite")
        with pytest.raises(ValueError, match="STORE_BACKEND"):
            ServerConfig.from_env()

    def test_validate_rejects_global_trash(self):
        config = ServerConfig(
            resources=ResourceOptions(global_collections=frozenset({"trash"}))
        )
        with pytest.raises(ValueError, match="TRASH_COLLECTION"):
            config.validate()

    def test_validate_rejects_include_exclude_overlap(self):
        config = ServerConfig(
            resources=ResourceOptions(include=frozenset({"a"}), exclude=frozenset({"a"}))
        )
        with pytest.raises(ValueError, match="included and excluded"):
            config.validate()

    def test_validate_port(self):
        with pytest.raises(ValueError, match="HTTP_PORT"):
            ServerConfig(http=HttpConfig(port=0)).validate()

    def test_create_backend(self):
        assert isinstance(create_backend(ServerConfig()), InMemoryBackend)
        assert isinstance(
            create_backend(ServerConfig(store_backend=StoreBackend.MONGO)), MongoBackend
        )


class TestRedactUrl:
    """Tests for redact_url."""

    def test_redacts_credentials(self):
        assert redact_url("mongodb://user:pw@db:27017/vault") == "mongodb://***@db:27017/vault"

    def test_plain_url_unchanged(self):
        assert redact_url("mongodb://localhost:27017") == "mongodb://localhost:27017"
