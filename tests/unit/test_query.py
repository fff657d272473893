"""
Unit tests for HTTP query-string parsing.
"""

import pytest

from dbaas.docvault_server.api.query import (
    parse_bool,
    parse_find_options,
    parse_ids,
    parse_limit,
    parse_references,
    parse_sort,
    parse_where,
)
from dbaas.docvault_server.data.options import FindOptions
from dbaas.docvault_server.data.references import Reference
from dbaas.docvault_server.errors import UsageError


class TestParsers:
    """Tests for individual parameter parsers."""

    def test_where(self):
        assert parse_where('{"size": {"$gt": 2}}') == {"size": {"$gt": 2}}
        assert parse_where(None) is None
        assert parse_where("") is None

    @pytest.mark.parametrize("raw", ["{bad", "[1, 2]", '"text"'])
    def test_where_invalid(self, raw):
        with pytest.raises(UsageError):
            parse_where(raw)

    def test_sort(self):
        assert parse_sort("name,-size, +created") == (("name", 1), ("size", -1), ("created", 1))
        assert parse_sort("") == ()
        assert parse_sort("a,,b") == (("a", 1), ("b", 1))

    def test_sort_invalid(self):
        with pytest.raises(UsageError):
            parse_sort("-")

    @pytest.mark.parametrize(
        "raw,expected",
        [("true", True), ("1", True), ("", True), ("FALSE", False), ("no", False), (None, None)],
    )
    def test_bool(self, raw, expected):
        assert parse_bool(raw) is expected

    def test_bool_invalid(self):
        with pytest.raises(UsageError):
            parse_bool("maybe")

    def test_limit(self):
        assert parse_limit("25") == 25
        assert parse_limit("0") is None
        assert parse_limit(None) is None

    @pytest.mark.parametrize("raw", ["ten", "-1"])
    def test_limit_invalid(self, raw):
        with pytest.raises(UsageError):
            parse_limit(raw)

    def test_ids(self):
        assert parse_ids("w1, w2,,w3") == ["w1", "w2", "w3"]
        assert parse_ids(None) == []

    def test_references(self):
        assert parse_references("links.widgetId,project.ownerId") == (
            Reference("links", "widgetId"),
            Reference("project", "ownerId"),
        )
        assert parse_references(None) == ()

    def test_references_invalid(self):
        with pytest.raises(UsageError):
            parse_references("links")


class TestParseFindOptions:
    """Tests for parse_find_options."""

    def test_full_query(self):
        options = parse_find_options(
            {"where": '{"name": "bolt"}', "sort": "-size", "limit": "5", "nocase": "true"}
        )
        assert options == FindOptions(
            where={"name": "bolt"}, sort=(("size", -1),), limit=5, nocase=True
        )

    def test_empty_query(self):
        assert parse_find_options({}) == FindOptions()
