"""
Query-string parsing for the HTTP boundary.

    where=<JSON object>          extra selector, MongoDB syntax
    sort=name,-created           field list, "-" prefix for descending
    limit=50                     positive integer, 0 or absent means no cap
    nocase=true                  case-insensitive comparison
    references=links.widgetId    comma list of collection.field descriptors

Every parse failure raises UsageError so the client gets a 400.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from ..data.options import FindOptions
from ..data.references import Reference
from ..errors import UsageError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def parse_where(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        where = json.loads(raw)
    except json.JSONDecodeError as e:
        raise UsageError(f"Invalid where: {e.msg}")
    if not isinstance(where, dict):
        raise UsageError("Invalid where: expected a JSON object")
    return where


def parse_sort(raw: str | None) -> tuple[tuple[str, int], ...]:
    if not raw:
        return ()
    fields = []
    for part in raw.split(","):
        name = part.strip()
        if not name:
            continue
        if name[0] in "-+":
            direction = -1 if name[0] == "-" else 1
            name = name[1:].strip()
        else:
            direction = 1
        if not name:
            raise UsageError(f"Invalid sort: {raw!r}")
        fields.append((name, direction))
    return tuple(fields)


def parse_bool(raw: str | None) -> bool | None:
    """Parse a flag; None when absent so the operation default applies."""
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in _TRUE or value == "":
        return True
    if value in _FALSE:
        return False
    raise UsageError(f"Invalid boolean: {raw!r}")


def parse_limit(raw: str | None) -> int | None:
    if not raw:
        return None
    try:
        limit = int(raw)
    except ValueError:
        raise UsageError(f"Invalid limit: {raw!r}")
    if limit < 0:
        raise UsageError(f"Invalid limit: {raw!r}")
    return limit or None


def parse_ids(raw: str | None) -> list[str]:
    """Split a comma list of ids from a path segment."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def parse_references(raw: str | None) -> tuple[Reference, ...]:
    if not raw:
        return ()
    try:
        return tuple(Reference.parse(part) for part in raw.split(",") if part.strip())
    except ValueError as e:
        raise UsageError(str(e))


def parse_find_options(query: Mapping[str, str]) -> FindOptions:
    """Build FindOptions from request query parameters."""
    return FindOptions(
        where=parse_where(query.get("where")),
        sort=parse_sort(query.get("sort")),
        limit=parse_limit(query.get("limit")),
        nocase=parse_bool(query.get("nocase")),
    )
