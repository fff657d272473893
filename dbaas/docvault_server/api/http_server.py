"""
HTTP server implementation for DocVault.

This module exposes DocumentStore and TrashVault as a REST API:

    GET    /data/trash[/{item}]              list trash (read accounts)
    PUT    /data/trash[/{item}]              rejected, 400
    POST   /data/trash/{ids}/restore         restore (write accounts)
    DELETE /data/trash/{ids}                 purge records (owner accounts)
    DELETE /data/trash                       purge everything (superusers)
    GET    /data/{collection}[/{item}]       find
    PUT    /data/{collection}[/{item}]       put (object or array body)
    DELETE /data/{collection}/{ids}          remove
    GET    /health                           store connectivity

Invariants:
    - All /data operations require X-Actor and X-Account-ID headers
    - Errors are JSON: {"status": "error", "message": ..., "code": ...}
    - Successful deletes answer 204 with no body
    - Trash routes are registered before the generic collection routes

How to change safely:
    - Keep status codes aligned with DocVaultError.status
    - Any new route must build a Caller through extract_caller
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime
from functools import partial
from typing import Any

from aiohttp import web

from ..access.oracle import AccessLevel, Caller
from ..config import HttpConfig
from ..data.documents import BatchResult, DocumentStore
from ..errors import AuthorizationDenied, DocVaultError, ReferentialConflict, UsageError
from ..store.base import ResultCursor
from .query import parse_bool, parse_find_options, parse_ids, parse_references

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


dumps = partial(json.dumps, default=_json_default)


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=dumps)


def create_http_app(
    store: DocumentStore,
    config: HttpConfig | None = None,
    superusers: Iterable[str] = (),
) -> web.Application:
    """Create an HTTP application for DocVault.

    Args:
        store: DocumentStore instance (its trash vault and backend are reused)
        config: HTTP server configuration
        superusers: User ids treated as superusers

    Returns:
        aiohttp Application instance
    """
    config = config or HttpConfig()
    privileged = frozenset(superusers)
    app = web.Application()

    def caller_of(request: web.Request) -> Caller:
        return extract_caller(request, privileged)

    # Trash first so /data/{collection} never shadows it
    app.router.add_get("/data/trash", lambda r: handle_trash_list(r, store, caller_of))
    app.router.add_get("/data/trash/{item}", lambda r: handle_trash_list(r, store, caller_of))
    app.router.add_put("/data/trash", handle_trash_put)
    app.router.add_put("/data/trash/{item}", handle_trash_put)
    app.router.add_post(
        "/data/trash/{ids}/restore", lambda r: handle_trash_restore(r, store, caller_of)
    )
    app.router.add_delete("/data/trash", lambda r: handle_trash_purge(r, store, caller_of))
    app.router.add_delete("/data/trash/{ids}", lambda r: handle_trash_empty(r, store, caller_of))

    app.router.add_get("/data/{collection}", lambda r: handle_find(r, store, caller_of))
    app.router.add_get("/data/{collection}/{item}", lambda r: handle_find(r, store, caller_of))
    app.router.add_put("/data/{collection}", lambda r: handle_put(r, store, caller_of))
    app.router.add_put("/data/{collection}/{item}", lambda r: handle_put(r, store, caller_of))
    app.router.add_delete(
        "/data/{collection}/{ids}", lambda r: handle_remove(r, store, caller_of)
    )

    app.router.add_get("/health", lambda r: handle_health(r, store))

    # Add CORS middleware
    @web.middleware
    async def cors_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response = web.Response()
        else:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                response = e

        origin = request.headers.get("Origin", "*")
        if "*" in config.cors_origins or origin in config.cors_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Actor, X-Account-ID"

        return response

    # Add error handler
    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except DocVaultError as e:
            if e.status >= 500:
                logger.error(f"Store failure on {request.method} {request.path}: {e.message}")
            else:
                logger.info(
                    "Request rejected",
                    extra={"path": request.path, "status": e.status, "code": e.code},
                )
            return json_response(error_body(e), status=e.status)
        except Exception as e:
            logger.error(f"HTTP handler error: {e}", exc_info=True)
            return json_response(
                {"status": "error", "message": str(e), "code": "INTERNAL"},
                status=500,
            )

    app.middlewares.append(cors_middleware)
    app.middlewares.append(error_middleware)

    return app


def error_body(error: DocVaultError) -> dict[str, Any]:
    body: dict[str, Any] = {"status": "error", "message": error.message, "code": error.code}
    if isinstance(error, ReferentialConflict):
        body["usedBy"] = [usage.to_dict() for usage in error.usage]
    return body


def extract_caller(request: web.Request, superusers: frozenset[str] = frozenset()) -> Caller:
    """Extract the caller from request headers.

    Args:
        request: HTTP request
        superusers: User ids treated as superusers

    Returns:
        Caller for the request

    Raises:
        AuthorizationDenied: If X-Actor is missing
        UsageError: If X-Account-ID is missing
    """
    actor = request.headers.get("X-Actor")
    account = request.headers.get("X-Account-ID")

    if not actor:
        raise AuthorizationDenied("X-Actor header is required")
    if not account:
        raise UsageError("X-Account-ID header is required")

    return Caller(user_id=actor, account_id=account, superuser=actor in superusers)


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except json.JSONDecodeError:
        raise UsageError("Invalid JSON body")


async def _render(result: Any) -> Any:
    if isinstance(result, ResultCursor):
        return await result.to_list()
    if isinstance(result, BatchResult):
        return result.to_dict()
    return result


async def handle_find(
    request: web.Request, store: DocumentStore, caller_of: Callable[[web.Request], Caller]
) -> web.Response:
    """Handle GET /data/{collection}[/{item}] - Query documents."""
    caller = caller_of(request)
    collection = request.match_info["collection"]
    ids = parse_ids(request.match_info.get("item"))

    item: Any = None
    if len(ids) == 1:
        item = ids[0]
    elif ids:
        item = ids

    result = await store.find(caller, collection, item, parse_find_options(request.query))
    return json_response(await _render(result))


async def handle_put(
    request: web.Request, store: DocumentStore, caller_of: Callable[[web.Request], Caller]
) -> web.Response:
    """Handle PUT /data/{collection}[/{item}] - Upsert one document or a batch."""
    caller = caller_of(request)
    collection = request.match_info["collection"]
    body = await _read_json(request)

    if not isinstance(body, (dict, list)):
        raise UsageError("Body must be a JSON object or array")
    if isinstance(body, list) and not all(isinstance(item, dict) for item in body):
        raise UsageError("Batch items must be JSON objects")

    result = await store.put(caller, collection, body, request.match_info.get("item"))
    return json_response(await _render(result))


async def handle_remove(
    request: web.Request, store: DocumentStore, caller_of: Callable[[web.Request], Caller]
) -> web.Response:
    """Handle DELETE /data/{collection}/{ids} - Delete or trash documents."""
    caller = caller_of(request)
    collection = request.match_info["collection"]
    ids = parse_ids(request.match_info["ids"])

    await store.remove(
        caller,
        collection,
        ids,
        recoverable=parse_bool(request.query.get("recoverable")),
        references=parse_references(request.query.get("references")),
    )
    return web.Response(status=204)


async def handle_trash_list(
    request: web.Request, store: DocumentStore, caller_of: Callable[[web.Request], Caller]
) -> web.Response:
    """Handle GET /data/trash[/{item}] - List trashed documents."""
    caller = caller_of(request)
    scope = await store.gate.resolve(caller, AccessLevel.READ)

    result = await store.trash.list(
        options=parse_find_options(request.query),
        item=request.match_info.get("item"),
        collection=request.query.get("collection"),
        original_id=request.query.get("oid"),
        scope=scope,
        user_id=caller.user_id,
    )
    return json_response(await _render(result))


async def handle_trash_put(request: web.Request) -> web.Response:
    """Handle PUT /data/trash[/{item}] - Always rejected."""
    raise UsageError("Illegal request: trash cannot be written directly")


async def handle_trash_restore(
    request: web.Request, store: DocumentStore, caller_of: Callable[[web.Request], Caller]
) -> web.Response:
    """Handle POST /data/trash/{ids}/restore - Restore trashed documents."""
    caller = caller_of(request)
    ids = parse_ids(request.match_info["ids"])
    scope = await store.gate.resolve(caller, AccessLevel.WRITE)

    restored = await store.trash.restore(ids, scope=scope)
    return json_response({"status": "ok", "restored": restored})


async def handle_trash_empty(
    request: web.Request, store: DocumentStore, caller_of: Callable[[web.Request], Caller]
) -> web.Response:
    """Handle DELETE /data/trash/{ids} - Permanently delete trash records."""
    caller = caller_of(request)
    ids = parse_ids(request.match_info["ids"])
    if not ids:
        raise UsageError("No id provided")
    scope = await store.gate.resolve(caller, AccessLevel.OWNER)

    await store.trash.empty(trash_ids=ids, scope=scope)
    return web.Response(status=204)


async def handle_trash_purge(
    request: web.Request, store: DocumentStore, caller_of: Callable[[web.Request], Caller]
) -> web.Response:
    """Handle DELETE /data/trash - Purge the trash, superusers only."""
    caller = caller_of(request)
    if not caller.superuser:
        raise AuthorizationDenied(
            "Only superusers may purge the trash",
            user_id=caller.user_id,
            level=AccessLevel.OWNER.value,
        )

    await store.trash.empty(collection=request.query.get("collection"))
    return web.Response(status=204)


async def handle_health(request: web.Request, store: DocumentStore) -> web.Response:
    """Handle GET /health - Health check."""
    healthy = await store.backend.ping()
    return json_response({"healthy": healthy}, status=200 if healthy else 503)
