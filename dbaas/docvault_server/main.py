"""
DocVault Server - Main entry point.

This module starts the DocVault server with all components:
- Document store backend (MongoDB or in-memory)
- Authorization oracle (grants collection in the same store)
- Data layer (AccessGate, DocumentStore, TrashVault)
- HTTP server

Usage:
    python -m dbaas.docvault_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The backend is connected before the HTTP server accepts requests
    - Shutdown stops the HTTP server before closing the backend

How to change safely:
    - Add new components with enable/disable flags
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter
from aiohttp import web

from .access import AccessGate, BackendGrantOracle
from .api import create_http_app
from .config import ServerConfig
from .data import DocumentStore, TrashVault
from .store import DocumentBackend, create_backend

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


class Server:
    """DocVault Server orchestrator.

    Manages the lifecycle of all server components:
    - Backend connection
    - Data layer wiring
    - HTTP server

    Attributes:
        config: Server configuration
        backend: Document store backend
        store: DocumentStore serving the HTTP API

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.backend: DocumentBackend | None = None
        self.store: DocumentStore | None = None
        self._runner: web.AppRunner | None = None

    def build_store(self, backend: DocumentBackend) -> DocumentStore:
        """Wire the data layer on top of a connected backend."""
        resources = self.config.resources
        oracle = BackendGrantOracle(backend, collection=self.config.access.grants_collection)
        gate = AccessGate(oracle, global_collections=resources.global_collections)
        trash = TrashVault(backend, collection=resources.trash_collection)
        return DocumentStore(backend, gate, resources, trash=trash)

    async def start(self) -> None:
        """Start the server and block until shutdown is requested."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting DocVault server")
        self.config.log_config()

        try:
            self.backend = create_backend(self.config)
            await self.backend.connect()
            logger.info("Document backend connected")

            self.store = self.build_store(self.backend)

            app = create_http_app(
                self.store,
                self.config.http,
                superusers=self.config.access.superusers,
            )
            self._runner = web.AppRunner(app)
            await self._runner.setup()
            site = web.TCPSite(self._runner, self.config.http.host, self.config.http.port)
            await site.start()
            logger.info(
                f"HTTP server running on http://{self.config.http.host}:{self.config.http.port}"
            )

            self._running = True
            logger.info("DocVault server started successfully")

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            self._running = True
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping DocVault server")

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        if self.backend:
            await self.backend.close()

        self._running = False
        logger.info("DocVault server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config)

    # Setup signal handlers
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    # Create server
    server = Server(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    # Run server
    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
