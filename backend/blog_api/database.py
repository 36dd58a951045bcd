"""
Blog API Backend: Database Lifecycle Management
===============================================

What:  Opens and closes the single MongoDB connection used by the process.
Why:   All handlers share one motor client (and its pool); its lifecycle is
       tied to process startup and shutdown, not to requests.
How:   DatabaseManager owns the client and a small state machine. connect()
       verifies the server with an admin ping so a bad URI fails at startup
       instead of on the first query.
Who:   Created by the startup runner; disconnect() is registered with the
       ShutdownCoordinator. Handlers reach the database via get_database().

State Machine:
    disconnected ──connect()──▶ connecting ──ping ok──▶ connected
                                    │
                                    └──────driver error──▶ failed

    connected  ──disconnect()──▶ disconnected
    failed     ──connect()─────▶ connecting   (explicit retry only)

    There is no automatic retry or backoff. A failed connect() surfaces to
    the startup runner, which decides whether the process exits.

Client Options:
    dbName:     blog-db
    appName:    Blog API
    serverApi:  Stable API version "1", strict, deprecation errors enabled
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.server_api import ServerApi

from blog_api.config import Settings
from blog_api.exceptions import ConfigurationError, DatabaseConnectionError

logger = logging.getLogger(__name__)

DATABASE_NAME = "blog-db"
APP_NAME = "Blog API"
SERVER_API_VERSION = "1"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


def client_options() -> Dict[str, Any]:
    """Options passed to the driver and echoed into the connect/disconnect logs."""
    return {
        "dbName": DATABASE_NAME,
        "appName": APP_NAME,
        "serverApi": {
            "version": SERVER_API_VERSION,
            "strict": True,
            "deprecationErrors": True,
        },
    }


def redact_uri(uri: Optional[str]) -> Optional[str]:
    """Mask the password in a connection URI before it is logged."""
    if not uri:
        return uri
    parts = urlsplit(uri)
    # netloc may list several hosts, so split by hand instead of .hostname/.port
    userinfo, sep, hosts = parts.netloc.rpartition("@")
    if not sep or ":" not in userinfo:
        return uri
    username = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{username}:***@{hosts}"))


class DatabaseManager:
    """
    Owns the process's one MongoDB client.

    The client factory is injectable so tests can substitute a mock for
    AsyncIOMotorClient without a running server.
    """

    def __init__(self, client_factory: Callable[..., AsyncIOMotorClient] = AsyncIOMotorClient):
        self._client_factory = client_factory
        self._client: Optional[AsyncIOMotorClient] = None
        self._uri: Optional[str] = None
        self.state = ConnectionState.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def database(self) -> AsyncIOMotorDatabase:
        if self._client is None or not self.is_connected:
            raise DatabaseConnectionError(
                "Database is not connected",
                context={"state": self.state.value},
            )
        return self._client[DATABASE_NAME]

    async def connect(self, settings: Settings) -> None:
        """
        Connect to MongoDB using `settings.mongo_uri`.

        Raises:
            ConfigurationError: no URI configured. State is left untouched.
            DatabaseConnectionError: a connect() is already in flight.
            PyMongoError: any driver failure, re-raised unchanged after the
                state moves to `failed`.
        """
        # Why: A missing URI is a config problem, so state stays as it was
        if not settings.mongo_uri:
            raise ConfigurationError(
                "MongoDB URI is not defined in the configuration.",
                context={"setting": "MONGO_URI"},
            )
        if self.state is ConnectionState.CONNECTING:
            raise DatabaseConnectionError("A database connection attempt is already in progress")
        if self.state is ConnectionState.CONNECTED:
            logger.debug("connect() called while already connected; keeping existing client")
            return

        # What: Claim the connecting state before the first await so a second
        #       caller sees it and is rejected
        self.state = ConnectionState.CONNECTING
        self._uri = settings.mongo_uri
        try:
            self._client = self._client_factory(
                settings.mongo_uri,
                appname=APP_NAME,
                server_api=ServerApi(
                    SERVER_API_VERSION, strict=True, deprecation_errors=True
                ),
                serverSelectionTimeoutMS=settings.mongo_server_selection_timeout_ms,
            )
            # motor connects lazily; the ping forces server selection now
            await self._client.admin.command("ping")
        except Exception:
            # Why: A failed attempt must not leak the half-open client; the
            #      caller decides whether to retry
            self.state = ConnectionState.FAILED
            if self._client is not None:
                self._client.close()
                self._client = None
            raise

        self.state = ConnectionState.CONNECTED
        logger.info(
            "Connected to the database successfully.",
            extra={"uri": redact_uri(self._uri), "options": client_options()},
        )

    async def disconnect(self) -> None:
        """
        Close the client and return to `disconnected`.

        Raises:
            DatabaseConnectionError: closing failed. Only the underlying
                error's message is kept; its type and traceback are dropped.
        """
        if self._client is None:
            self.state = ConnectionState.DISCONNECTED
            return

        try:
            self._client.close()
        except Exception as exc:
            raise DatabaseConnectionError(str(exc)) from None

        self._client = None
        self.state = ConnectionState.DISCONNECTED
        logger.info(
            "Disconnected from the database successfully.",
            extra={"uri": redact_uri(self._uri), "options": client_options()},
        )


async def get_database(request: Request) -> AsyncIOMotorDatabase:
    """
    FastAPI dependency returning the shared database handle.

    Example usage in a route:
        @router.get("/posts")
        async def list_posts(db: AsyncIOMotorDatabase = Depends(get_database)):
            return await db.posts.find().to_list(length=20)
    """
    manager: Optional[DatabaseManager] = getattr(request.app.state, "database", None)
    if manager is None:
        raise DatabaseConnectionError("No database manager is attached to this application")
    return manager.database
