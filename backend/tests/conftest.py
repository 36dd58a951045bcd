"""
Blog API Backend: Test Configuration (conftest.py)
==================================================

What:  Shared pytest fixtures for the test suite.
How:   Settings are built explicitly (no .env file, no ambient environment),
       the motor client is replaced by a mock, and HTTP tests talk to the
       app in-process through httpx's ASGITransport.

Fixtures:
    make_settings:   factory for synthetic Settings values
    settings:        production-flavoured defaults with a database URI
    mock_client:     MagicMock standing in for AsyncIOMotorClient
    client_factory:  callable returning mock_client (for DatabaseManager)
    make_client:     factory for an httpx AsyncClient bound to create_app()
"""

from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from blog_api.config import Settings, load_settings
from blog_api.main import create_app

SETTINGS_ENV_VARS = (
    "HOST",
    "PORT",
    "ENVIRONMENT",
    "LOG_LEVEL",
    "WHITELIST_ORIGINS",
    "MONGO_URI",
    "MONGO_SERVER_SELECTION_TIMEOUT_MS",
    "RATE_LIMIT_REQUESTS",
    "RATE_LIMIT_WINDOW",
    "COMPRESSION_MIN_SIZE",
    "BODY_LIMIT",
)

WHITELISTED_ORIGIN = "http://localhost:3000"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the developer's shell environment out of Settings."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        values = {
            "_env_file": None,
            "environment": "production",
            "mongo_uri": "mongodb://localhost:27017",
        }
        values.update(overrides)
        return load_settings(**values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def mock_client():
    """
    A MagicMock shaped like AsyncIOMotorClient.

    admin.command is awaitable (used for the connect-time ping); close() is
    synchronous, as in motor.
    """
    client = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1})
    client.close = MagicMock()
    return client


@pytest.fixture
def client_factory(mock_client):
    return MagicMock(return_value=mock_client)


@pytest_asyncio.fixture
async def make_client():
    """
    Factory for an HTTPX AsyncClient bound to an app (built from settings
    unless one is passed in, e.g. with extra test routes).

    Usage:
        async def test_root(make_client, settings):
            client = await make_client(settings)
            response = await client.get("/")
    """
    clients = []

    async def _make(settings: Optional[Settings] = None, app: Optional[FastAPI] = None) -> AsyncClient:
        if app is None:
            app = create_app(settings)
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
