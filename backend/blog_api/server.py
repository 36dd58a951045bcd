"""
Blog API Backend: Startup Runner
================================

What:  Runs the whole process lifecycle: connect, serve, shut down.
How:   Sequential on one event loop:
           1. setup_logging()
           2. DatabaseManager.connect()        (must resolve before listening)
           3. create_app() + uvicorn.Server
           4. ShutdownCoordinator.install()    (SIGTERM / SIGINT)
           5. server.serve() until a signal stops it
           6. coordinator.shutdown()           (database disconnect, exit 0)

Startup Failures:
    production      → logged, exit code 1
    anything else   → logged, the server still starts without a database
"""

import asyncio
import logging
import sys
from typing import Optional

import uvicorn

from blog_api.config import Settings, load_settings
from blog_api.database import DatabaseManager
from blog_api.exceptions import ConfigurationError, ErrorKind, error_kind
from blog_api.logging_config import setup_logging
from blog_api.main import create_app
from blog_api.shutdown import ShutdownCoordinator

logger = logging.getLogger(__name__)


async def serve(
    settings: Settings,
    database: Optional[DatabaseManager] = None,
    coordinator: Optional[ShutdownCoordinator] = None,
) -> int:
    """Run the server until shutdown and return the process exit code."""
    setup_logging(settings.log_level)
    database = database or DatabaseManager()
    coordinator = coordinator or ShutdownCoordinator()

    try:
        await database.connect(settings)
    except Exception as exc:
        kind = error_kind(exc)
        logger.error(
            "Failed to start the server: %s",
            exc,
            extra={"error_kind": kind.value},
            exc_info=kind is ErrorKind.OTHER,
        )
        if settings.is_production:
            return 1
        logger.warning(
            "Continuing without a database connection (environment=%s)",
            settings.environment.value,
        )

    coordinator.register("database", database.disconnect)

    app = create_app(settings, database)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=settings.host,
            port=settings.port,
            log_config=None,
        )
    )
    coordinator.on_stop(lambda: setattr(server, "should_exit", True))
    coordinator.install(asyncio.get_running_loop())

    logger.info("Server running: http://localhost:%d", settings.port)
    try:
        await server.serve()
    finally:
        exit_code = await coordinator.shutdown()
        coordinator.uninstall()
    return exit_code


def main() -> None:
    """
    Console entry point (`blog-api` / `python -m blog_api`).

    A ConfigurationError from load_settings() exits 1 in every environment:
    the environment value may itself be what failed to parse, so the
    non-production "keep serving" rule of serve() cannot apply yet.
    """
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        setup_logging()
        logger.error("%s", exc.message, extra={"error_kind": exc.kind.value})
        sys.exit(1)

    sys.exit(asyncio.run(serve(settings)))
