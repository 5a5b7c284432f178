"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mailway.api.compose import router as compose_router
from mailway.app_logging import configure_logging
from mailway.containers import AppContainer, build_container


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        open_sessions = len(app.state.container.session_registry.sessions)
        if open_sessions:
            logger.info("Closing %s open compose sessions", open_sessions)
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(compose_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app


def create_default_app() -> FastAPI:
    """Build the app from environment settings, for `uvicorn --factory`."""
    return create_app(build_container())
