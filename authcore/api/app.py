"""
FastAPI application factory.

Mounts nothing but the error handling and lifecycle wiring; host
applications add their own routers:

    app = create_app()
    app.include_router(accounts_router, prefix="/api")
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from authcore.core.config import Settings, settings as default_settings
from authcore.core.errors import ResultError
from authcore.core.hooks.manager import hooks
from authcore.core.logging import configure_logging
from authcore.models.database import close_db

from .errors import http_error

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    await hooks.trigger("app.startup")

    yield

    await hooks.trigger("app.shutdown")
    await close_db()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    settings = settings or default_settings
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
    )

    @app.exception_handler(ResultError)
    async def result_error_handler(request: Request, exc: ResultError):
        """Failed results unwrapped inside a route."""
        locale = request.headers.get("accept-language", "").split(",")[0].strip() or None
        error = http_error(exc.error, locale)
        return JSONResponse(
            status_code=error.status_code,
            content={"detail": error.detail},
            headers=error.headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.exception("unhandled_error", path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "internal_server_error",
                "message": "An error occurred",
            },
        )

    return app
