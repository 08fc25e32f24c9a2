"""FastAPI application for Hookline."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hookline import __version__
from hookline.config import Settings
from hookline.exceptions import (
    AuthenticationError,
    HooklineError,
    NotFoundError,
    ValidationError,
)
from hookline.logging import configure_logging, get_logger
from hookline.service import WebhookService

from .router import router, set_service

logger = get_logger(__name__)


def _lifespan(settings: Settings):  # type: ignore[no-untyped-def]
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Initialize the WebhookService and the retry sweeper, then clean up."""
        configure_logging(level=settings.log_level, format=settings.log_format)
        logger.info(
            "Starting Hookline API",
            env=settings.env,
            sweep_enabled=settings.sweep_enabled,
        )

        service = WebhookService.create(settings)
        await service.initialize()
        set_service(service)

        if settings.sweep_enabled:
            await service.start_background()

        yield

        await service.close()
        set_service(None)
        logger.info("Hookline API stopped")

    return lifespan


def register_exception_handlers(app: FastAPI) -> None:
    """Map HooklineError subclasses to JSON error responses."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        """Handle authentication errors with 401 status."""
        logger.warning("Authentication failed", error=exc.message, path=str(request.url))
        return JSONResponse(
            status_code=401,
            content=exc.to_dict(),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(HooklineError)
    async def hookline_error_handler(request: Request, exc: HooklineError) -> JSONResponse:
        """Handle all other Hookline errors with 500 status."""
        logger.error("Hookline error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.

    Example:
        ```python
        from hookline.api import create_app

        app = create_app()
        # Run with: uvicorn hookline.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Hookline",
        description="Signed outbound webhooks with retries and delivery history.",
        version=__version__,
        lifespan=_lifespan(settings),
        docs_url="/docs",
        redoc_url="/redoc",
    )
    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
