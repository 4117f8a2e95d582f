"""FastAPI application for wabridge."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wabridge import __version__
from wabridge.config import Settings
from wabridge.container import build_container
from wabridge.exceptions import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ResponseError,
    TransportError,
    ValidationError,
    WABridgeError,
)
from wabridge.logging import configure_logging, get_logger

from .deps import set_container
from .router import router

logger = get_logger(__name__)

# Most specific class first; anything unlisted is a 500
ERROR_STATUS: tuple[tuple[type[WABridgeError], int], ...] = (
    (ValidationError, 400),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (TransportError, 502),
    (ResponseError, 502),
)


def status_for(exc: WABridgeError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the container and run the cache sweep while the app is up."""
    settings: Settings = app.state.settings

    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info("Starting wabridge API", env=settings.env, storage_backend=settings.storage_backend)

    container = build_container(settings)
    set_container(container)
    container.scheduler.start()
    try:
        yield
    finally:
        await container.scheduler.stop()
        container.close()
        set_container(None)
        logger.info("wabridge API stopped")


def register_exception_handlers(app: FastAPI) -> None:
    """Answer wabridge errors with their to_dict() body and mapped status."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        error = ValidationError("request", "; ".join(str(e.get("msg", "")) for e in exc.errors()))
        logger.warning("Invalid request body", error=error.message, path=request.url.path)
        return JSONResponse(status_code=400, content=error.to_dict())

    @app.exception_handler(WABridgeError)
    async def wabridge_error_handler(request: Request, exc: WABridgeError) -> JSONResponse:
        status_code = status_for(exc)
        level = "error" if status_code >= 500 else "warning"
        getattr(logger, level)(
            "Request failed",
            status_code=status_code,
            code=exc.code,
            error=exc.message,
            path=request.url.path,
        )
        return JSONResponse(status_code=status_code, content=exc.to_dict())


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the wabridge FastAPI application.

    Args:
        settings: Settings to run with. Read from the environment if None.

    Example:
        ```python
        from wabridge.api import create_app

        app = create_app()
        # Run with: uvicorn wabridge.api:app --reload
        ```
    """
    settings = settings or Settings()

    app = FastAPI(
        title="wabridge",
        description="Bridge between marketplace vendors and WhatsApp through n8n.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )

    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")
    return app


app = create_app()
