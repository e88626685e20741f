"""
Main FastAPI application entry point.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from escrow_auth import __version__
from escrow_auth.config import Settings, get_settings
from escrow_auth.services.auth import UserDirectory
from escrow_auth.services.session import SessionRegistry
from escrow_auth.services.tokens import TokenIssuer

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.
    Starts the expired-session sweep on startup and stops it on shutdown.
    """
    settings: Settings = app.state.settings
    logger.info("Starting %s v%s", settings.app_name, __version__)
    logger.info("Environment: %s, debug: %s", settings.environment, settings.debug)

    registry: SessionRegistry = app.state.session_registry
    registry.start_cleanup_task()

    yield

    await registry.stop_cleanup_task()
    logger.info("%s shutdown complete", settings.app_name)


class TimingMiddleware(BaseHTTPMiddleware):
    """Log requests slower than 100ms."""

    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration = (time.perf_counter() - start) * 1000
        if duration > 100:
            logger.warning("SLOW REQUEST: %s %s took %.0fms", request.method, request.url.path, duration)
        return response


def create_app(
    settings: Settings | None = None,
    registry: SessionRegistry | None = None,
    user_directory: UserDirectory | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The session registry, token issuer and user directory are built here
    and attached to app.state; pass your own to share them with tests.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="Session lifecycle and token refresh API",
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )

    app.state.settings = settings
    app.state.session_registry = registry or SessionRegistry(settings)
    app.state.token_issuer = TokenIssuer(settings)
    app.state.user_directory = user_directory or UserDirectory.from_settings(settings)

    # Credentials require explicit origins, not "*"
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TimingMiddleware)

    from escrow_auth.routers import auth, health

    app.include_router(health.router, tags=["Health"])
    app.include_router(auth.router, tags=["Authentication"])
    app.include_router(auth.router, prefix="/api", tags=["Authentication"])

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Render HTTP errors (including AppError) as {"error": ...}."""
        content = {"error": exc.detail}
        extra = getattr(exc, "extra_detail", None)
        if extra:
            content["detail"] = extra
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed request bodies are a 400, not FastAPI's default 422."""
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
        return JSONResponse(status_code=400, content={"error": ", ".join(messages) or "Invalid request"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions."""
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"},
        )

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "escrow_auth.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
    )
