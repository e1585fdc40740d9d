"""
Lectern — Main FastAPI Application

Sermon video catalog API with a streaming media proxy.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from lectern.core.config import Settings, get_settings
from lectern.core.errors import LecternError
from lectern.services.catalog.repository import VideoRepository, create_repository
from lectern.services.media.sources import create_media_resolver

# ── Logging ──────────────────────────────────────────────────────────────


def configure_logging(settings: Settings) -> None:
    level = logging.getLevelName(settings.log_level.upper())
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


logger = structlog.get_logger()


def _error(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=headers)


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(LecternError)
    async def lectern_error(request: Request, exc: LecternError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == 404 and message == "Not Found":
            message = "Endpoint not found"
        return _error(exc.status_code, message, getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()})
        return _error(400, f"Invalid request parameters: {', '.join(f for f in fields if f)}")

    @app.exception_handler(PoolTimeoutError)
    async def pool_exhausted(request: Request, exc: PoolTimeoutError):
        logger.warning("Database pool exhausted", path=request.url.path)
        return _error(503, "Database busy, try again")

    @app.exception_handler(DBAPIError)
    async def database_error(request: Request, exc: DBAPIError):
        logger.error("Database error", path=request.url.path, error=str(exc.orig))
        return _error(503, "Database unavailable")

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error", path=request.url.path)
        message = "Internal server error" if settings.is_production else str(exc)
        return _error(500, message)


# ── App ──────────────────────────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    *,
    repository: Optional[VideoRepository] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the API. Collaborators passed in are used as-is and left open;
    missing ones are created from settings at startup and closed at shutdown.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting Lectern",
            version=settings.app_version,
            store=settings.store,
            video_source=settings.video_source,
        )
        owned_repository = owned_client = None
        if app.state.repository is None:
            owned_repository = app.state.repository = create_repository(settings)
            await owned_repository.startup()
        if app.state.http_client is None:
            owned_client = app.state.http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    settings.media_read_timeout, connect=settings.media_connect_timeout
                ),
                follow_redirects=True,
            )

        yield

        if owned_client is not None:
            await owned_client.aclose()
        if owned_repository is not None:
            await owned_repository.close()
        logger.info("Shutting down Lectern")

    app = FastAPI(
        title=settings.app_name,
        description="Sermon video catalog API with media streaming proxy",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.resolver = create_media_resolver(settings)
    app.state.repository = repository
    app.state.http_client = http_client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length", "Content-Disposition"],
    )
    register_exception_handlers(app, settings)

    # Prometheus metrics
    app.mount("/metrics", make_asgi_app())

    # ── Routes ───────────────────────────────────────────────────────────

    from lectern.api.routes import categories, clone, preachers, rss, search, videos

    for module in (videos, search, categories, preachers, rss, clone):
        app.include_router(module.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "api": settings.api_prefix,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()
