"""FastAPI web front-end for the task server (``yabusite``)."""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings
from .connection import ConnectionPool, parse_server_url
from .deps import get_settings
from .routes import tasks
from .schemas import HealthResponse
from .utils.logging import log_shutdown_info, log_startup_info, setup_logging

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_connection_pool(settings: Settings) -> ConnectionPool:
    """Build the pool of task server connections described by the settings."""
    size = settings.connection_pool_size or os.cpu_count() or 1
    return ConnectionPool(parse_server_url(settings.server_url), size)


def create_app(pool: Optional[ConnectionPool] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        pool: Connection pool to use instead of one built from the settings

    Returns:
        Configured FastAPI application instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        settings = get_settings()
        app.state.connection_pool = pool if pool is not None else create_connection_pool(settings)
        logger.info(f"Connection pool ready for {app.state.connection_pool.address}")

        yield

        await app.state.connection_pool.close()
        logger.info("Connection pool closed")

    app = FastAPI(
        title="yabu",
        description="Web front-end for the yabu todo list",
        version=VERSION,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests."""
        logger.info(f"Request: {request.method} {request.url}")
        response = await call_next(request)
        logger.info(f"Response: {response.status_code} for {request.method} {request.url}")
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions with proper logging."""
        logger.warning(f"HTTP {exc.status_code}: {exc.detail} for {request.method} {request.url}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.detail,
                "status_code": exc.status_code,
                "path": str(request.url),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors with detailed information."""
        logger.warning(f"Validation error for {request.method} {request.url}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "Validation error",
                "details": jsonable_errors(exc),
                "status_code": 422,
                "path": str(request.url),
            },
        )

    @app.get("/healthz", tags=["health"], response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """Health check endpoint for monitoring and load balancers."""
        connection_pool: ConnectionPool = request.app.state.connection_pool
        return HealthResponse(
            status="healthy" if connection_pool.open_connections else "idle",
            version=VERSION,
            server_url=str(connection_pool.address),
            open_connections=connection_pool.open_connections,
        )

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "yabu",
            "version": VERSION,
            "description": "Web front-end for the yabu todo list",
            "docs_url": "/docs",
            "health_check": "/healthz",
            "endpoints": {
                "tasks": "/tasks",
            },
        }

    app.include_router(tasks.router, prefix="/tasks", tags=["tasks"])

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances, which JSONResponse cannot encode
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


def main() -> None:
    """Run the site with uvicorn."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings)
    log_startup_info("yabusite", settings, f"{settings.site_host}:{settings.site_port}")
    try:
        uvicorn.run(create_app(), host=settings.site_host, port=settings.site_port, log_config=None)
    finally:
        log_shutdown_info("yabusite")


if __name__ == "__main__":
    main()
