"""Dependency injection helpers for FastAPI."""

from functools import lru_cache

from fastapi import HTTPException, Request, status

from .config import Settings, settings
from .connection import ConnectionPool


@lru_cache()
def get_settings() -> Settings:
    """Get application settings (cached)."""
    return settings


def get_connection_pool(request: Request) -> ConnectionPool:
    """Get the pool of task server connections created at startup."""
    pool = getattr(request.app.state, "connection_pool", None)
    if pool is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Task server connection pool not initialized",
        )
    return pool
