"""Health check endpoints."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException

from ghostwatch import api_state as state
from ghostwatch.state import PostgresBackend, SQLiteBackend

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness plus a summary of engine components."""
    engine = state.engine
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "engine": {
            "initialized": engine is not None,
            "running": bool(engine and engine.is_running),
            "scheduler": bool(engine and engine.scheduler.is_running),
            "listener": bool(engine and engine.listener.is_running),
            "data_sources": engine.data_sources.names() if engine else [],
        },
    }


@router.get("/health/ready")
def readiness_check() -> dict:
    """Readiness probe - is the application ready to serve traffic?"""
    if state.engine is None or not state._app_state["ready"]:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "reason": "Application not initialized"},
        )
    if state._app_state["shutting_down"]:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "reason": "Application shutting down"},
        )
    return {"status": "ready"}


@router.get("/health/db")
def database_health_check() -> dict:
    """Database health check endpoint."""
    if state.engine is None:
        raise HTTPException(status_code=503, detail={"status": "unhealthy", "database": "none"})
    backend = state.engine.backend
    try:
        backend.fetchone("SELECT 1 AS ping")
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        raise HTTPException(
            status_code=503,
            detail={"status": "unhealthy", "database": "disconnected"},
        )

    if isinstance(backend, PostgresBackend):
        backend_type = "postgresql"
    elif isinstance(backend, SQLiteBackend):
        backend_type = "sqlite"
    else:
        backend_type = "unknown"
    return {"status": "healthy", "database": "connected", "backend": backend_type}
