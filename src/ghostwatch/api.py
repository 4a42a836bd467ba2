"""FastAPI application for the Ghostwatch rule engine."""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ghostwatch import api_state as state
from ghostwatch.api_errors import (
    APIException,
    api_exception_handler,
    ghostwatch_exception_handler,
)
from ghostwatch.config import configure_logging, get_settings
from ghostwatch.errors import GhostwatchError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build and start the rule engine; stop it on shutdown."""
    state._app_state["ready"] = False
    state._app_state["shutting_down"] = False
    state._app_state["start_time"] = datetime.now(UTC)

    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        format=settings.log_format,
        sanitize_logs=settings.sanitize_logs,
    )

    owns_engine = state.engine is None
    if owns_engine:
        from ghostwatch.engine import RuleEngine

        state.engine = RuleEngine(settings=settings)
    state.engine.start()

    state._app_state["ready"] = True
    logger.info("Application startup complete - ready to serve requests")

    yield

    logger.info("Beginning graceful shutdown...")
    state._app_state["shutting_down"] = True
    state._app_state["ready"] = False

    if owns_engine:
        state.engine.close()
        state.engine = None
    else:
        state.engine.stop()

    logger.info("Graceful shutdown complete")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(title="Ghostwatch Rule Engine", version="0.1.0", lifespan=lifespan)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with timing and a request ID.

    New requests are rejected during shutdown (health checks excepted).
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if state._app_state["shutting_down"] and not path.startswith("/health"):
            return JSONResponse(
                status_code=503,
                content={"detail": "Service shutting down"},
                headers={"Retry-After": "30"},
            )

        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        method = request.method
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"[{request_id}] {method} {path} - 500 ERROR in {duration_ms:.1f}ms - {e}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "status_code": 500,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        status_code = response.status_code
        log = logger.warning if status_code >= 500 else logger.info
        log(
            f"[{request_id}] {method} {path} - {status_code} in {duration_ms:.1f}ms",
            extra={
                "request_id": request_id,
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )

        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestLoggingMiddleware)

app.add_exception_handler(GhostwatchError, ghostwatch_exception_handler)
app.add_exception_handler(APIException, api_exception_handler)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

from ghostwatch.api_routes import events, health, notifications, rules  # noqa: E402

app.include_router(rules.router)
app.include_router(events.router)
app.include_router(notifications.router)
app.include_router(health.router)


def run(host: str | None = None, port: int | None = None) -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=host or settings.api_host, port=port or settings.api_port)


if __name__ == "__main__":
    run()
