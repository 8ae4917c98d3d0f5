"""ContextLayer application entry point.

Architecture:
- FastAPI for the Slack interactivity webhook, dashboard API and health
- Background SyncRunner for orchestrations (the webhook only acknowledges)
- Async SQLAlchemy for database operations
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from contextlayer import __version__
from contextlayer.api.dashboard import router as dashboard_router
from contextlayer.api.slack_routes import router as slack_router
from contextlayer.config import settings
from contextlayer.core.orchestrator import SyncContext
from contextlayer.db.session import close_db
from contextlayer.errors import AuthenticationError, InvalidPayload, PersistenceError
from contextlayer.observability.metrics import get_metrics

# Configure structlog
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
        if settings.env == "production"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level.upper())
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)

logger = structlog.get_logger()


# ═══════════════════════════════════════════════════════════════════════════════
# APP FACTORY
# ═══════════════════════════════════════════════════════════════════════════════

def create_app(context: SyncContext | None = None) -> FastAPI:
    """Build the FastAPI app around an explicit SyncContext.

    Tests pass their own context (in-memory database, fake clients);
    the module-level ``api`` uses one built from settings.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("app_starting", env=settings.env, version=__version__)
        yield
        logger.info("app_shutting_down", in_flight=app.state.context.runner.active_count)
        await app.state.context.runner.join(timeout=settings.shutdown_drain_s)
        await close_db()

    app = FastAPI(
        title="ContextLayer",
        version=__version__,
        description="Turn Slack messages into ClickUp tasks with their full context",
        lifespan=lifespan,
    )
    app.state.context = context or SyncContext.from_settings()

    app.include_router(slack_router)
    app.include_router(dashboard_router)

    @app.exception_handler(AuthenticationError)
    async def _authentication_failed(request: Request, exc: AuthenticationError) -> JSONResponse:
        logger.warning("slack_request_rejected", reason=exc.reason, path=request.url.path)
        return JSONResponse(status_code=400, content={"error": exc.reason})

    @app.exception_handler(InvalidPayload)
    async def _invalid_payload(request: Request, exc: InvalidPayload) -> JSONResponse:
        logger.warning("slack_payload_invalid", error=str(exc))
        return JSONResponse(status_code=400, content={"error": "invalid_payload"})

    @app.exception_handler(PersistenceError)
    async def _persistence_failed(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("request_persistence_error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.get("/health")
    async def health() -> Any:
        """Liveness plus a ``SELECT 1`` against the database."""
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            async with app.state.context.session_factory() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("db_health_check_failed", error=str(e))
            return JSONResponse(
                status_code=500,
                content={
                    "status": "unhealthy",
                    "timestamp": timestamp,
                    "database": "disconnected",
                    "error": str(e),
                },
            )
        return {"status": "healthy", "timestamp": timestamp, "database": "connected"}

    @app.get("/metrics")
    async def metrics_endpoint() -> dict[str, Any]:
        """Sync counts by final stage, degraded lookups, failed callbacks,
        and sync/ClickUp latency quantiles with their budgets."""
        snap = get_metrics().snapshot()
        snap["in_flight_syncs"] = app.state.context.runner.active_count
        return snap

    return app


api = create_app()


# ═══════════════════════════════════════════════════════════════════════════════
# MAIN ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════════

def main() -> None:
    """Serve the app with uvicorn."""
    import uvicorn

    logger.info("starting_contextlayer", host=settings.host, port=settings.port)
    uvicorn.run(
        "contextlayer.app:api",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
