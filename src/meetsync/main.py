"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS,
lifespan events for database initialization and Graph credentials, and
the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.meetsync.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.meetsync.api.v1.router import router as v1_router
from src.meetsync.config import get_settings
from src.meetsync.core.database import close_db, get_session, init_db
from src.meetsync.core.monitoring import MetricsMiddleware, get_metrics_response
from src.meetsync.graph.auth import GraphCredentialProvider
from src.meetsync.meetings.repository import MeetingRepository


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB and Graph credentials, close DB on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    app.state.meeting_repository = MeetingRepository(session_factory=get_session)

    if settings.graph_configured:
        app.state.credential_provider = GraphCredentialProvider(
            tenant_id=settings.GRAPH_TENANT_ID,
            client_id=settings.GRAPH_CLIENT_ID,
            client_secret=settings.GRAPH_CLIENT_SECRET,
            authority_url=settings.GRAPH_AUTHORITY_URL,
            timeout=settings.GRAPH_TIMEOUT,
        )
        log.info("graph.credentials_initialized", tenant_id=settings.GRAPH_TENANT_ID)
    else:
        app.state.credential_provider = None
        log.warning("graph.credentials_missing", hint="set GRAPH_TENANT_ID/CLIENT_ID/CLIENT_SECRET")

    log.info("app_started", environment=settings.ENVIRONMENT.value)
    yield

    await close_db()
    log.info("app_stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="MeetSync API",
        version="0.1.0",
        description="Calendar-to-transcript meeting reconciliation service",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
