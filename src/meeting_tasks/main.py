"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
exception handlers, lifespan events for database and pipeline
initialization, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.meeting_tasks.config import get_settings
from src.meeting_tasks.core.database import close_db, get_session, init_db
from src.meeting_tasks.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.meeting_tasks.api.errors import register_exception_handlers
from src.meeting_tasks.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.meeting_tasks.api.v1.router import router as v1_router
from src.meeting_tasks.meetings.repository import MeetingRepository
from src.meeting_tasks.pipeline.audit import AuditLogger
from src.meeting_tasks.pipeline.extraction import ExtractionConfig, ExtractionEngine
from src.meeting_tasks.pipeline.service import TaskExtractionPipeline
from src.meeting_tasks.services.zoom import ZoomClient


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and the pipeline; drain audit writes on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # ── Extraction pipeline ──────────────────────────────────────────────
    repository = MeetingRepository(session_factory=get_session)
    audit = AuditLogger(repository)
    engine = ExtractionEngine(ExtractionConfig.from_settings(settings))
    app.state.meeting_repository = repository
    app.state.audit_logger = audit
    app.state.pipeline = TaskExtractionPipeline(
        repository=repository,
        engine=engine,
        zoom_client=ZoomClient(base_url=settings.ZOOM_API_BASE_URL),
        audit=audit,
        force_dry_run=settings.PIPELINE_DRY_RUN,
    )
    if not settings.OPENAI_API_KEY:
        log.warning("pipeline.no_llm_key", hint="OPENAI_API_KEY is not set")
    log.info(
        "pipeline.initialized",
        model=settings.LLM_MODEL,
        dry_run=settings.PIPELINE_DRY_RUN,
    )

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    await audit.flush()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Meeting Tasks API",
        version="0.1.0",
        description="Transcript-to-task extraction pipeline",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
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

    app.include_router(v1_router, prefix="/api/v1")

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
