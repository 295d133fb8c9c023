"""ML Training Gateway - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from training_gateway.api.v1.health import router as health_router
from training_gateway.api.v1.router import api_router
from training_gateway.config import Settings, settings as default_settings
from training_gateway.jobs.reaper import StaleJobReaper
from training_gateway.jobs.registry import JobRegistry
from training_gateway.jobs.service import JobService
from training_gateway.logging_config import configure_logging
from training_gateway.storage.content_store import ContentStore, SupabaseContentStore, lazy_supabase_client
from training_gateway.storage.temp_uploads import TempUploadStore
from training_gateway.workflow.trigger import WebhookTrigger, WorkflowTrigger

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    content_store: Optional[ContentStore] = None,
    trigger: Optional[WorkflowTrigger] = None,
    registry: Optional[JobRegistry] = None,
    temp_store: Optional[TempUploadStore] = None,
) -> FastAPI:
    """Build the app. Collaborators default to the Supabase/webhook ones."""
    settings = settings or default_settings

    if content_store is None:
        content_store = SupabaseContentStore(
            lazy_supabase_client(settings.supabase_url, settings.supabase_service_role_key),
            bucket=settings.storage_bucket,
            prefix=settings.storage_prefix,
        )
    if trigger is None:
        trigger = WebhookTrigger(
            settings.workflow_webhook_url,
            timeout=settings.workflow_timeout_seconds,
        )
    if temp_store is None:
        temp_store = TempUploadStore(settings.upload_dir or None, max_bytes=settings.max_upload_bytes)

    if registry is None:
        registry = JobRegistry()

    service = JobService(registry, content_store, trigger, temp_store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting ML Training Gateway on port %d", settings.port)
        logger.info("Workflow webhook: %s", settings.workflow_webhook_url)
        if not settings.callback_secret:
            logger.warning("CALLBACK_SECRET not set; /api/callback accepts any caller")

        removed = temp_store.cleanup_expired()
        if removed:
            logger.info("Removed %d leftover temp upload(s)", removed)

        reaper = None
        if settings.stale_job_timeout_minutes > 0:
            reaper = StaleJobReaper(
                service,
                timedelta(minutes=settings.stale_job_timeout_minutes),
                interval=settings.reaper_interval_seconds,
            )
            await reaper.start()

        yield

        logger.info("Shutting down ML Training Gateway")
        if reaper is not None:
            await reaper.stop()
        await service.drain(timeout=settings.shutdown_grace_seconds)
        trigger.close()

    app = FastAPI(
        title="ML Training Gateway",
        description="Accepts datasets, triggers the external training workflow and tracks job status",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.job_service = service

    # CORS — the upload form is served from other origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "message": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return JSONResponse(
            status_code=422,
            content={"status": "error", "message": f"Invalid request: {problems}"},
        )

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router)
    return app


configure_logging(default_settings.log_level)
app = create_app()
