"""
Video Job HTTP + SSE Server

FastAPI server that provides:
- POST /api/video/generate - Submit a generation job
- GET /api/video - List the caller's jobs
- GET /api/video/{id} - Get a job
- GET /api/video/{id}/stream - SSE stream of job progress
- GET /api/video/models - Models available to the enabled credentials
- GET /api/video/file/{key} - Serve a cached video
- /api/video/schedules - Recurring schedule CRUD
- POST /api/video/schedules/run-due - Evaluate due schedules once
- GET /health - Health check

The caller's identity arrives in the X-User-Id header, set by the upstream
auth layer.

Usage:
    # Start server
    python -m uvicorn services.orchestrator.server:app --host 0.0.0.0 --port 8765

    # Or via main.py
    python main.py server
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from services.video_generation import (
    AccessDenied,
    GenerationRequest,
    JobNotFound,
    JobStatus,
    ProviderUnavailable,
    ScheduleNotFound,
    SubmissionError,
    ValidationError,
    VideoGenerationError,
)
from services.video_generation.storage import VIDEO_CONTENT_TYPE, key_owner

from .context import AppContext, create_context

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

ERROR_STATUS = {
    ValidationError: 400,
    AccessDenied: 403,
    JobNotFound: 404,
    ScheduleNotFound: 404,
    SubmissionError: 502,
    ProviderUnavailable: 503,
}


# Request/Response Models
class GenerateRequest(BaseModel):
    """Request to generate a video."""
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = ""
    model: Optional[str] = None
    provider: Optional[str] = None
    aspect_ratio: Optional[str] = Field(default=None, alias="aspectRatio")
    duration: Optional[int] = None
    resolution: Optional[str] = None
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    message_id: Optional[str] = Field(default=None, alias="messageId")


class GenerateResponse(BaseModel):
    """Response from generate endpoint."""
    id: str
    status: str
    provider: str
    model: str
    providerJobId: Optional[str] = None
    streamUrl: str


class ScheduleBody(BaseModel):
    """Schedule create/update payload. Unset fields are left out of updates."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    prompt: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    aspect_ratio: Optional[str] = Field(default=None, alias="aspectRatio")
    frequency: Optional[str] = None
    enabled: Optional[bool] = None
    max_runs: Optional[int] = Field(default=None, alias="maxRuns")

    def supplied(self) -> dict:
        return self.model_dump(by_alias=True, exclude_unset=True)


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


def _error_status(exc: VideoGenerationError) -> int:
    for error_cls, status in ERROR_STATUS.items():
        if isinstance(exc, error_cls):
            return status
    return 500


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        context: Pre-built context (tests). When omitted, one is created from
            the environment at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info("Starting video job server...")
        owns_context = context is None
        app.state.context = context or await create_context()

        yield

        logger.info("Shutting down video job server...")
        if owns_context:
            await app.state.context.close()

    app = FastAPI(
        title="Video Job API",
        description="Video generation jobs with real-time progress streaming",
        version="1.0.0",
        lifespan=lifespan,
    )
    if context is not None:
        app.state.context = context

    @app.exception_handler(VideoGenerationError)
    async def handle_video_error(request: Request, exc: VideoGenerationError):
        status = _error_status(exc)
        if status >= 500:
            logger.warning(f"{request.method} {request.url.path} -> {status}: {exc}")
        body = {"error": str(exc), "code": exc.error_code}
        if exc.provider:
            body["provider"] = exc.provider
        if isinstance(exc, SubmissionError) and exc.job_id:
            body["jobId"] = exc.job_id
        return JSONResponse(status_code=status, content=body)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )

    @app.get("/health")
    async def health(ctx: AppContext = Depends(get_context)):
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "video-jobs",
            "providers": list(ctx.registry.providers),
            "database": ctx.db_pool is not None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/video/models")
    async def list_models(
        user_id: str = Depends(current_user),
        ctx: AppContext = Depends(get_context),
    ):
        """Providers and models usable with the enabled credentials."""
        providers = []
        for credential in await ctx.registry.resolve_all():
            providers.append({
                "provider": credential.provider,
                "name": credential.name,
                "models": [model.to_dict() for model in ctx.registry.models_for(credential)],
            })
        return {"providers": providers}

    @app.post("/api/video/generate", response_model=GenerateResponse)
    async def generate(
        body: GenerateRequest,
        user_id: str = Depends(current_user),
        ctx: AppContext = Depends(get_context),
    ):
        """
        Submit a video generation job.

        Poll progress with GET /api/video/{id}/stream.
        """
        job = await ctx.submitter.submit(
            GenerationRequest(
                prompt=body.prompt,
                model=body.model,
                provider=body.provider,
                aspect_ratio=body.aspect_ratio,
                duration=body.duration,
                resolution=body.resolution,
                conversation_id=body.conversation_id,
                message_id=body.message_id,
            ),
            user_id=user_id,
        )
        return GenerateResponse(
            id=job.id,
            status=job.status.value,
            provider=job.provider,
            model=job.model,
            providerJobId=job.provider_job_id,
            streamUrl=f"/api/video/{job.id}/stream",
        )

    @app.get("/api/video")
    async def list_jobs(
        status: Optional[JobStatus] = None,
        limit: int = Query(default=50, ge=1, le=200),
        offset: int = Query(default=0, ge=0),
        user_id: str = Depends(current_user),
        ctx: AppContext = Depends(get_context),
    ):
        """The caller's jobs, newest first."""
        jobs = await ctx.job_store.list_jobs(user_id, status=status, limit=limit, offset=offset)
        total = await ctx.job_store.count_jobs(user_id, status=status)
        return {"jobs": [job.to_dict() for job in jobs], "total": total}

    @app.get("/api/video/file/{key:path}")
    async def get_file(
        key: str,
        user_id: str = Depends(current_user),
        ctx: AppContext = Depends(get_context),
    ):
        """Serve a cached video to its owner."""
        owner = key_owner(key)
        if owner is None:
            raise HTTPException(status_code=404, detail="File not found")
        if owner != user_id:
            raise HTTPException(status_code=403, detail="Access denied")

        data = await ctx.blob_store.get(key)
        if data is None:
            raise HTTPException(status_code=404, detail="File not found")

        return Response(
            content=data,
            media_type=VIDEO_CONTENT_TYPE,
            headers={"Cache-Control": "private, max-age=31536000, immutable"},
        )

    # Schedules (declared before /api/video/{job_id} so the paths do not collide)

    @app.get("/api/video/schedules")
    async def list_schedules(
        user_id: str = Depends(current_user),
        ctx: AppContext = Depends(get_context),
    ):
        schedules = await ctx.scheduler.list_schedules(user_id)
        return {"schedules": [schedule.to_dict() for schedule in schedules]}

    @app.post("/api/video/schedules")
    async def create_schedule(
        body: ScheduleBody,
        user_id: str = Depends(current_user),
        ctx: AppContext = Depends(get_context),
    ):
        schedule = await ctx.scheduler.create_schedule(user_id, body.supplied())
        return {"success": True, "schedule": schedule.to_dict()}

    @app.post("/api/video/schedules/run-due")
    async def run_due_schedules(
        x_scheduler_token: Optional[str] = Header(default=None),
        ctx: AppContext = Depends(get_context),
    ):
        """Evaluate due schedules once. Meant for an external timer."""
        token = ctx.config.scheduler.trigger_token
        if token and x_scheduler_token != token:
            raise HTTPException(status_code=403, detail="Invalid scheduler token")

        runs = await ctx.scheduler.tick()
        return {
            "evaluated": len(runs),
            "submitted": sum(1 for run in runs if run.submitted),
            "runs": [run.to_dict() for run in runs],
        }

    @app.get("/api/video/schedules/{schedule_id}")
    async def get_schedule(
        schedule_id: str,
        user_id: str = Depends(current_user),
        ctx: AppContext = Depends(get_context),
    ):
        schedule = await ctx.scheduler.get_schedule(user_id, schedule_id)
        return schedule.to_dict()

    @app.patch("/api/video/schedules/{schedule_id}")
    async def update_schedule(
        schedule_id: str,
        body: ScheduleBody,
        user_id: str = Depends(current_user),
        ctx: AppContext = Depends(get_context),
    ):
        schedule = await ctx.scheduler.update_schedule(user_id, schedule_id, body.supplied())
        return {"success": True, "schedule": schedule.to_dict()}

    @app.delete("/api/video/schedules/{schedule_id}")
    async def delete_schedule(
        schedule_id: str,
        user_id: str = Depends(current_user),
        ctx: AppContext = Depends(get_context),
    ):
        await ctx.scheduler.delete_schedule(user_id, schedule_id)
        return {"success": True}

    # Jobs

    @app.get("/api/video/{job_id}")
    async def get_job(
        job_id: str,
        user_id: str = Depends(current_user),
        ctx: AppContext = Depends(get_context),
    ):
        job = await ctx.job_store.get_job(job_id)
        if job is None:
            raise JobNotFound(job_id)
        if job.user_id != user_id:
            raise AccessDenied("Job belongs to another user")
        return job.to_dict()

    @app.get("/api/video/{job_id}/stream")
    async def stream_job(
        job_id: str,
        request: Request,
        user_id: str = Depends(current_user),
        ctx: AppContext = Depends(get_context),
    ):
        """
        SSE endpoint for job progress.

        Emits one event per provider poll and closes after the terminal
        event. A finished job gets a single event straight from the database.

        Usage:
            curl -N -H "X-User-Id: user-1" http://localhost:8765/api/video/{id}/stream
        """
        events = await ctx.poller.open(job_id, user_id=user_id, is_disconnected=request.is_disconnected)

        async def event_stream():
            async for event in events:
                yield event.to_sse()

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app


app = create_app()
