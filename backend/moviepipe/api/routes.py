"""API route handlers and Pydantic response schemas."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel

from moviepipe import __version__
from moviepipe.config import settings
from moviepipe.db.models import HistoryKind
from moviepipe.errors import PipelineFailed
from moviepipe.orchestrator.pipeline import MovieOrchestrator
from moviepipe.orchestrator.state import JobStatus
from moviepipe.schemas.progress import ErrorUpdate, ProgressView
from moviepipe.schemas.storyboard import MovieRequest
from moviepipe.services.backends import create_backends
from moviepipe.services.history import HistoryService
from moviepipe.services.sanitize import (
    validate_aspect_ratio,
    validate_image_handle,
    validate_scene_count,
    validate_text_input,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class MovieCreate(BaseModel):
    prompt: str
    scene_count: Optional[int] = None
    seed_image: Optional[str] = None
    aspect_ratio: Optional[str] = None


class MovieCreated(BaseModel):
    job_id: str
    status: JobStatus


class MovieStatus(ProgressView):
    job_id: str
    video_url: Optional[str] = None


class HistoryItem(BaseModel):
    id: int
    kind: str
    title: str
    prompt: str
    url: Optional[str] = None
    scene_count: Optional[int] = None
    settings: Optional[dict] = None
    details: Optional[dict] = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Job registry
# ---------------------------------------------------------------------------


@dataclass
class JobRecord:
    job_id: str
    view: ProgressView = field(default_factory=lambda: ProgressView(status=JobStatus.RUNNING))
    final_video: Optional[Path] = None


class JobRegistry:
    """In-memory map of job id to the merged progress view of that job."""

    def __init__(self) -> None:
        self._jobs: dict[str, JobRecord] = {}

    def create(self) -> JobRecord:
        record = JobRecord(job_id=uuid.uuid4().hex)
        self._jobs[record.job_id] = record
        return record

    def get(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)


def default_orchestrator() -> MovieOrchestrator:
    """Fresh orchestrator per job; each instance runs one job at a time."""
    return MovieOrchestrator(
        create_backends(settings),
        settings,
        history=HistoryService(limit=settings.storage.history_limit),
    )


def get_registry(request: Request) -> JobRegistry:
    return request.app.state.registry


def get_orchestrator_factory() -> Callable[[], MovieOrchestrator]:
    return default_orchestrator


def get_history_service() -> HistoryService:
    return HistoryService(limit=settings.storage.history_limit)


async def _run_job(record: JobRecord, orchestrator: MovieOrchestrator, movie_request: MovieRequest) -> None:
    """Background task: run the pipeline and keep the job's view current."""
    try:
        result = await orchestrator.run(movie_request, on_progress=record.view.apply, job_id=record.job_id)
        record.final_video = result.final_video
    except PipelineFailed as e:
        # The ErrorUpdate has already been merged into the view
        logger.warning(f"Job {record.job_id} failed: {e}")
    except Exception as e:
        logger.error(f"Job {record.job_id} crashed: {type(e).__name__}: {e}")
        record.view.apply(ErrorUpdate(error=f"{type(e).__name__}: {e}"))
    finally:
        await orchestrator.backends.aclose()


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


@router.post("/movies", response_model=MovieCreated, status_code=202)
async def create_movie(
    body: MovieCreate,
    background_tasks: BackgroundTasks,
    registry: JobRegistry = Depends(get_registry),
    orchestrator_factory: Callable[[], MovieOrchestrator] = Depends(get_orchestrator_factory),
):
    """Validate the request and start a movie job in the background."""
    errors = validate_text_input(body.prompt, "prompt", settings.pipeline.max_prompt_length)
    errors += validate_scene_count(body.scene_count, settings.pipeline.min_scenes, settings.pipeline.max_scenes)
    if body.aspect_ratio is not None:
        errors += validate_aspect_ratio(body.aspect_ratio)
    if body.seed_image is not None:
        errors += validate_image_handle(body.seed_image)
    if errors:
        raise HTTPException(status_code=422, detail=errors)

    record = registry.create()
    movie_request = MovieRequest(
        prompt=body.prompt,
        scene_count=body.scene_count,
        seed_image=body.seed_image,
        aspect_ratio=body.aspect_ratio,
    )
    background_tasks.add_task(_run_job, record, orchestrator_factory(), movie_request)
    logger.info(f"Job {record.job_id}: accepted")
    return MovieCreated(job_id=record.job_id, status=record.view.status)


@router.get("/movies/{job_id}", response_model=MovieStatus)
async def get_movie(job_id: str, registry: JobRegistry = Depends(get_registry)):
    record = registry.get(job_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Job not found")
    video_url = f"/api/movies/{job_id}/video" if record.final_video else None
    return MovieStatus(job_id=job_id, video_url=video_url, **record.view.model_dump())


@router.get("/movies/{job_id}/video")
async def get_movie_video(job_id: str, registry: JobRegistry = Depends(get_registry)):
    record = registry.get(job_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if record.final_video is None or not record.final_video.exists():
        raise HTTPException(status_code=404, detail="Video not available")
    return FileResponse(record.final_video, media_type="video/mp4", filename=f"{job_id}.mp4")


@router.get("/history", response_model=list[HistoryItem])
async def list_history(
    kind: Optional[str] = None,
    history: HistoryService = Depends(get_history_service),
):
    if kind is not None and kind not in {k.value for k in HistoryKind}:
        raise HTTPException(status_code=422, detail=f"Invalid kind: {kind}")
    entries = await history.list_entries(kind)
    return [HistoryItem.model_validate(entry, from_attributes=True) for entry in entries]
