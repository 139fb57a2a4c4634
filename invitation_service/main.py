from __future__ import annotations

import logging
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.staticfiles import StaticFiles

from invitation_service.config import Settings, get_settings
from invitation_service.errors import JobNotFound, MissingTemplateFields, TemplateNotFound
from invitation_service.models.api import (
    JobStatusListResponse,
    JobStatusResponse,
    TemplateListResponse,
    TemplateResponse,
    TemplateSummary,
    VideoGenerationRequest,
    VideoGenerationResponse,
)
from invitation_service.queue.queue import LocalQueue
from invitation_service.services.video_service import VideoService
from invitation_service.storage.repository import GenerationJobRepository

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(title="Invitation Video Service")

_settings = get_settings()
app.mount(
    _settings.outputs_url_prefix,
    StaticFiles(directory=_settings.outputs_dir, check_dir=False),
    name="outputs",
)

_repo = GenerationJobRepository()
_service: VideoService | None = None


def get_video_service(settings: Settings = Depends(get_settings)) -> VideoService:
    global _service
    if _service is None:
        service = VideoService(repo=_repo, settings=settings)
        service.bind_queue(LocalQueue(processor=service.process_job, workers=settings.max_concurrent_jobs))
        _service = service
    return _service


@app.get("/health")
def health(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    return {"status": "ok", "service": settings.app_name}


@app.post("/videos", response_model=VideoGenerationResponse, status_code=status.HTTP_202_ACCEPTED)
def create_video(
    payload: VideoGenerationRequest,
    service: VideoService = Depends(get_video_service),
) -> VideoGenerationResponse:
    try:
        job_id = service.submit(
            template_id=payload.template_id,
            project_data=payload.text,
            style=payload.style,
            media_files=payload.media_files,
            customization=payload.customization,
            session_id=payload.session_id,
        )
    except TemplateNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except MissingTemplateFields as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return VideoGenerationResponse(job_id=job_id)


@app.get("/videos", response_model=JobStatusListResponse)
def list_videos(service: VideoService = Depends(get_video_service)) -> JobStatusListResponse:
    return JobStatusListResponse(items=[JobStatusResponse.from_job(job) for job in service.list_jobs()])


@app.get("/videos/{job_id}", response_model=JobStatusResponse)
def get_video(job_id: UUID, service: VideoService = Depends(get_video_service)) -> JobStatusResponse:
    try:
        job = service.get_status(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return JobStatusResponse.from_job(job)


@app.get("/templates", response_model=TemplateListResponse)
def list_templates(
    category: str | None = Query(default=None, description="Only templates of this category, e.g. wedding"),
    service: VideoService = Depends(get_video_service),
) -> TemplateListResponse:
    templates = service.catalog.list_by_category(category) if category else service.catalog.list()
    return TemplateListResponse(items=[TemplateSummary.from_template(template) for template in templates])


@app.get("/templates/{template_id}", response_model=TemplateResponse)
def get_template(template_id: str, service: VideoService = Depends(get_video_service)) -> TemplateResponse:
    try:
        template = service.catalog.get(template_id)
    except TemplateNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return TemplateResponse(template=template)
