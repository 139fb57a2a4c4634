from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .domain import (
    Customization,
    GenerationJob,
    JobStage,
    JobStatus,
    MediaFile,
    ProjectData,
    StyleStatus,
    Template,
)


class VideoGenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    template_id: str = Field(..., min_length=1, validation_alias=AliasChoices("template_id", "templateId"))
    text: ProjectData = Field(default_factory=ProjectData)
    style: str = "default"
    media_files: List[MediaFile] = Field(
        default_factory=list, validation_alias=AliasChoices("media_files", "mediaFiles")
    )
    customization: Customization = Field(default_factory=Customization)
    session_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("session_id", "sessionId"))


class VideoGenerationResponse(BaseModel):
    job_id: UUID


class JobResultPayload(BaseModel):
    url: str
    path: str
    duration_seconds: float
    size_bytes: int
    format: str


class JobStatusResponse(BaseModel):
    job_id: UUID
    status: JobStatus
    stage: JobStage
    progress: int
    message: Optional[str] = None
    result: Optional[JobResultPayload] = None
    error: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    style_status: StyleStatus

    @classmethod
    def from_job(cls, job: GenerationJob) -> "JobStatusResponse":
        result = None
        if job.result is not None:
            result = JobResultPayload(
                url=job.result.url,
                path=job.result.path,
                duration_seconds=job.result.duration_seconds,
                size_bytes=job.result.size_bytes,
                format=job.result.format,
            )
        return cls(
            job_id=job.id,
            status=job.status,
            stage=job.stage,
            progress=job.progress,
            message=job.message,
            result=result,
            error=job.error,
            warnings=list(job.warnings),
            style_status=job.style_status,
        )


class JobStatusListResponse(BaseModel):
    items: List[JobStatusResponse]


class TemplateSummary(BaseModel):
    id: str
    name: str
    category: str
    description: str
    thumbnail: Optional[str] = None
    duration: float

    @classmethod
    def from_template(cls, template: Template) -> "TemplateSummary":
        return cls(
            id=template.id,
            name=template.name,
            category=template.category,
            description=template.description,
            thumbnail=template.thumbnail,
            duration=template.duration or template.total_duration,
        )


class TemplateListResponse(BaseModel):
    items: List[TemplateSummary]


class TemplateResponse(BaseModel):
    template: Template
