from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class SolidBackground(BaseModel):
    type: Literal["solid"] = "solid"
    color: str = "#000000"


class GradientBackground(BaseModel):
    type: Literal["gradient"] = "gradient"
    colors: List[str] = Field(default_factory=lambda: ["#000000"], min_length=1)


class ImageBackground(BaseModel):
    type: Literal["image"] = "image"
    theme: str


class VideoBackground(BaseModel):
    type: Literal["video"] = "video"
    theme: str


Background = Annotated[
    Union[SolidBackground, GradientBackground, ImageBackground, VideoBackground],
    Field(discriminator="type"),
]


class TextElement(BaseModel):
    content: str
    x: int = 960
    y: int = 540
    font_size: int = 48
    font_family: str = "Lato"
    color: str = "#ffffff"
    align: Literal["left", "center", "right"] = "center"
    max_width: Optional[int] = None


class MediaElement(BaseModel):
    type: Literal["image", "video"]
    x: int
    y: int
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    placeholder: str
    style: Optional[str] = None


class Scene(BaseModel):
    id: str
    duration: float = Field(gt=0)
    background: Background = Field(default_factory=SolidBackground)
    text_elements: List[TextElement] = Field(default_factory=list)
    media_elements: List[MediaElement] = Field(default_factory=list)
    animations: List[str] = Field(default_factory=list)
    effects: List[str] = Field(default_factory=list)


class Template(BaseModel):
    id: str
    name: str = ""
    category: str = ""
    description: str = ""
    thumbnail: Optional[str] = None
    duration: Optional[float] = None
    scenes: List[Scene] = Field(min_length=1)

    @model_validator(mode="after")
    def fill_duration(self) -> "Template":
        if self.duration is None:
            self.duration = self.total_duration
        return self

    @property
    def total_duration(self) -> float:
        return sum(scene.duration for scene in self.scenes)


class ProjectData(BaseModel):
    bride: str = ""
    groom: str = ""
    date: str = ""
    time: str = ""
    venue: str = ""
    message: str = ""


class MediaFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    mimetype: str
    path: str
    original_name: str = Field(default="", validation_alias=AliasChoices("original_name", "originalName"))
    slot: Optional[str] = None

    @property
    def kind(self) -> str:
        major = self.mimetype.split("/", 1)[0].lower()
        if major in ("image", "video", "audio"):
            return major
        return "other"


class Customization(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    background_music: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("background_music", "backgroundMusic")
    )
    fade_effects: Optional[bool] = Field(default=None, validation_alias=AliasChoices("fade_effects", "fadeEffects"))
    style_prompt: Optional[str] = Field(default=None, validation_alias=AliasChoices("style_prompt", "stylePrompt"))

    @property
    def fades_enabled(self) -> bool:
        return self.fade_effects is not False


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStage(str, Enum):
    QUEUED = "queued"
    PREPARING = "preparing"
    RENDERING = "rendering"
    COMPOSING = "composing"
    STYLING = "styling"
    ENHANCING = "enhancing"
    COMPLETED = "completed"
    FAILED = "failed"


class StyleStatus(str, Enum):
    NOT_REQUESTED = "not_requested"
    APPLIED = "applied"
    FAILED = "failed"


class JobStatusHistory(BaseModel):
    status: JobStatus
    stage: JobStage
    progress: int
    message: str
    occurred_at: datetime = Field(default_factory=datetime.utcnow)


class JobResult(BaseModel):
    path: str
    url: str
    duration_seconds: float
    size_bytes: int
    format: str = "mp4"
    created_at: datetime = Field(default_factory=datetime.utcnow)


class GenerationJob(BaseModel):
    id: UUID
    template_id: str
    style: str
    session_id: str
    project_data: ProjectData
    media_files: List[MediaFile] = Field(default_factory=list)
    customization: Customization = Field(default_factory=Customization)
    template: Template
    status: JobStatus = JobStatus.QUEUED
    stage: JobStage = JobStage.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    message: Optional[str] = None
    result: Optional[JobResult] = None
    error: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    style_status: StyleStatus = StyleStatus.NOT_REQUESTED
    status_history: List[JobStatusHistory] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
