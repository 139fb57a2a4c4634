from __future__ import annotations

from typing import Iterable


class VideoServiceError(Exception):
    """Base class for every error raised by the invitation video service."""


class TemplateNotFound(VideoServiceError):
    def __init__(self, template_id: str) -> None:
        super().__init__(f"Template not found: {template_id}")
        self.template_id = template_id


class JobNotFound(VideoServiceError):
    def __init__(self, job_id: object) -> None:
        super().__init__(f"Video job not found: {job_id}")
        self.job_id = job_id


class MissingTemplateFields(VideoServiceError):
    def __init__(self, template_id: str, fields: Iterable[str]) -> None:
        self.template_id = template_id
        self.fields = sorted(fields)
        super().__init__(f"Template {template_id} requires values for: {', '.join(self.fields)}")


class PipelineError(VideoServiceError):
    """A failure that prevents a job from producing a complete video."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage


class TranscoderError(PipelineError):
    """ffmpeg / ffprobe exited unsuccessfully or could not be started."""


class StageTimeout(PipelineError):
    pass


class SceneRenderError(PipelineError):
    def __init__(self, scene_id: str, cause: BaseException) -> None:
        super().__init__("rendering", f"Scene '{scene_id}' failed to render: {cause}")
        self.scene_id = scene_id
        self.cause = cause


class IncompatibleClipFormat(PipelineError):
    def __init__(self, message: str) -> None:
        super().__init__("composing", message)


class EnhancementError(PipelineError):
    def __init__(self, message: str) -> None:
        super().__init__("enhancing", message)


class StyleError(PipelineError):
    def __init__(self, message: str) -> None:
        super().__init__("styling", message)


class StyleUnavailable(StyleError):
    pass


class StyleTimeout(StyleError):
    pass
