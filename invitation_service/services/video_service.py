from __future__ import annotations

import logging
import pathlib
import re
import shutil
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from uuid import UUID, uuid4

import httpx

from invitation_service.catalog.catalog import TemplateCatalog, required_fields
from invitation_service.clients.s3_storage import S3StorageClient
from invitation_service.clients.style_transfer import ReplicateStyleClient
from invitation_service.config import Settings
from invitation_service.errors import (
    EnhancementError,
    JobNotFound,
    MissingTemplateFields,
    PipelineError,
    StageTimeout,
    StyleError,
)
from invitation_service.events.publisher import JobEventPublisher
from invitation_service.media.transcoder import FFmpegTranscoder, Transcoder
from invitation_service.models.domain import (
    Customization,
    GenerationJob,
    JobResult,
    JobStage,
    JobStatus,
    JobStatusHistory,
    MediaFile,
    ProjectData,
    StyleStatus,
    Template,
)
from invitation_service.queue.queue import BaseQueue
from invitation_service.services.compositor import Compositor
from invitation_service.services.enhancer import Enhancer
from invitation_service.services.scene_renderer import SceneRenderer, assign_media_slots
from invitation_service.storage.repository import GenerationJobRepository

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_.-]+")


class VideoService:
    """Job manager: accepts generation requests and drives each one through the pipeline.

    Stage order per job: preparing (template + media) -> rendering -> composing
    -> styling (only for a non-default style) -> enhancing -> completed.
    Any stage failure moves the job to failed; nothing is retried.
    """

    def __init__(
        self,
        repo: GenerationJobRepository,
        settings: Settings,
        catalog: TemplateCatalog | None = None,
        transcoder: Transcoder | None = None,
        style_client: ReplicateStyleClient | None = None,
        storage: S3StorageClient | None = None,
        events: JobEventPublisher | None = None,
    ) -> None:
        self.repo = repo
        self.queue: BaseQueue | None = None
        self.settings = settings
        self.log = logging.getLogger(__name__)
        if catalog is None:
            if settings.templates_path:
                catalog = TemplateCatalog.from_file(settings.templates_path)
            else:
                catalog = TemplateCatalog.builtin()
        self.catalog = catalog
        self.transcoder = transcoder or FFmpegTranscoder.from_settings(settings, logger=self.log)
        self.renderer = SceneRenderer(
            self.transcoder,
            size=(settings.video_width, settings.video_height),
            fps=settings.video_fps,
            themes_dir=settings.themes_dir,
            fonts_dir=settings.fonts_dir,
        )
        self.compositor = Compositor(self.transcoder)
        self.enhancer = Enhancer(self.transcoder, fade_seconds=settings.fade_duration_seconds)
        self.style_client = style_client or ReplicateStyleClient(
            api_token=settings.style_api_token,
            style_models=settings.style_models,
            base_url=settings.style_provider_url,
            timeout=settings.style_timeout_seconds,
            poll_interval=settings.style_poll_interval_seconds,
            logger=self.log,
        )
        self.storage = storage or S3StorageClient(
            bucket=settings.s3_bucket,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
            public_url=settings.s3_public_url,
            addressing_style=settings.s3_addressing_style,
        )
        self.events = events
        if self.events is None:
            try:
                self.events = JobEventPublisher.from_settings(settings, logger=self.log)
            except Exception:  # pragma: no cover - best effort logging
                self.log.warning(
                    "job event publisher unavailable",
                    extra={"topic": settings.kafka_updates_topic},
                    exc_info=True,
                )

    def bind_queue(self, queue: BaseQueue) -> None:
        self.queue = queue

    def submit(
        self,
        template_id: str,
        project_data: ProjectData | None = None,
        style: str | None = None,
        media_files: Sequence[MediaFile] = (),
        customization: Customization | None = None,
        session_id: str | None = None,
    ) -> UUID:
        template = self.catalog.get(template_id)
        project_data = project_data or ProjectData()
        if self.settings.require_template_fields:
            missing = {name for name in required_fields(template) if not getattr(project_data, name).strip()}
            if missing:
                raise MissingTemplateFields(template_id, missing)
        job = GenerationJob(
            id=uuid4(),
            template_id=template.id,
            style=(style or "default").strip(),
            session_id=self._session_segment(session_id),
            project_data=project_data,
            media_files=list(media_files),
            customization=customization or Customization(),
            template=template,
            message="Job enqueued",
            status_history=[
                JobStatusHistory(
                    status=JobStatus.QUEUED,
                    stage=JobStage.QUEUED,
                    progress=0,
                    message="Job enqueued",
                )
            ],
        )
        self._save_job(job)
        self.log.info(
            "generation job accepted",
            extra={"job_id": str(job.id), "template_id": template.id, "style": job.style, "session": job.session_id},
        )
        if self.queue is not None:
            self.queue.enqueue(job.id)
        return job.id

    def get_status(self, job_id: UUID) -> GenerationJob:
        job = self.repo.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def list_jobs(self) -> list[GenerationJob]:
        return self.repo.list()

    def process_job(self, job_id: UUID) -> None:
        job = self.repo.claim(job_id)
        if job is None:
            self.log.debug("job not claimable, skipping", extra={"job_id": str(job_id)})
            return
        try:
            self._pipeline(job)
        except PipelineError as exc:
            self.log.error(
                "video job failed",
                extra={"job_id": str(job.id), "stage": exc.stage, "error": str(exc)},
                exc_info=exc,
            )
            self._fail(job, str(exc))
        except OSError as exc:
            self.log.exception("video job failed on I/O", extra={"job_id": str(job.id), "stage": job.stage.value})
            self._fail(job, f"I/O error during {job.stage.value}: {exc}")
        except Exception as exc:
            self.log.exception("video job failed", extra={"job_id": str(job.id), "stage": job.stage.value})
            self._fail(job, f"Video generation failed during {job.stage.value}: {exc}")

    def _pipeline(self, job: GenerationJob) -> None:
        workdir = self._job_workdir(job)
        tmpdir = workdir / "tmp"
        tmpdir.mkdir(parents=True, exist_ok=True)
        output_path = workdir / f"invitation-{job.id.hex[:8]}.mp4"
        succeeded = False
        try:
            template = job.template
            self._update_status(job, JobStage.PREPARING, "Template loaded", progress=20)

            media_slots = self._process_media(job, template)
            self._update_status(job, JobStage.RENDERING, "Media processed", progress=40)

            clips = self._render_scenes(job, template, media_slots, tmpdir)
            self._update_status(job, JobStage.COMPOSING, f"Rendered {len(clips)} scenes")
            base_video = self.compositor.concat(clips, tmpdir / "base.mp4")
            self._update_status(job, JobStage.COMPOSING, "Base video created", progress=60)

            video = self._apply_style(job, base_video)

            self._update_status(job, JobStage.ENHANCING, "Adding music and transitions")
            customization = self._prepare_customization(job, tmpdir)
            final_path = self.enhancer.enhance(video, customization, output_path)

            self._complete(job, self._build_result(job, final_path))
            succeeded = True
        finally:
            if not succeeded:
                output_path.unlink(missing_ok=True)
            if succeeded or not self.settings.keep_failed_artifacts:
                shutil.rmtree(tmpdir, ignore_errors=True)

    def _process_media(self, job: GenerationJob, template: Template) -> Dict[str, MediaFile]:
        usable: List[MediaFile] = []
        for media in job.media_files:
            if media.kind not in ("image", "video"):
                self.log.info(
                    "ignoring unsupported media file",
                    extra={"job_id": str(job.id), "media_id": media.id, "mimetype": media.mimetype},
                )
                continue
            if not pathlib.Path(media.path).is_file():
                job.warnings.append(f"media file {media.original_name or media.id} is missing and was skipped")
                self.log.warning(
                    "media file missing on disk",
                    extra={"job_id": str(job.id), "media_id": media.id, "path": media.path},
                )
                continue
            usable.append(media)
        return assign_media_slots(template, usable)

    def _render_scenes(
        self,
        job: GenerationJob,
        template: Template,
        media_slots: Dict[str, MediaFile],
        tmpdir: pathlib.Path,
    ) -> List[pathlib.Path]:
        workers = max(1, min(self.settings.render_workers, len(template.scenes)))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"render-{job.id.hex[:8]}")
        timed_out = False
        try:
            futures = [
                executor.submit(
                    self.renderer.render,
                    scene,
                    job.project_data,
                    media_slots,
                    tmpdir / f"scene-{index:03d}.mp4",
                )
                for index, scene in enumerate(template.scenes)
            ]
            clips: List[pathlib.Path] = []
            for scene, future in zip(template.scenes, futures):
                try:
                    clips.append(future.result(timeout=self.settings.scene_render_timeout_seconds))
                except FutureTimeout as exc:
                    timed_out = True
                    raise StageTimeout(
                        "rendering",
                        f"Scene '{scene.id}' did not render within {self.settings.scene_render_timeout_seconds:g}s",
                    ) from exc
            return clips
        finally:
            # a hung encoder thread cannot be interrupted, so only wait when none timed out
            executor.shutdown(wait=not timed_out, cancel_futures=True)

    def _apply_style(self, job: GenerationJob, video: pathlib.Path) -> pathlib.Path:
        style = job.style.lower()
        if not style or style == "default":
            return video
        self._update_status(job, JobStage.STYLING, f"Applying {style} style")
        try:
            styled = self.style_client.apply_style(video, style, job.customization.style_prompt)
        except StyleError as exc:
            if self.settings.style_failure_policy == "fail":
                job.style_status = StyleStatus.FAILED
                raise
            self.log.warning(
                "styling failed, continuing with unstyled video",
                extra={"job_id": str(job.id), "style": style, "error": str(exc)},
            )
            job.style_status = StyleStatus.FAILED
            job.warnings.append(f"Styling skipped: {exc}")
            self._update_status(job, JobStage.STYLING, f"Styling skipped: {exc}", progress=80)
            return video
        job.style_status = StyleStatus.APPLIED
        self._update_status(job, JobStage.STYLING, "AI styling applied", progress=80)
        return styled

    def _prepare_customization(self, job: GenerationJob, tmpdir: pathlib.Path) -> Customization:
        source = (job.customization.background_music or "").strip()
        if not source.lower().startswith(("http://", "https://")):
            return job.customization
        suffix = pathlib.Path(httpx.URL(source).path).suffix or ".mp3"
        path = tmpdir / f"soundtrack{suffix}"
        timeout = httpx.Timeout(
            connect=min(10.0, self.settings.asset_download_timeout),
            read=self.settings.asset_download_timeout,
            write=10.0,
            pool=None,
        )
        try:
            with httpx.stream("GET", source, timeout=timeout, follow_redirects=True) as resp:
                resp.raise_for_status()
                with open(path, "wb") as f:
                    for chunk in resp.iter_bytes():
                        if chunk:
                            f.write(chunk)
        except httpx.HTTPError as exc:
            self.log.warning(
                "soundtrack download failed",
                extra={"job_id": str(job.id), "soundtrack_url": source},
                exc_info=exc,
            )
            raise EnhancementError(f"background music download failed: {exc}") from exc
        return job.customization.model_copy(update={"background_music": str(path)})

    def _build_result(self, job: GenerationJob, path: pathlib.Path) -> JobResult:
        info = self.transcoder.probe(path, stage="enhancing")
        url = self._local_url(path)
        if self.storage.is_configured():
            key = "/".join(
                segment
                for segment in (self.settings.storage_folder_prefix, job.session_id, str(job.id), path.name)
                if segment
            )
            url = self.storage.upload_file(path, key, content_type="video/mp4")
        return JobResult(
            path=str(path),
            url=url,
            duration_seconds=round(info.duration, 3),
            size_bytes=path.stat().st_size,
            format="mp4",
        )

    def _update_status(
        self,
        job: GenerationJob,
        stage: JobStage,
        message: str,
        progress: int | None = None,
    ) -> None:
        job.status = JobStatus.PROCESSING
        job.stage = stage
        if progress is not None:
            job.progress = max(job.progress, progress)
        job.message = message
        job.status_history.append(
            JobStatusHistory(status=job.status, stage=stage, progress=job.progress, message=message)
        )
        job.updated_at = datetime.utcnow()
        self._save_job(job)

    def _complete(self, job: GenerationJob, result: JobResult) -> None:
        job.status = JobStatus.COMPLETED
        job.stage = JobStage.COMPLETED
        job.progress = 100
        job.result = result
        job.error = None
        job.message = "Video generation complete"
        if job.style_status == StyleStatus.FAILED:
            job.message = "Video generation complete without styling"
        job.status_history.append(
            JobStatusHistory(status=job.status, stage=job.stage, progress=job.progress, message=job.message)
        )
        job.updated_at = datetime.utcnow()
        self._save_job(job)
        self.log.info(
            "video job completed",
            extra={
                "job_id": str(job.id),
                "duration": result.duration_seconds,
                "size": result.size_bytes,
                "style_status": job.style_status.value,
            },
        )

    def _fail(self, job: GenerationJob, error: str) -> None:
        failed_stage = job.stage
        job.status = JobStatus.FAILED
        job.stage = JobStage.FAILED
        job.result = None
        job.error = error
        job.message = f"Failed during {failed_stage.value}"
        job.status_history.append(
            JobStatusHistory(status=job.status, stage=job.stage, progress=job.progress, message=job.message)
        )
        job.updated_at = datetime.utcnow()
        self._save_job(job)

    def _save_job(self, job: GenerationJob) -> None:
        self.repo.save(job)
        self._emit_job_update(job)

    def _emit_job_update(self, job: GenerationJob) -> None:
        if not self.events:
            return
        try:
            self.events.publish(job)
        except Exception:  # pragma: no cover
            self.log.warning("job event emission failed", extra={"job_id": str(job.id)}, exc_info=True)

    def _job_workdir(self, job: GenerationJob) -> pathlib.Path:
        workdir = pathlib.Path(self.settings.outputs_dir) / job.session_id / str(job.id)
        workdir.mkdir(parents=True, exist_ok=True)
        return workdir

    def _local_url(self, path: pathlib.Path) -> str:
        relative = path.resolve().relative_to(pathlib.Path(self.settings.outputs_dir).resolve())
        return f"{self.settings.outputs_url_prefix.rstrip('/')}/{relative.as_posix()}"

    def _session_segment(self, value: Optional[str]) -> str:
        cleaned = _UNSAFE_SEGMENT.sub("-", (value or "").strip()).strip(".-")
        return cleaned or self.settings.default_session
