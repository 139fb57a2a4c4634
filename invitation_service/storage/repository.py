from __future__ import annotations

from threading import Lock
from typing import Dict, List
from uuid import UUID

from invitation_service.models.domain import GenerationJob, JobStage, JobStatus


class GenerationJobRepository:
    def __init__(self) -> None:
        self._jobs: Dict[UUID, GenerationJob] = {}
        self._lock = Lock()

    def save(self, job: GenerationJob) -> GenerationJob:
        with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)
        return job

    def get(self, job_id: UUID) -> GenerationJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def list(self) -> List[GenerationJob]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def claim(self, job_id: UUID) -> GenerationJob | None:
        """Move a queued job to processing; returns None if it was already picked up."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.QUEUED:
                return None
            job.status = JobStatus.PROCESSING
            job.stage = JobStage.PREPARING
            return job.model_copy(deep=True)
