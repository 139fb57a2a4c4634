from uuid import uuid4

from invitation_service.catalog.catalog import TemplateCatalog
from invitation_service.models.domain import GenerationJob, JobStage, JobStatus, ProjectData
from invitation_service.storage.repository import GenerationJobRepository


def make_job():
    return GenerationJob(
        id=uuid4(),
        template_id="modern-minimalist",
        style="default",
        session_id="default",
        project_data=ProjectData(bride="Anna"),
        template=TemplateCatalog.builtin().get("modern-minimalist"),
    )


def test_get_returns_snapshot():
    repo = GenerationJobRepository()
    job = make_job()
    repo.save(job)

    job.progress = 50
    stored = repo.get(job.id)
    stored.message = "changed"

    assert repo.get(job.id).progress == 0
    assert repo.get(job.id).message is None


def test_claim_only_once():
    repo = GenerationJobRepository()
    job = make_job()
    repo.save(job)

    claimed = repo.claim(job.id)

    assert claimed.status == JobStatus.PROCESSING
    assert claimed.stage == JobStage.PREPARING
    assert repo.claim(job.id) is None
    assert repo.get(job.id).status == JobStatus.PROCESSING


def test_claim_unknown_job():
    assert GenerationJobRepository().claim(uuid4()) is None


def test_list_returns_all_jobs():
    repo = GenerationJobRepository()
    jobs = [make_job(), make_job()]
    for job in jobs:
        repo.save(job)

    assert {job.id for job in repo.list()} == {job.id for job in jobs}
