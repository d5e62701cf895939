"""Lifecycle rules enforced by the job registry."""

from __future__ import annotations

import copy

import pytest

from app.jobs.errors import IssueNotFoundError, JobAlreadyFinalizedError, JobNotFoundError
from app.jobs.models import IssueRecord, JobRecord
from app.jobs.registry import CANCELLED_MESSAGE, JobRegistry
from app.storage.memory_jobs_repo import InMemoryJobsRepository


def _issue(job_id: str, issue_id: str = "issue-1") -> IssueRecord:
  return IssueRecord(issue_id=issue_id, job_id=job_id, issue_type="weak-support", severity="MEDIUM", message="Evidence is weak.", created_at="2026-01-01T00:00:00Z")


@pytest.mark.anyio
async def test_create_job_starts_queued(jobs: JobRegistry) -> None:
  record = await jobs.create_job("citation_check", "doc-1", project_id="proj-1", content_hash="abc")

  assert record.status == "QUEUED"
  assert record.progress == 0
  assert record.step == "Queued"
  stored = await jobs.require_job(record.job_id)
  assert stored.target_id == "doc-1"
  assert stored.content_hash == "abc"


@pytest.mark.anyio
async def test_require_job_raises_for_unknown(jobs: JobRegistry) -> None:
  assert await jobs.get_job("nope") is None
  with pytest.raises(JobNotFoundError):
    await jobs.require_job("nope")


@pytest.mark.anyio
async def test_require_job_scoped_to_kind(jobs: JobRegistry) -> None:
  record = await jobs.create_job("extraction", "paper-1")

  assert (await jobs.require_job(record.job_id, "extraction")).job_id == record.job_id
  with pytest.raises(JobNotFoundError):
    await jobs.require_job(record.job_id, "citation_check")
  with pytest.raises(JobNotFoundError):
    await jobs.cancel(record.job_id, "citation_check")
  assert (await jobs.require_job(record.job_id)).status == "QUEUED"


@pytest.mark.anyio
async def test_update_status_for_unknown_job_is_ignored(jobs: JobRegistry) -> None:
  assert await jobs.update_status("nope", "RUNNING", "Parsing", 10) is None


@pytest.mark.anyio
async def test_progress_is_clamped_and_never_decreases(jobs: JobRegistry) -> None:
  record = await jobs.create_job("citation_check", "doc-1")

  first = await jobs.update_status(record.job_id, "running", "Parsing", 40)
  second = await jobs.update_status(record.job_id, "RUNNING", "Matching", 25)
  third = await jobs.update_status(record.job_id, "RUNNING", "Matching", 250)

  assert first is not None and first.status == "RUNNING" and first.progress == 40
  assert second is not None and second.progress == 40 and second.step == "Matching"
  assert third is not None and third.progress == 100


@pytest.mark.anyio
async def test_status_never_moves_backwards(jobs: JobRegistry) -> None:
  record = await jobs.create_job("extraction", "paper-1")
  await jobs.update_status(record.job_id, "RUNNING", None, 10)

  late = await jobs.update_status(record.job_id, "QUEUED", None, 15)

  assert late is not None and late.status == "RUNNING" and late.progress == 15


@pytest.mark.anyio
async def test_unknown_status_is_ignored(jobs: JobRegistry) -> None:
  record = await jobs.create_job("extraction", "paper-1")
  assert await jobs.update_status(record.job_id, "PAUSED", None, 50) is None
  assert (await jobs.require_job(record.job_id)).status == "QUEUED"


@pytest.mark.anyio
async def test_done_forces_full_progress_and_freezes_job(jobs: JobRegistry) -> None:
  record = await jobs.create_job("citation_check", "doc-1")
  done = await jobs.update_status(record.job_id, "DONE", "Finished", 70)

  assert done is not None and done.progress == 100 and done.completed_at is not None
  assert await jobs.update_status(record.job_id, "RUNNING", "Again", 10) is None
  assert await jobs.set_summary(record.job_id, {"total": 3}) is None
  assert await jobs.record_issue(_issue(record.job_id)) is None
  assert await jobs.fail(record.job_id, "late") is None

  stored = await jobs.require_job(record.job_id)
  assert stored.status == "DONE"
  assert stored.summary is None
  assert stored.issues == []


@pytest.mark.anyio
async def test_cancel_moves_live_job_to_error(jobs: JobRegistry) -> None:
  record = await jobs.create_job("citation_check", "doc-1")

  cancelled = await jobs.cancel(record.job_id)

  assert cancelled.status == "ERROR"
  assert cancelled.message == CANCELLED_MESSAGE
  assert cancelled.step == "Cancelled"


@pytest.mark.anyio
async def test_cancel_rejects_unknown_and_finished_jobs(jobs: JobRegistry) -> None:
  with pytest.raises(JobNotFoundError):
    await jobs.cancel("nope")

  record = await jobs.create_job("citation_check", "doc-1")
  await jobs.update_status(record.job_id, "DONE", None, 100)
  with pytest.raises(JobAlreadyFinalizedError):
    await jobs.cancel(record.job_id)


@pytest.mark.anyio
async def test_issue_resolution_survives_job_completion(jobs: JobRegistry) -> None:
  record = await jobs.create_job("citation_check", "doc-1")
  await jobs.record_issue(_issue(record.job_id))
  await jobs.update_status(record.job_id, "DONE", None, 100)

  resolved = await jobs.set_issue_resolved("issue-1", True)

  assert resolved.resolved is True
  assert (await jobs.require_job(record.job_id)).issues[0].resolved is True
  with pytest.raises(IssueNotFoundError):
    await jobs.set_issue_resolved("missing", True)


@pytest.mark.anyio
async def test_latest_and_project_listing(jobs: JobRegistry) -> None:
  first = await jobs.create_job("citation_check", "doc-1", project_id="proj-1")
  second = await jobs.create_job("citation_check", "doc-1", project_id="proj-1")
  await jobs.create_job("extraction", "doc-1", project_id="proj-1")

  latest = await jobs.latest_for_target("citation_check", "doc-1")
  listed = await jobs.list_for_project("citation_check", "proj-1")

  assert latest is not None and latest.job_id == second.job_id
  assert [record.job_id for record in listed] == [second.job_id, first.job_id]
  assert [record.job_id for record in await jobs.list_for_target("citation_check", "doc-1")] == [second.job_id, first.job_id]


class _StaleReads(InMemoryJobsRepository):
  """Serves a fixed snapshot from get_job, as if a concurrent write landed after the read."""

  def __init__(self) -> None:
    super().__init__()
    self.snapshot: JobRecord | None = None

  async def get_job(self, job_id: str) -> JobRecord | None:
    if self.snapshot is not None:
      return copy.deepcopy(self.snapshot)
    return await super().get_job(job_id)


@pytest.mark.anyio
async def test_cancel_loses_to_completion_written_after_the_read() -> None:
  repo = _StaleReads()
  jobs = JobRegistry(repo)
  record = await jobs.create_job("citation_check", "doc-1")
  repo.snapshot = await jobs.update_status(record.job_id, "RUNNING", "Matching", 60)
  await repo.update_job(record.job_id, status="DONE", progress=100, only_if_active=True)

  with pytest.raises(JobAlreadyFinalizedError):
    await jobs.cancel(record.job_id)
  assert await jobs.update_status(record.job_id, "ERROR") is None
  assert await jobs.record_issue(_issue(record.job_id)) is None

  repo.snapshot = None
  stored = await jobs.require_job(record.job_id)
  assert stored.status == "DONE"
  assert stored.message is None
  assert stored.issues == []


@pytest.mark.anyio
async def test_progress_written_after_the_read_is_kept() -> None:
  repo = _StaleReads()
  jobs = JobRegistry(repo)
  record = await jobs.create_job("extraction", "paper-1")
  repo.snapshot = await jobs.update_status(record.job_id, "RUNNING", "Parsing", 60)
  await repo.update_job(record.job_id, progress=80, only_if_active=True)

  updated = await jobs.update_status(record.job_id, "RUNNING", "Tables", 70)

  assert updated is not None
  assert updated.progress == 80
  assert updated.step == "Tables"
