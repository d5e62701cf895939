"""Durable job status tracking.

The registry is the single source of truth for job state. Every mutation
coming from workers goes through `update_status`, `record_issue`,
`set_summary` or `fail`, which enforce the lifecycle rules:

* status only moves forward (QUEUED -> RUNNING -> DONE/ERROR);
* progress is clamped to 0-100 and never decreases;
* DONE and ERROR are final, later updates are ignored and logged.

Updates that are ignored return None so callers know not to forward them to
live subscribers. The early read only short-circuits obvious cases; the
repository repeats the terminal and forward-only checks while the row is
locked (`only_if_active`), so concurrent callbacks and cancels cannot undo
a final state.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from app.jobs.errors import IssueNotFoundError, JobAlreadyFinalizedError, JobNotFoundError
from app.jobs.models import KNOWN_STATUSES, STATUS_RANK, IssueRecord, JobKind, JobRecord, JobStatus
from app.storage.jobs_repo import JobsRepository
from app.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
CANCELLED_MESSAGE = "Job cancelled by user."


def utc_timestamp() -> str:
  return time.strftime(_DATE_FORMAT, time.gmtime())


def _clamp_progress(value: int | float | None) -> int | None:
  if value is None:
    return None
  return max(0, min(100, int(value)))


class JobRegistry:
  """Create, read and advance jobs stored in a JobsRepository."""

  def __init__(self, repo: JobsRepository) -> None:
    self._repo = repo

  async def create_job(
    self,
    job_kind: JobKind,
    target_id: str,
    *,
    project_id: str | None = None,
    request: dict[str, Any] | None = None,
    correlation_id: str | None = None,
    content_hash: str | None = None,
  ) -> JobRecord:
    timestamp = utc_timestamp()
    record = JobRecord(
      job_id=generate_job_id(),
      job_kind=job_kind,
      target_id=target_id,
      status="QUEUED",
      created_at=timestamp,
      updated_at=timestamp,
      project_id=project_id,
      step="Queued",
      progress=0,
      request=dict(request or {}),
      correlation_id=correlation_id,
      content_hash=content_hash,
    )
    await self._repo.create_job(record)
    logger.info("Created %s job %s for target %s", job_kind, record.job_id, target_id)
    return record

  async def get_job(self, job_id: str) -> JobRecord | None:
    return await self._repo.get_job(job_id)

  async def require_job(self, job_id: str, job_kind: JobKind | None = None) -> JobRecord:
    """Return the job, treating a job of another kind as unknown."""
    record = await self._repo.get_job(job_id)
    if record is None or (job_kind is not None and record.job_kind != job_kind):
      raise JobNotFoundError(job_id)
    return record

  async def _load_mutable(self, job_id: str, action: str) -> JobRecord | None:
    """Return the job when it still accepts updates, otherwise log why not."""
    record = await self._repo.get_job(job_id)
    if record is None:
      logger.warning("Ignoring %s for unknown job %s", action, job_id)
      return None
    if record.is_terminal:
      logger.info("Ignoring %s for job %s already %s", action, job_id, record.status)
      return None
    return record

  async def update_status(self, job_id: str, status: str, step: str | None = None, progress: int | float | None = None) -> JobRecord | None:
    """Apply a worker status update, returning the stored result or None when ignored."""
    normalized = (status or "").strip().upper()
    if normalized not in KNOWN_STATUSES:
      logger.warning("Ignoring unknown status %r for job %s", status, job_id)
      return None

    record = await self._load_mutable(job_id, f"status {normalized}")
    if record is None:
      return None

    # A late RUNNING after the job moved on must not roll it back.
    if STATUS_RANK[normalized] < STATUS_RANK[record.status]:
      normalized = record.status

    new_progress = _clamp_progress(progress)
    if new_progress is None or new_progress < record.progress:
      new_progress = record.progress

    timestamp = utc_timestamp()
    completed_at = None
    if normalized == "DONE":
      new_progress = 100
      completed_at = timestamp
    elif normalized == "ERROR":
      completed_at = timestamp

    return await self._repo.update_job(job_id, status=normalized, step=step, progress=new_progress, completed_at=completed_at, updated_at=timestamp, only_if_active=True)  # type: ignore[arg-type]

  async def record_issue(self, issue: IssueRecord) -> IssueRecord | None:
    if await self._load_mutable(issue.job_id, "issue") is None:
      return None
    return await self._repo.add_issue(issue, only_if_active=True)

  async def set_summary(self, job_id: str, summary: dict[str, Any]) -> JobRecord | None:
    if await self._load_mutable(job_id, "summary") is None:
      return None
    return await self._repo.update_job(job_id, summary=summary, updated_at=utc_timestamp(), only_if_active=True)

  async def fail(self, job_id: str, message: str, *, step: str | None = None) -> JobRecord | None:
    """Move a live job to ERROR; returns None when it was unknown or already final."""
    if await self._load_mutable(job_id, "failure") is None:
      return None
    timestamp = utc_timestamp()
    status: JobStatus = "ERROR"
    return await self._repo.update_job(job_id, status=status, step=step or "Failed", message=message, completed_at=timestamp, updated_at=timestamp, only_if_active=True)

  async def cancel(self, job_id: str, job_kind: JobKind | None = None) -> JobRecord:
    record = await self.require_job(job_id, job_kind)
    if record.is_terminal:
      raise JobAlreadyFinalizedError(job_id, record.status)
    updated = await self.fail(job_id, CANCELLED_MESSAGE, step="Cancelled")
    if updated is None:
      # Finished between the read and the write.
      latest = await self.require_job(job_id)
      raise JobAlreadyFinalizedError(job_id, latest.status)
    logger.info("Cancelled job %s", job_id)
    return updated

  async def set_issue_resolved(self, issue_id: str, resolved: bool) -> IssueRecord:
    issue = await self._repo.set_issue_resolved(issue_id, resolved)
    if issue is None:
      raise IssueNotFoundError(issue_id)
    return issue

  async def latest_for_target(self, job_kind: JobKind, target_id: str) -> JobRecord | None:
    return await self._repo.latest_job(job_kind=job_kind, target_id=target_id)

  async def list_for_project(self, job_kind: JobKind, project_id: str) -> list[JobRecord]:
    return await self._repo.list_jobs(job_kind=job_kind, project_id=project_id)

  async def list_for_target(self, job_kind: JobKind, target_id: str) -> list[JobRecord]:
    return await self._repo.list_jobs(job_kind=job_kind, target_id=target_id)
