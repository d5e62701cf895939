"""Storage interfaces for background jobs."""

from __future__ import annotations

from typing import Any, Protocol

from app.jobs.models import IssueRecord, JobKind, JobRecord, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job and issue persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job (with its issues) by identifier."""

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    step: str | None = None,
    progress: int | None = None,
    message: str | None = None,
    summary: dict[str, Any] | None = None,
    completed_at: str | None = None,
    updated_at: str | None = None,
    only_if_active: bool = False,
  ) -> JobRecord | None:
    """Apply partial updates to a job; None values are left unchanged.

    With `only_if_active` the update is checked against the stored row while it
    is locked: a DONE or ERROR job is left untouched and None is returned, and
    status and progress never move backwards.
    """

  async def add_issue(self, issue: IssueRecord, *, only_if_active: bool = False) -> IssueRecord | None:
    """Attach an issue to its job, returning None when the job is unknown (or final, with `only_if_active`)."""

  async def set_issue_resolved(self, issue_id: str, resolved: bool) -> IssueRecord | None:
    """Toggle the resolved flag on one issue."""

  async def latest_job(self, *, job_kind: JobKind, target_id: str) -> JobRecord | None:
    """Return the most recently created job for a target."""

  async def list_jobs(self, *, job_kind: JobKind, project_id: str | None = None, target_id: str | None = None) -> list[JobRecord]:
    """Return jobs matching the given project and/or target, newest first."""
