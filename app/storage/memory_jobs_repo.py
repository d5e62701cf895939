"""Process-local jobs repository used when no database is configured."""

from __future__ import annotations

import asyncio
import copy
from dataclasses import replace
from typing import Any

from app.jobs.models import IssueRecord, JobKind, JobRecord, JobStatus, forward_only
from app.storage.jobs_repo import JobsRepository


class InMemoryJobsRepository(JobsRepository):
  """Keep jobs in a dict; callers get copies so they cannot mutate stored state."""

  def __init__(self) -> None:
    self._jobs: dict[str, JobRecord] = {}
    self._issue_index: dict[str, str] = {}
    # Insertion order breaks created_at ties within the same second.
    self._sequence: dict[str, int] = {}
    self._lock = asyncio.Lock()

  async def create_job(self, record: JobRecord) -> None:
    async with self._lock:
      self._jobs[record.job_id] = copy.deepcopy(record)
      self._sequence[record.job_id] = len(self._sequence)
      for issue in record.issues:
        self._issue_index[issue.issue_id] = record.job_id

  async def get_job(self, job_id: str) -> JobRecord | None:
    record = self._jobs.get(job_id)
    if record is None:
      return None
    return copy.deepcopy(record)

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
    async with self._lock:
      record = self._jobs.get(job_id)
      if record is None:
        return None
      if only_if_active:
        if record.is_terminal:
          return None
        status, progress = forward_only(record.status, record.progress, status, progress)  # type: ignore[assignment]

      changes = {"status": status, "step": step, "progress": progress, "message": message, "summary": summary, "completed_at": completed_at, "updated_at": updated_at}
      updated = replace(record, **{key: value for key, value in changes.items() if value is not None})
      self._jobs[job_id] = updated
      return copy.deepcopy(updated)

  async def add_issue(self, issue: IssueRecord, *, only_if_active: bool = False) -> IssueRecord | None:
    async with self._lock:
      record = self._jobs.get(issue.job_id)
      if record is None or (only_if_active and record.is_terminal):
        return None
      record.issues.append(copy.deepcopy(issue))
      self._issue_index[issue.issue_id] = issue.job_id
      return copy.deepcopy(issue)

  async def set_issue_resolved(self, issue_id: str, resolved: bool) -> IssueRecord | None:
    async with self._lock:
      job_id = self._issue_index.get(issue_id)
      if job_id is None:
        return None
      for issue in self._jobs[job_id].issues:
        if issue.issue_id == issue_id:
          issue.resolved = resolved
          return copy.deepcopy(issue)
      return None

  def _newest_first(self, matches: list[JobRecord]) -> list[JobRecord]:
    return sorted(matches, key=lambda record: (record.created_at, self._sequence[record.job_id]), reverse=True)

  async def latest_job(self, *, job_kind: JobKind, target_id: str) -> JobRecord | None:
    matches = [record for record in self._jobs.values() if record.job_kind == job_kind and record.target_id == target_id]
    if not matches:
      return None
    return copy.deepcopy(self._newest_first(matches)[0])

  async def list_jobs(self, *, job_kind: JobKind, project_id: str | None = None, target_id: str | None = None) -> list[JobRecord]:
    matches = [
      record
      for record in self._jobs.values()
      if record.job_kind == job_kind and (project_id is None or record.project_id == project_id) and (target_id is None or record.target_id == target_id)
    ]
    return [copy.deepcopy(record) for record in self._newest_first(matches)]
