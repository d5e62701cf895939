"""Postgres-backed repository for background jobs using SQLAlchemy."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session_factory
from app.jobs.models import Evidence, IssueRecord, JobKind, JobRecord, JobStatus, Suggestion, forward_only, is_terminal
from app.schema.jobs import Job, JobIssue
from app.storage.jobs_repo import JobsRepository


def _issue_from_row(row: JobIssue) -> IssueRecord:
  return IssueRecord(
    issue_id=row.issue_id,
    job_id=row.job_id,
    issue_type=row.issue_type,
    severity=row.severity,
    message=row.message,
    created_at=row.created_at,
    citation_text=row.citation_text,
    position=row.position,
    length=row.length,
    line_start=row.line_start,
    line_end=row.line_end,
    cited_keys=list(row.cited_keys_json or []),
    suggestions=[Suggestion(**item) for item in row.suggestions_json or []],
    evidence=[Evidence(**item) for item in row.evidence_json or []],
    resolved=bool(row.resolved),
  )


def _issue_to_row(issue: IssueRecord) -> JobIssue:
  return JobIssue(
    issue_id=issue.issue_id,
    job_id=issue.job_id,
    issue_type=issue.issue_type,
    severity=issue.severity,
    message=issue.message,
    citation_text=issue.citation_text,
    position=issue.position,
    length=issue.length,
    line_start=issue.line_start,
    line_end=issue.line_end,
    cited_keys_json=list(issue.cited_keys),
    suggestions_json=[asdict(item) for item in issue.suggestions],
    evidence_json=[asdict(item) for item in issue.evidence],
    resolved=issue.resolved,
    created_at=issue.created_at,
  )


def _job_from_row(row: Job, issues: list[JobIssue]) -> JobRecord:
  return JobRecord(
    job_id=row.job_id,
    job_kind=row.job_kind,  # type: ignore[arg-type]
    target_id=row.target_id,
    status=row.status,  # type: ignore[arg-type]
    created_at=row.created_at,
    updated_at=row.updated_at,
    project_id=row.project_id,
    step=row.step,
    progress=int(row.progress or 0),
    message=row.message,
    request=dict(row.request_json or {}),
    correlation_id=row.correlation_id,
    content_hash=row.content_hash,
    summary=row.summary_json,
    issues=[_issue_from_row(issue) for issue in issues],
    completed_at=row.completed_at,
  )


def _newest_first(stmt: Select[tuple[Job]]) -> Select[tuple[Job]]:
  # seq breaks ties between jobs created within the same second.
  return stmt.order_by(Job.created_at.desc(), Job.seq.desc())


def latest_job_query(job_kind: str, target_id: str) -> Select[tuple[Job]]:
  return _newest_first(select(Job).where(Job.job_kind == job_kind, Job.target_id == target_id)).limit(1)


def list_jobs_query(job_kind: str, *, project_id: str | None = None, target_id: str | None = None) -> Select[tuple[Job]]:
  stmt = select(Job).where(Job.job_kind == job_kind)
  if project_id is not None:
    stmt = stmt.where(Job.project_id == project_id)
  if target_id is not None:
    stmt = stmt.where(Job.target_id == target_id)
  return _newest_first(stmt)


class PostgresJobsRepository(JobsRepository):
  """Persist jobs and their issues to Postgres using SQLAlchemy."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def _load_issues(self, session: AsyncSession, job_id: str) -> list[JobIssue]:
    result = await session.execute(select(JobIssue).where(JobIssue.job_id == job_id).order_by(JobIssue.created_at, JobIssue.issue_id))
    return list(result.scalars().all())

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        Job(
          job_id=record.job_id,
          job_kind=record.job_kind,
          target_id=record.target_id,
          project_id=record.project_id,
          status=record.status,
          step=record.step,
          progress=record.progress,
          message=record.message,
          request_json=record.request,
          summary_json=record.summary,
          correlation_id=record.correlation_id,
          content_hash=record.content_hash,
          created_at=record.created_at,
          updated_at=record.updated_at,
          completed_at=record.completed_at,
        )
      )
      for issue in record.issues:
        session.add(_issue_to_row(issue))
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Job, job_id)
      if row is None:
        return None
      return _job_from_row(row, await self._load_issues(session, job_id))

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
    async with self._session_factory() as session:
      row = await session.get(Job, job_id, with_for_update=True)
      if row is None:
        return None
      if only_if_active:
        # Re-checked under the row lock so a racing cancel and DONE cannot both win.
        if is_terminal(row.status):
          await session.rollback()
          return None
        status, progress = forward_only(row.status, int(row.progress or 0), status, progress)  # type: ignore[assignment]
      if status is not None:
        row.status = status
      if step is not None:
        row.step = step
      if progress is not None:
        row.progress = progress
      if message is not None:
        row.message = message
      if summary is not None:
        row.summary_json = summary
      if completed_at is not None:
        row.completed_at = completed_at
      if updated_at is not None:
        row.updated_at = updated_at
      await session.commit()
      return _job_from_row(row, await self._load_issues(session, job_id))

  async def add_issue(self, issue: IssueRecord, *, only_if_active: bool = False) -> IssueRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Job, issue.job_id, with_for_update=only_if_active)
      if row is None:
        return None
      if only_if_active and is_terminal(row.status):
        await session.rollback()
        return None
      session.add(_issue_to_row(issue))
      await session.commit()
      return issue

  async def set_issue_resolved(self, issue_id: str, resolved: bool) -> IssueRecord | None:
    async with self._session_factory() as session:
      row = await session.get(JobIssue, issue_id)
      if row is None:
        return None
      row.resolved = resolved
      await session.commit()
      return _issue_from_row(row)

  async def latest_job(self, *, job_kind: JobKind, target_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = (await session.execute(latest_job_query(job_kind, target_id))).scalars().first()
      if row is None:
        return None
      return _job_from_row(row, await self._load_issues(session, row.job_id))

  async def list_jobs(self, *, job_kind: JobKind, project_id: str | None = None, target_id: str | None = None) -> list[JobRecord]:
    async with self._session_factory() as session:
      rows = (await session.execute(list_jobs_query(job_kind, project_id=project_id, target_id=target_id))).scalars().all()
      return [_job_from_row(row, await self._load_issues(session, row.job_id)) for row in rows]
