"""Apply worker progress callbacks to the job registry and live subscribers."""

from __future__ import annotations

import logging

from app.jobs.listeners import ListenerRegistry
from app.jobs.models import Evidence, IssueRecord, JobRecord, Suggestion
from app.jobs.registry import JobRegistry, utc_timestamp
from app.messaging.contracts import IssueMessage, JobProgressMessage
from app.utils.ids import generate_issue_id

logger = logging.getLogger(__name__)

_DEFAULT_ERROR_MESSAGE = "Job failed."


def issue_from_message(job_id: str, item: IssueMessage) -> IssueRecord:
  return IssueRecord(
    issue_id=item.issue_id or generate_issue_id(),
    job_id=job_id,
    issue_type=item.issue_type,
    severity=item.severity,
    message=item.message,
    created_at=utc_timestamp(),
    citation_text=item.citation_text,
    position=item.position,
    length=item.length,
    line_start=item.line_start,
    line_end=item.line_end,
    cited_keys=list(item.cited_keys),
    suggestions=[
      Suggestion(kind=s.kind, score=s.score, paper_id=s.paper_id, url=s.url, bibtex=s.bibtex, title=s.title, authors=list(s.authors), year=s.year, description=s.description) for s in item.suggestions
    ],
    evidence=[
      Evidence(evidence_id=e.evidence_id, source=dict(e.source), matched_text=e.matched_text, similarity=e.similarity, support_score=e.support_score, extracted_context=e.extracted_context)
      for e in item.evidence
    ],
  )


class WorkerEventService:
  """Persist a worker update, then forward what was accepted to the job's subscriber.

  Subscribers see events in the order status, issues, summary, terminal. Only
  values the registry stored are forwarded, so progress on the stream is the
  clamped, non-decreasing value and a finished job never emits a second
  terminal event.
  """

  def __init__(self, *, jobs: JobRegistry, listeners: ListenerRegistry) -> None:
    self._jobs = jobs
    self._listeners = listeners

  async def apply(self, event: JobProgressMessage) -> JobRecord | None:
    job_id = event.job_id
    status = (event.status or "").strip().upper()

    # Findings and summary land before the terminal transition closes the job.
    accepted_issues: list[IssueRecord] = []
    for item in event.issues:
      stored = await self._jobs.record_issue(issue_from_message(job_id, item))
      if stored is not None:
        accepted_issues.append(stored)

    summary_record = None
    if event.summary is not None:
      summary_record = await self._jobs.set_summary(job_id, event.summary)

    if status == "ERROR":
      record = await self._jobs.fail(job_id, event.message or _DEFAULT_ERROR_MESSAGE, step=event.step)
    else:
      record = await self._jobs.update_status(job_id, status, event.step, event.progress_percent)

    if record is not None:
      self._listeners.dispatch_status(job_id, record.status, record.step, record.progress)
    for issue in accepted_issues:
      self._listeners.dispatch_issue(job_id, issue)
    if summary_record is not None and summary_record.summary is not None:
      self._listeners.dispatch_summary(job_id, summary_record.summary)

    if record is not None and record.status == "DONE":
      self._listeners.dispatch_complete(job_id)
    elif record is not None and record.status == "ERROR":
      self._listeners.dispatch_error(job_id, record.message or _DEFAULT_ERROR_MESSAGE)

    if record is None and not accepted_issues and summary_record is None:
      logger.info("Worker event for job %s (%s) changed nothing", job_id, status or "no status")
    return record
