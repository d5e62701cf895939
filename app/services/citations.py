"""Citation-check job lifecycle: start, observe, cancel, review."""

from __future__ import annotations

import logging

from app.api.models import CitationCheckRequest
from app.config import Settings
from app.jobs.errors import JobDispatchError
from app.jobs.listeners import ListenerRegistry
from app.jobs.models import IssueRecord, JobRecord
from app.jobs.registry import CANCELLED_MESSAGE, JobRegistry
from app.jobs.streaming import StreamSession
from app.messaging.contracts import CitationCheckMessage, CitationCheckOptions
from app.messaging.interface import JobPublisher, PublishError
from app.utils.ids import generate_correlation_id

logger = logging.getLogger(__name__)

_KIND = "citation_check"


class CitationService:
  def __init__(self, *, jobs: JobRegistry, listeners: ListenerRegistry, publisher: JobPublisher, settings: Settings) -> None:
    self._jobs = jobs
    self._listeners = listeners
    self._publisher = publisher
    self._settings = settings

  async def _reusable_result(self, request: CitationCheckRequest) -> JobRecord | None:
    """Return the last finished check when the document content has not changed."""
    if request.force_recheck or not request.content_hash:
      return None
    latest = await self._jobs.latest_for_target(_KIND, request.document_id)
    if latest is None or latest.status != "DONE" or latest.content_hash != request.content_hash:
      return None
    return latest

  async def start_check(self, request: CitationCheckRequest) -> JobRecord:
    """Create a citation-check job and hand it to the citation worker."""
    reusable = await self._reusable_result(request)
    if reusable is not None:
      logger.info("Reusing citation job %s for unchanged document %s", reusable.job_id, request.document_id)
      return reusable

    correlation_id = generate_correlation_id("citation")
    record = await self._jobs.create_job(
      _KIND,
      request.document_id,
      project_id=request.project_id,
      request=request.model_dump(mode="json", by_alias=True, exclude={"content"}),
      correlation_id=correlation_id,
      content_hash=request.content_hash,
    )

    options = request.options
    message = CitationCheckMessage(
      job_id=record.job_id,
      document_id=request.document_id,
      correlation_id=correlation_id,
      project_id=request.project_id,
      content=request.content,
      filename=request.filename,
      content_hash=request.content_hash,
      selected_paper_ids=list(request.selected_paper_ids),
      options=CitationCheckOptions(
        check_local=options.check_local,
        check_web=options.check_web,
        similarity_threshold=options.similarity_threshold,
        plagiarism_threshold=options.plagiarism_threshold,
        max_evidence_per_issue=options.max_evidence_per_issue,
        strict_mode=options.strict_mode,
      ),
    )

    try:
      await self._publisher.publish(self._settings.citation_routing_key, message)
    except PublishError as e:
      await self._jobs.fail(record.job_id, "Failed to dispatch citation check.")
      raise JobDispatchError(record.job_id, str(e)) from e

    logger.info("Dispatched citation job %s for document %s", record.job_id, request.document_id)
    return record

  async def get_job(self, job_id: str) -> JobRecord:
    return await self._jobs.require_job(job_id, _KIND)

  async def latest_for_document(self, document_id: str) -> JobRecord | None:
    return await self._jobs.latest_for_target(_KIND, document_id)

  async def list_for_project(self, project_id: str) -> list[JobRecord]:
    return await self._jobs.list_for_project(_KIND, project_id)

  async def cancel(self, job_id: str) -> JobRecord:
    """Fail the job and end any live stream with an error event."""
    record = await self._jobs.cancel(job_id, _KIND)
    self._listeners.dispatch_error(job_id, CANCELLED_MESSAGE)
    return record

  async def set_issue_resolved(self, issue_id: str, resolved: bool) -> IssueRecord:
    return await self._jobs.set_issue_resolved(issue_id, resolved)

  async def open_stream(self, job_id: str) -> StreamSession:
    """Build a stream session for a job, raising JobNotFoundError for unknown ids."""
    session = StreamSession(
      job_id,
      jobs=self._jobs,
      listeners=self._listeners,
      keep_alive_seconds=self._settings.sse_keep_alive_seconds,
      timeout_seconds=self._settings.sse_session_timeout_seconds,
      max_pending=self._settings.sse_max_pending_events,
      job_kind=_KIND,
    )
    await session.open()
    return session
