"""Research-gap analysis jobs for papers that have been extracted."""

from __future__ import annotations

import logging

from app.api.models import GapAnalysisRequest
from app.config import Settings
from app.jobs.errors import JobDispatchError, JobNotRetryableError, PaperNotExtractedError
from app.jobs.models import JobRecord
from app.jobs.registry import JobRegistry
from app.messaging.contracts import GapAnalysisRequestMessage
from app.messaging.interface import JobPublisher, PublishError
from app.services.extraction import ExtractionService, extraction_status
from app.utils.ids import generate_correlation_id

logger = logging.getLogger(__name__)

_KIND = "gap_analysis"


def gap_analysis_status(record: JobRecord) -> str:
  # Gap analyses report the same status names as extractions.
  return extraction_status(record) or record.status


class GapAnalysisService:
  def __init__(self, *, jobs: JobRegistry, extraction: ExtractionService, publisher: JobPublisher, settings: Settings) -> None:
    self._jobs = jobs
    self._extraction = extraction
    self._publisher = publisher
    self._settings = settings

  async def initiate(self, request: GapAnalysisRequest, *, retry_of: str | None = None) -> JobRecord:
    """Create a gap-analysis job against the paper's latest finished extraction and publish it."""
    extraction = await self._extraction.latest_job(request.paper_id)
    if extraction is None or extraction.status != "DONE":
      raise PaperNotExtractedError(request.paper_id)

    stored_request = request.model_dump(mode="json", by_alias=True) | {"paperExtractionId": extraction.job_id}
    if retry_of is not None:
      stored_request["retryOf"] = retry_of

    correlation_id = generate_correlation_id("gap")
    record = await self._jobs.create_job(_KIND, request.paper_id, request=stored_request, correlation_id=correlation_id)
    message = GapAnalysisRequestMessage(
      job_id=record.job_id,
      paper_id=request.paper_id,
      paper_extraction_id=extraction.job_id,
      correlation_id=correlation_id,
      request_id=record.job_id,
      config=dict(request.config),
    )

    try:
      await self._publisher.publish(self._settings.gap_analysis_routing_key, message)
    except PublishError as e:
      logger.error("Failed to send gap analysis request for paper %s, job %s", request.paper_id, record.job_id)
      await self._jobs.fail(record.job_id, "Failed to dispatch gap analysis.")
      raise JobDispatchError(record.job_id, str(e)) from e

    logger.info("Gap analysis request sent for paper %s, job %s", request.paper_id, record.job_id)
    return record

  async def get(self, job_id: str) -> JobRecord:
    return await self._jobs.require_job(job_id, _KIND)

  async def list_for_paper(self, paper_id: str) -> list[JobRecord]:
    return await self._jobs.list_for_target(_KIND, paper_id)

  async def latest_for_paper(self, paper_id: str) -> JobRecord | None:
    return await self._jobs.latest_for_target(_KIND, paper_id)

  async def retry(self, job_id: str) -> JobRecord:
    """Start a new analysis with the settings of a failed one; the failed job is left as is."""
    record = await self.get(job_id)
    if record.status != "ERROR":
      raise JobNotRetryableError(job_id, record.status)
    logger.info("Retrying gap analysis %s for paper %s", job_id, record.target_id)
    request = GapAnalysisRequest(paper_id=record.target_id, config=dict(record.request.get("config") or {}))
    return await self.initiate(request, retry_of=job_id)
