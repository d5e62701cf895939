"""Paper extraction jobs: single triggers, status lookups and batch triggers."""

from __future__ import annotations

import logging

from app.api.models import ExtractionTriggerRequest
from app.config import Settings
from app.jobs.dispatch import BatchResult, TriggerOutcome, dispatch_batch
from app.jobs.errors import JobDispatchError
from app.jobs.models import JobRecord
from app.jobs.registry import JobRegistry
from app.messaging.contracts import ExtractionRequestMessage
from app.messaging.interface import JobPublisher, PublishError
from app.utils.ids import generate_correlation_id

logger = logging.getLogger(__name__)

_KIND = "extraction"

# Extraction status names used by the paper API.
EXTRACTION_STATUS = {"QUEUED": "PENDING", "RUNNING": "PROCESSING", "DONE": "COMPLETED", "ERROR": "FAILED"}


def extraction_status(record: JobRecord | None) -> str | None:
  if record is None:
    return None
  return EXTRACTION_STATUS.get(record.status, record.status)


class ExtractionService:
  def __init__(self, *, jobs: JobRegistry, publisher: JobPublisher, settings: Settings) -> None:
    self._jobs = jobs
    self._publisher = publisher
    self._settings = settings

  async def latest_job(self, paper_id: str) -> JobRecord | None:
    return await self._jobs.latest_for_target(_KIND, paper_id)

  async def is_paper_extracted(self, paper_id: str) -> bool:
    latest = await self.latest_job(paper_id)
    return latest is not None and latest.status == "DONE"

  async def get_extraction_status(self, paper_id: str) -> str | None:
    return extraction_status(await self.latest_job(paper_id))

  async def trigger_extraction(self, paper_id: str, options: ExtractionTriggerRequest | None = None) -> JobRecord:
    """Create an extraction job for a paper and send it to the extractor."""
    options = options or ExtractionTriggerRequest()
    correlation_id = generate_correlation_id("extraction")
    record = await self._jobs.create_job(_KIND, paper_id, request=options.model_dump(mode="json", by_alias=True), correlation_id=correlation_id)

    message = ExtractionRequestMessage(
      job_id=record.job_id,
      paper_id=paper_id,
      correlation_id=correlation_id,
      pdf_url=options.pdf_url,
      extract_text=options.extract_text,
      extract_figures=options.extract_figures,
      extract_tables=options.extract_tables,
      extract_equations=options.extract_equations,
      extract_code=options.extract_code,
      extract_references=options.extract_references,
      use_ocr=options.use_ocr,
      async_processing=options.async_processing,
    )

    try:
      await self._publisher.publish(self._settings.extraction_routing_key, message)
    except PublishError as e:
      await self._jobs.fail(record.job_id, "Failed to dispatch extraction request.")
      raise JobDispatchError(record.job_id, str(e)) from e

    logger.info("Sending extraction request for paper %s with job ID: %s", paper_id, record.job_id)
    return record

  async def trigger_batch(self, paper_ids: list[str], *, async_processing: bool | None = None) -> BatchResult:
    options = ExtractionTriggerRequest(async_processing=True if async_processing is None else async_processing)
    return await dispatch_batch(paper_ids, _ExtractionBatch(self, options))


class _ExtractionBatch:
  """Adapts ExtractionService to the batch dispatcher."""

  def __init__(self, service: ExtractionService, options: ExtractionTriggerRequest) -> None:
    self._service = service
    self._options = options

  async def is_completed(self, target_id: str) -> bool:
    return await self._service.is_paper_extracted(target_id)

  async def in_flight_status(self, target_id: str) -> str | None:
    return await self._service.get_extraction_status(target_id)

  async def start(self, target_id: str) -> TriggerOutcome:
    record = await self._service.trigger_extraction(target_id, self._options)
    return TriggerOutcome(job_id=record.job_id, status=extraction_status(record) or record.status, message="Extraction started")
