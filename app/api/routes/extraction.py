import logging

from fastapi import APIRouter, Body, Depends, status

from app.api.deps import get_extraction_service
from app.api.models import BatchExtractionRequest, BatchExtractionResponse, ExtractionResponse, ExtractionStatusResponse, ExtractionTriggerRequest
from app.services.extraction import ExtractionService, extraction_status

router = APIRouter()
logger = logging.getLogger("app.api.routes.extraction")


@router.post("/latex/context/extraction/trigger", response_model=BatchExtractionResponse)
async def trigger_batch_extraction(request: BatchExtractionRequest, service: ExtractionService = Depends(get_extraction_service)) -> BatchExtractionResponse:  # noqa: B008
  """Trigger extraction for each paper, skipping those extracted or in progress.

  Always answers 200; failures are reported per paper.
  """
  result = await service.trigger_batch(request.paper_ids, async_processing=request.async_processing)
  return BatchExtractionResponse.from_result(result)


@router.post("/extraction/papers/{paper_id}", response_model=ExtractionResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_extraction(
  paper_id: str,
  options: ExtractionTriggerRequest | None = Body(default=None),  # noqa: B008
  service: ExtractionService = Depends(get_extraction_service),  # noqa: B008
) -> ExtractionResponse:
  record = await service.trigger_extraction(paper_id, options)
  return ExtractionResponse(job_id=record.job_id, paper_id=paper_id, status=extraction_status(record) or record.status, message="Extraction started")


@router.get("/extraction/papers/{paper_id}/status", response_model=ExtractionStatusResponse)
async def get_extraction_status(paper_id: str, service: ExtractionService = Depends(get_extraction_service)) -> ExtractionStatusResponse:  # noqa: B008
  record = await service.latest_job(paper_id)
  if record is None:
    return ExtractionStatusResponse(paper_id=paper_id, status=None, extracted=False)
  return ExtractionStatusResponse(paper_id=paper_id, status=extraction_status(record), extracted=record.status == "DONE", job_id=record.job_id, step=record.step, progress=record.progress)
