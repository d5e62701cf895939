import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_gap_analysis_service
from app.api.models import GapAnalysisRequest, GapAnalysisResponse
from app.jobs.models import JobRecord
from app.services.gap_analysis import GapAnalysisService, gap_analysis_status

router = APIRouter()
logger = logging.getLogger("app.api.routes.gap_analysis")


def _response(record: JobRecord) -> GapAnalysisResponse:
  return GapAnalysisResponse.from_record(record, gap_analysis_status(record))


@router.post("", response_model=GapAnalysisResponse, status_code=status.HTTP_201_CREATED)
async def initiate_gap_analysis(request: GapAnalysisRequest, service: GapAnalysisService = Depends(get_gap_analysis_service)) -> GapAnalysisResponse:  # noqa: B008
  """Start gap analysis for a paper; 409 until the paper has been extracted."""
  logger.info("Received gap analysis request for paper %s", request.paper_id)
  return _response(await service.initiate(request))


@router.get("/paper/{paper_id}", response_model=list[GapAnalysisResponse])
async def list_for_paper(paper_id: str, service: GapAnalysisService = Depends(get_gap_analysis_service)) -> list[GapAnalysisResponse]:  # noqa: B008
  return [_response(record) for record in await service.list_for_paper(paper_id)]


@router.get("/paper/{paper_id}/latest", response_model=GapAnalysisResponse)
async def latest_for_paper(paper_id: str, service: GapAnalysisService = Depends(get_gap_analysis_service)) -> GapAnalysisResponse:  # noqa: B008
  record = await service.latest_for_paper(paper_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No gap analysis found for this paper.")
  return _response(record)


@router.get("/{job_id}", response_model=GapAnalysisResponse)
async def get_gap_analysis(job_id: str, service: GapAnalysisService = Depends(get_gap_analysis_service)) -> GapAnalysisResponse:  # noqa: B008
  return _response(await service.get(job_id))


@router.post("/{job_id}/retry", response_model=GapAnalysisResponse)
async def retry_gap_analysis(job_id: str, service: GapAnalysisService = Depends(get_gap_analysis_service)) -> GapAnalysisResponse:  # noqa: B008
  """Start a fresh analysis for a failed one."""
  return _response(await service.retry(job_id))
