import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from app.api.deps import get_citation_service
from app.api.models import CitationCheckRequest, CitationJobResponse, IssueResolveRequest, IssueResponse
from app.jobs.streaming import SSE_HEADERS
from app.services.citations import CitationService

router = APIRouter()
logger = logging.getLogger("app.api.routes.citations")


@router.get("/health")
async def citations_health() -> dict[str, str]:
  return {"status": "UP", "service": "citation-check"}


@router.post("/jobs", response_model=CitationJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_citation_check(request: CitationCheckRequest, service: CitationService = Depends(get_citation_service)) -> CitationJobResponse:  # noqa: B008
  """Queue a citation check for a document and return the job to follow."""
  record = await service.start_check(request)
  return CitationJobResponse.from_record(record)


@router.get("/jobs/{job_id}", response_model=CitationJobResponse)
async def get_citation_job(job_id: str, service: CitationService = Depends(get_citation_service)) -> CitationJobResponse:  # noqa: B008
  return CitationJobResponse.from_record(await service.get_job(job_id))


@router.get("/jobs/{job_id}/events")
async def stream_citation_job(job_id: str, service: CitationService = Depends(get_citation_service)) -> StreamingResponse:  # noqa: B008
  """Stream job progress as Server-Sent Events until the job finishes."""
  session = await service.open_stream(job_id)
  return StreamingResponse(session.frames(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.delete("/jobs/{job_id}", response_model=CitationJobResponse)
async def cancel_citation_job(job_id: str, service: CitationService = Depends(get_citation_service)) -> CitationJobResponse:  # noqa: B008
  return CitationJobResponse.from_record(await service.cancel(job_id))


@router.get("/documents/{document_id}", response_model=CitationJobResponse)
async def latest_for_document(document_id: str, service: CitationService = Depends(get_citation_service)) -> CitationJobResponse:  # noqa: B008
  """Return the most recent citation check for a document."""
  record = await service.latest_for_document(document_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No citation check found for this document.")
  return CitationJobResponse.from_record(record)


@router.get("/project/{project_id}", response_model=list[CitationJobResponse])
async def list_for_project(project_id: str, service: CitationService = Depends(get_citation_service)) -> list[CitationJobResponse]:  # noqa: B008
  return [CitationJobResponse.from_record(record) for record in await service.list_for_project(project_id)]


@router.put("/issues/{issue_id}", response_model=IssueResponse)
async def update_issue(issue_id: str, payload: IssueResolveRequest, service: CitationService = Depends(get_citation_service)) -> IssueResponse:  # noqa: B008
  """Mark a citation issue resolved or reopen it."""
  return IssueResponse.from_record(await service.set_issue_resolved(issue_id, payload.resolved))
