from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status

from app.api.deps import get_worker_event_service
from app.api.msgspec_utils import decode_msgspec_request
from app.core.security import require_task_secret
from app.messaging.contracts import JobProgressMessage
from app.services.worker_events import WorkerEventService

router = APIRouter(dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


@router.post("/jobs/events", status_code=status.HTTP_200_OK)
async def receive_job_event(request: Request, service: WorkerEventService = Depends(get_worker_event_service)) -> dict[str, str | int | None]:  # noqa: B008
  """Apply a progress callback from the extraction or citation worker."""
  event = await decode_msgspec_request(request, JobProgressMessage)
  logger.info("Received %s event for job %s", event.status, event.job_id)
  record = await service.apply(event)
  # Workers should not retry ignored updates, so this is always a 200.
  if record is None:
    return {"status": "ignored", "jobStatus": None, "progress": None}
  return {"status": "applied", "jobStatus": record.status, "progress": record.progress}
