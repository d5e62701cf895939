"""Fan-out of one trigger operation over a batch of targets."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal, Protocol

logger = logging.getLogger(__name__)

BatchAction = Literal["SKIPPED_ALREADY_DONE", "SKIPPED_IN_PROGRESS", "TRIGGERED", "ERROR"]

IN_FLIGHT_STATUSES = frozenset({"QUEUED", "RUNNING", "PENDING", "PROCESSING"})


@dataclass(frozen=True)
class TriggerOutcome:
  """What `start` reports for a target it accepted."""

  job_id: str | None
  status: str
  message: str | None = None


class BatchOperation(Protocol):
  """Per-target checks and trigger used by `dispatch_batch`."""

  async def is_completed(self, target_id: str) -> bool:
    """Return True when the target already has a finished result."""

  async def in_flight_status(self, target_id: str) -> str | None:
    """Return the current status when work for the target is underway."""

  async def start(self, target_id: str) -> TriggerOutcome:
    """Begin work for the target."""


@dataclass(frozen=True)
class BatchItemResult:
  target_id: str
  action: BatchAction
  status: str | None = None
  job_id: str | None = None
  message: str | None = None


@dataclass
class BatchResult:
  """Aggregate of one batch run; `results` keeps the input order."""

  total: int = 0
  triggered: int = 0
  skipped_done: int = 0
  skipped_in_progress: int = 0
  errors: int = 0
  results: list[BatchItemResult] = field(default_factory=list)

  @property
  def summary(self) -> str:
    return f"Batch processed: {self.total} total, {self.triggered} triggered, {self.skipped_done} skipped (done), {self.skipped_in_progress} in-progress, {self.errors} errors"

  def add(self, item: BatchItemResult) -> None:
    self.results.append(item)
    self.total += 1
    if item.action == "TRIGGERED":
      self.triggered += 1
    elif item.action == "SKIPPED_ALREADY_DONE":
      self.skipped_done += 1
    elif item.action == "SKIPPED_IN_PROGRESS":
      self.skipped_in_progress += 1
    else:
      self.errors += 1


def is_in_flight(status: str | None) -> bool:
  return status is not None and status.strip().upper() in IN_FLIGHT_STATUSES


async def _dispatch_one(target_id: str, operation: BatchOperation) -> BatchItemResult:
  try:
    if await operation.is_completed(target_id):
      return BatchItemResult(target_id=target_id, action="SKIPPED_ALREADY_DONE", status="COMPLETED", message="Already done")

    status = await operation.in_flight_status(target_id)
    if is_in_flight(status):
      return BatchItemResult(target_id=target_id, action="SKIPPED_IN_PROGRESS", status=status, message="Already in progress")

    outcome = await operation.start(target_id)
    return BatchItemResult(target_id=target_id, action="TRIGGERED", status=outcome.status, job_id=outcome.job_id, message=outcome.message)
  except Exception as exc:  # noqa: BLE001
    # One bad target must not abort the rest of the batch.
    logger.warning("Batch trigger failed for %s: %s", target_id, exc, exc_info=True)
    return BatchItemResult(target_id=target_id, action="ERROR", status="FAILED", message=str(exc) or exc.__class__.__name__)


async def dispatch_batch(target_ids: Iterable[str], operation: BatchOperation) -> BatchResult:
  """Check and trigger each target independently, in order."""
  result = BatchResult()
  for target_id in target_ids:
    result.add(await _dispatch_one(target_id, operation))
  logger.info(result.summary)
  return result
