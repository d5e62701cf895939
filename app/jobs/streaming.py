"""Server-Sent Events session that mirrors one job's progress to one client."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from app.jobs.listeners import ListenerRegistration, ListenerRegistry
from app.jobs.models import IssueRecord, JobKind, JobRecord
from app.jobs.registry import JobRegistry

logger = logging.getLogger(__name__)

KEEP_ALIVE_FRAME = ": keep-alive\n\n"
STARTED_STEP = "Initializing citation check..."
COMPLETED_STEP = "Citation check completed"
SSE_HEADERS = {"Cache-Control": "no-cache, no-transform", "X-Accel-Buffering": "no"}

# Room for the status/summary/terminal replay of a finished job.
_MIN_PENDING = 4


def format_event(event_type: str, data: dict[str, Any]) -> str:
  """Render one named SSE event whose data line carries {"type", "data"}."""
  body = json.dumps({"type": event_type, "data": data}, ensure_ascii=False, separators=(",", ":"), default=str)
  return f"event: {event_type}\ndata: {body}\n\n"


def status_payload(status: str, step: str | None, progress: int) -> dict[str, Any]:
  return {"status": status, "step": step, "progressPct": progress}


def complete_payload() -> dict[str, Any]:
  return status_payload("DONE", COMPLETED_STEP, 100)


@dataclass(frozen=True)
class _Frame:
  text: str
  terminal: bool = False


_CLOSED = object()


class _QueueListener:
  """Listener that renders each job event into a frame on the owning session."""

  def __init__(self, session: StreamSession) -> None:
    self._session = session

  def on_status(self, job_id: str, status: str, step: str | None, progress: int) -> None:
    self._session.offer(_Frame(format_event("status", status_payload(status, step, progress))))

  def on_issue(self, job_id: str, issue: IssueRecord) -> None:
    self._session.offer(_Frame(format_event("issue", {"issue": issue.as_dict()})))

  def on_summary(self, job_id: str, summary: dict[str, Any]) -> None:
    self._session.offer(_Frame(format_event("summary", {"summary": summary})))

  def on_error(self, job_id: str, message: str) -> None:
    self._session.offer(_Frame(format_event("error", {"message": message}), terminal=True))

  def on_complete(self, job_id: str) -> None:
    self._session.offer(_Frame(format_event("complete", complete_payload()), terminal=True))


class StreamSession:
  """One client's view of one job.

  Call `open()` to validate the job, then iterate `frames()`. The listener and
  the keep-alive task only exist while `frames()` is being iterated, and
  `close()` releases both on every exit path: terminal event, timeout, server
  side abort, slow client or client disconnect.
  """

  def __init__(
    self,
    job_id: str,
    *,
    jobs: JobRegistry,
    listeners: ListenerRegistry,
    keep_alive_seconds: float = 20.0,
    timeout_seconds: float | None = None,
    max_pending: int = 256,
    job_kind: JobKind | None = None,
  ) -> None:
    self.job_id = job_id
    self.job_kind = job_kind
    self._jobs = jobs
    self._listeners = listeners
    self._keep_alive_seconds = keep_alive_seconds
    self._timeout_seconds = timeout_seconds or None
    self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max(max_pending, _MIN_PENDING))
    self._loop: asyncio.AbstractEventLoop | None = None
    self._record: JobRecord | None = None
    self._registration: ListenerRegistration | None = None
    self._keep_alive_task: asyncio.Task[None] | None = None
    self._finished = False
    self._closed = False
    self.close_reason: str | None = None

  @property
  def closed(self) -> bool:
    return self._closed

  @property
  def registration(self) -> ListenerRegistration | None:
    return self._registration

  @property
  def keep_alive_task(self) -> asyncio.Task[None] | None:
    return self._keep_alive_task

  async def open(self) -> JobRecord:
    """Load the job, raising JobNotFoundError before any response is started."""
    self._loop = asyncio.get_running_loop()
    self._record = await self._jobs.require_job(self.job_id, self.job_kind)
    return self._record

  def offer(self, frame: _Frame) -> None:
    """Queue a frame from any thread; off-loop callers are handed to the loop."""
    loop = self._loop
    if loop is None or self._closed:
      return
    try:
      running = asyncio.get_running_loop()
    except RuntimeError:
      running = None
    if running is loop:
      self._put(frame)
    else:
      loop.call_soon_threadsafe(self._put, frame)

  def _put(self, frame: _Frame) -> None:
    if self._closed or self._finished:
      return
    try:
      self._queue.put_nowait(frame)
    except asyncio.QueueFull:
      logger.warning("Stream for job %s is not draining; dropping the client", self.job_id)
      self.close("overflow")
      return
    if frame.terminal:
      self._finished = True

  def _replay_final(self, record: JobRecord) -> None:
    self._put(_Frame(format_event("status", status_payload(record.status, record.step, record.progress))))
    if record.summary is not None:
      self._put(_Frame(format_event("summary", {"summary": record.summary})))
    if record.status == "DONE":
      self._put(_Frame(format_event("complete", complete_payload()), terminal=True))
    else:
      self._put(_Frame(format_event("error", {"message": record.message or "Job failed."}), terminal=True))

  async def _start(self) -> None:
    if self._record is None:
      await self.open()
    record = self._record
    assert record is not None

    if record.is_terminal:
      logger.info("Job %s is already %s; replaying final state", self.job_id, record.status)
      self._replay_final(record)
      return

    self._put(_Frame(format_event("status", status_payload("STARTED", STARTED_STEP, 0))))
    self._registration = self._listeners.register(self.job_id, _QueueListener(self))
    self._keep_alive_task = asyncio.create_task(self._keep_alive(), name=f"sse-keep-alive-{self.job_id}")

    # The job may have finished before the listener was in place.
    latest = await self._jobs.get_job(self.job_id)
    if latest is not None and latest.is_terminal and not self._finished:
      self._listeners.unregister(self.job_id, self._registration.token)
      self._replay_final(latest)

  async def _keep_alive(self) -> None:
    while not self._closed:
      await asyncio.sleep(self._keep_alive_seconds)
      self._put(_Frame(KEEP_ALIVE_FRAME))

  async def _next(self, deadline: float | None) -> Any:
    if deadline is None:
      return await self._queue.get()
    assert self._loop is not None
    remaining = deadline - self._loop.time()
    if remaining <= 0:
      raise TimeoutError
    return await asyncio.wait_for(self._queue.get(), remaining)

  async def frames(self) -> AsyncIterator[str]:
    """Yield SSE frames until the job ends or the session is torn down."""
    reason = "completed"
    try:
      await self._start()
      assert self._loop is not None
      deadline = None if self._timeout_seconds is None else self._loop.time() + self._timeout_seconds
      while not self._closed:
        try:
          item = await self._next(deadline)
        except TimeoutError:
          reason = "timeout"
          break
        if item is _CLOSED:
          break
        yield item.text
        if item.terminal:
          break
    except GeneratorExit:
      reason = "disconnected"
      raise
    except asyncio.CancelledError:
      reason = "cancelled"
      raise
    except Exception:
      reason = "error"
      logger.error("Stream for job %s failed", self.job_id, exc_info=True)
      raise
    finally:
      self.close(reason)

  def close(self, reason: str = "closed") -> None:
    """Release the listener and keep-alive task; safe to call repeatedly."""
    if self._closed:
      return
    self._closed = True
    self.close_reason = reason

    if self._keep_alive_task is not None:
      self._keep_alive_task.cancel()
    if self._registration is not None:
      self._listeners.unregister(self.job_id, self._registration.token)

    # Wake a consumer blocked on an empty queue.
    with contextlib.suppress(asyncio.QueueFull):
      self._queue.put_nowait(_CLOSED)
    logger.info("Stream for job %s closed (%s)", self.job_id, reason)
