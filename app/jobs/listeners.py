"""Process-local routing of live job events to at most one subscriber per job."""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from app.jobs.models import IssueRecord

logger = logging.getLogger(__name__)


class JobListener(Protocol):
  """Receives progress notifications for one job."""

  def on_status(self, job_id: str, status: str, step: str | None, progress: int) -> None: ...

  def on_issue(self, job_id: str, issue: IssueRecord) -> None: ...

  def on_summary(self, job_id: str, summary: dict[str, Any]) -> None: ...

  def on_error(self, job_id: str, message: str) -> None: ...

  def on_complete(self, job_id: str) -> None: ...


@dataclass(frozen=True)
class ListenerRegistration:
  """Handle returned by register(); the token identifies this exact registration."""

  job_id: str
  token: int
  listener: JobListener


class ListenerRegistry:
  """Thread-safe map of job id to the currently active listener.

  Registering replaces any previous listener for the job (last writer wins).
  Unregistering with a token only removes the entry if it still belongs to
  that registration, so a superseded session cannot evict its replacement.
  Missing entries simply drop events; the job registry stays authoritative.
  """

  def __init__(self) -> None:
    self._lock = threading.Lock()
    self._registrations: dict[str, ListenerRegistration] = {}
    self._tokens = itertools.count(1)

  def register(self, job_id: str, listener: JobListener) -> ListenerRegistration:
    with self._lock:
      registration = ListenerRegistration(job_id=job_id, token=next(self._tokens), listener=listener)
      previous = self._registrations.get(job_id)
      self._registrations[job_id] = registration

    if previous is not None:
      logger.info("Listener %s for job %s superseded by %s", previous.token, job_id, registration.token)
    return registration

  def unregister(self, job_id: str, token: int | None = None) -> bool:
    """Remove the listener for a job; returns False when there was nothing to remove."""
    with self._lock:
      current = self._registrations.get(job_id)
      if current is None:
        return False
      if token is not None and current.token != token:
        return False
      del self._registrations[job_id]
      return True

  def get(self, job_id: str) -> ListenerRegistration | None:
    with self._lock:
      return self._registrations.get(job_id)

  def is_registered(self, job_id: str) -> bool:
    return self.get(job_id) is not None

  def __len__(self) -> int:
    with self._lock:
      return len(self._registrations)

  def _invoke(self, job_id: str, event: str, call: Callable[[JobListener], None], *, terminal: bool = False) -> bool:
    registration = self.get(job_id)
    if registration is None:
      logger.debug("No listener for job %s; dropping %s event", job_id, event)
      return False

    # Call outside the lock so a listener may unregister itself.
    try:
      call(registration.listener)
    except Exception:  # noqa: BLE001
      logger.warning("Listener for job %s failed handling %s event", job_id, event, exc_info=True)
    finally:
      # Exactly one terminal event per subscriber.
      if terminal:
        self.unregister(job_id, registration.token)
    return True

  def dispatch_status(self, job_id: str, status: str, step: str | None, progress: int) -> bool:
    return self._invoke(job_id, "status", lambda listener: listener.on_status(job_id, status, step, progress))

  def dispatch_issue(self, job_id: str, issue: IssueRecord) -> bool:
    return self._invoke(job_id, "issue", lambda listener: listener.on_issue(job_id, issue))

  def dispatch_summary(self, job_id: str, summary: dict[str, Any]) -> bool:
    return self._invoke(job_id, "summary", lambda listener: listener.on_summary(job_id, summary))

  def dispatch_error(self, job_id: str, message: str) -> bool:
    return self._invoke(job_id, "error", lambda listener: listener.on_error(job_id, message), terminal=True)

  def dispatch_complete(self, job_id: str) -> bool:
    return self._invoke(job_id, "complete", lambda listener: listener.on_complete(job_id), terminal=True)
