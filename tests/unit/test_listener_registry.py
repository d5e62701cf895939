"""Routing of live job events to the registered listener."""

from __future__ import annotations

import threading
from typing import Any

from app.jobs.listeners import ListenerRegistry
from app.jobs.models import IssueRecord


class RecordingListener:
  def __init__(self) -> None:
    self.events: list[tuple[str, Any]] = []

  def on_status(self, job_id: str, status: str, step: str | None, progress: int) -> None:
    self.events.append(("status", (status, step, progress)))

  def on_issue(self, job_id: str, issue: IssueRecord) -> None:
    self.events.append(("issue", issue.issue_id))

  def on_summary(self, job_id: str, summary: dict[str, Any]) -> None:
    self.events.append(("summary", summary))

  def on_error(self, job_id: str, message: str) -> None:
    self.events.append(("error", message))

  def on_complete(self, job_id: str) -> None:
    self.events.append(("complete", None))


class ExplodingListener(RecordingListener):
  def on_status(self, job_id: str, status: str, step: str | None, progress: int) -> None:
    raise RuntimeError("client went away")

  def on_complete(self, job_id: str) -> None:
    raise RuntimeError("client went away")


def _issue() -> IssueRecord:
  return IssueRecord(issue_id="issue-1", job_id="job-1", issue_type="missing-citation", severity="HIGH", message="Claim lacks a citation.", created_at="2026-01-01T00:00:00Z")


def test_events_reach_registered_listener_in_order() -> None:
  registry = ListenerRegistry()
  listener = RecordingListener()
  registry.register("job-1", listener)

  registry.dispatch_status("job-1", "RUNNING", "Parsing", 10)
  registry.dispatch_issue("job-1", _issue())
  registry.dispatch_summary("job-1", {"total": 1})
  registry.dispatch_complete("job-1")

  assert [name for name, _ in listener.events] == ["status", "issue", "summary", "complete"]
  assert listener.events[0][1] == ("RUNNING", "Parsing", 10)


def test_events_without_listener_are_dropped() -> None:
  registry = ListenerRegistry()
  assert registry.dispatch_status("job-1", "RUNNING", None, 5) is False
  assert registry.dispatch_complete("job-1") is False


def test_superseded_listener_receives_nothing_further() -> None:
  registry = ListenerRegistry()
  first = RecordingListener()
  second = RecordingListener()
  registry.register("job-1", first)
  registry.dispatch_status("job-1", "RUNNING", None, 10)
  registry.register("job-1", second)

  registry.dispatch_status("job-1", "RUNNING", None, 20)

  assert len(first.events) == 1
  assert second.events == [("status", ("RUNNING", None, 20))]


def test_unregister_without_registration_is_noop() -> None:
  registry = ListenerRegistry()
  assert registry.unregister("missing") is False
  assert registry.unregister("missing", token=42) is False
  assert len(registry) == 0


def test_stale_token_cannot_remove_successor() -> None:
  registry = ListenerRegistry()
  old = registry.register("job-1", RecordingListener())
  new = registry.register("job-1", RecordingListener())

  assert registry.unregister("job-1", old.token) is False
  assert registry.get("job-1") == new
  assert registry.unregister("job-1", new.token) is True
  assert not registry.is_registered("job-1")


def test_terminal_event_is_delivered_once_and_clears_registration() -> None:
  registry = ListenerRegistry()
  listener = RecordingListener()
  registry.register("job-1", listener)

  assert registry.dispatch_error("job-1", "boom") is True
  assert registry.dispatch_complete("job-1") is False
  assert registry.dispatch_error("job-1", "again") is False

  assert listener.events == [("error", "boom")]
  assert len(registry) == 0


def test_listener_failure_does_not_propagate() -> None:
  registry = ListenerRegistry()
  registry.register("job-1", ExplodingListener())

  assert registry.dispatch_status("job-1", "RUNNING", None, 1) is True
  # Terminal dispatch still clears the entry when the listener raises.
  assert registry.dispatch_complete("job-1") is True
  assert len(registry) == 0


def test_dispatch_from_other_threads() -> None:
  registry = ListenerRegistry()
  listener = RecordingListener()
  registry.register("job-1", listener)

  threads = [threading.Thread(target=registry.dispatch_status, args=("job-1", "RUNNING", None, i)) for i in range(20)]
  for thread in threads:
    thread.start()
  for thread in threads:
    thread.join()

  assert len(listener.events) == 20
