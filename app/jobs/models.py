"""Domain models for asynchronous background jobs and their findings."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

JobStatus = Literal["QUEUED", "RUNNING", "DONE", "ERROR"]
JobKind = Literal["citation_check", "extraction", "gap_analysis"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"DONE", "ERROR"})
KNOWN_STATUSES: frozenset[str] = frozenset({"QUEUED", "RUNNING", "DONE", "ERROR"})

# Status may only move forward along this ranking.
STATUS_RANK: dict[str, int] = {"QUEUED": 0, "RUNNING": 1, "DONE": 2, "ERROR": 2}


def is_terminal(status: str) -> bool:
  """Return True when a job in this status accepts no further updates."""
  return status in TERMINAL_STATUSES


def forward_only(current_status: str, current_progress: int, status: str | None, progress: int | None) -> tuple[str | None, int | None]:
  """Merge an update into the stored state without moving status or progress backwards."""
  if status is not None and STATUS_RANK.get(status, 0) < STATUS_RANK.get(current_status, 0):
    status = current_status
  if progress is not None and progress < current_progress:
    progress = current_progress
  return status, progress


@dataclass
class Suggestion:
  """A candidate remediation for a citation issue (local paper or web hit)."""

  kind: str
  score: float | None = None
  paper_id: str | None = None
  url: str | None = None
  bibtex: str | None = None
  title: str | None = None
  authors: list[str] = field(default_factory=list)
  year: int | None = None
  description: str | None = None


@dataclass
class Evidence:
  """Matched source text backing an issue."""

  evidence_id: str | None = None
  source: dict[str, Any] | None = None
  matched_text: str | None = None
  similarity: float | None = None
  support_score: float | None = None
  extracted_context: str | None = None


@dataclass
class IssueRecord:
  """One problem found while checking a document's citations."""

  issue_id: str
  job_id: str
  issue_type: str
  severity: str
  message: str
  created_at: str
  citation_text: str | None = None
  position: int | None = None
  length: int | None = None
  line_start: int | None = None
  line_end: int | None = None
  cited_keys: list[str] = field(default_factory=list)
  suggestions: list[Suggestion] = field(default_factory=list)
  evidence: list[Evidence] = field(default_factory=list)
  resolved: bool = False

  def as_dict(self) -> dict[str, Any]:
    return asdict(self)


@dataclass
class JobRecord:
  """Represents a background job tracked by the job registry."""

  job_id: str
  job_kind: JobKind
  target_id: str
  status: JobStatus
  created_at: str
  updated_at: str
  project_id: str | None = None
  step: str | None = None
  progress: int = 0
  message: str | None = None
  request: dict[str, Any] = field(default_factory=dict)
  correlation_id: str | None = None
  content_hash: str | None = None
  summary: dict[str, Any] | None = None
  issues: list[IssueRecord] = field(default_factory=list)
  completed_at: str | None = None

  @property
  def is_terminal(self) -> bool:
    return is_terminal(self.status)
