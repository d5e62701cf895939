from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator
from pydantic.alias_generators import to_camel

from app.jobs.dispatch import BatchAction, BatchResult
from app.jobs.models import Evidence, IssueRecord, JobRecord, JobStatus, Suggestion
from app.utils.ids import normalize_uuid


class CamelModel(BaseModel):
  """Base model exchanging camelCase JSON with the web client."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CitationCheckOptions(CamelModel):
  check_local: bool = True
  check_web: bool = True
  similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
  plagiarism_threshold: float = Field(default=0.92, ge=0.0, le=1.0)
  max_evidence_per_issue: int = Field(default=5, ge=1, le=50)
  strict_mode: bool = True


class CitationCheckRequest(CamelModel):
  """Start a citation check for one LaTeX document."""

  document_id: StrictStr = Field(min_length=1, description="Document whose citations are checked.")
  project_id: StrictStr | None = Field(default=None, description="Project the document belongs to.")
  selected_paper_ids: list[StrictStr] = Field(default_factory=list, description="Library papers to check against.")
  content: StrictStr | None = Field(default=None, description="LaTeX source to check.")
  filename: StrictStr | None = None
  content_hash: StrictStr | None = Field(default=None, description="Hash of the content; unchanged content reuses the last finished check.")
  force_recheck: bool = False
  options: CitationCheckOptions = Field(default_factory=CitationCheckOptions)
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class SuggestionResponse(CamelModel):
  kind: str
  score: float | None = None
  paper_id: str | None = None
  url: str | None = None
  bibtex: str | None = None
  title: str | None = None
  authors: list[str] = Field(default_factory=list)
  year: int | None = None
  description: str | None = None

  @classmethod
  def from_suggestion(cls, item: Suggestion) -> SuggestionResponse:
    return cls.model_validate(item, from_attributes=True)


class EvidenceResponse(CamelModel):
  evidence_id: str | None = None
  source: dict[str, Any] | None = None
  matched_text: str | None = None
  similarity: float | None = None
  support_score: float | None = None
  extracted_context: str | None = None

  @classmethod
  def from_evidence(cls, item: Evidence) -> EvidenceResponse:
    return cls.model_validate(item, from_attributes=True)


class IssueResponse(CamelModel):
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
  cited_keys: list[str] = Field(default_factory=list)
  suggestions: list[SuggestionResponse] = Field(default_factory=list)
  evidence: list[EvidenceResponse] = Field(default_factory=list)
  resolved: bool = False

  @classmethod
  def from_record(cls, issue: IssueRecord) -> IssueResponse:
    return cls(
      issue_id=issue.issue_id,
      job_id=issue.job_id,
      issue_type=issue.issue_type,
      severity=issue.severity,
      message=issue.message,
      created_at=issue.created_at,
      citation_text=issue.citation_text,
      position=issue.position,
      length=issue.length,
      line_start=issue.line_start,
      line_end=issue.line_end,
      cited_keys=list(issue.cited_keys),
      suggestions=[SuggestionResponse.from_suggestion(item) for item in issue.suggestions],
      evidence=[EvidenceResponse.from_evidence(item) for item in issue.evidence],
      resolved=issue.resolved,
    )


class CitationJobResponse(CamelModel):
  """Current state of a citation-check job, including findings so far."""

  job_id: str
  document_id: str
  project_id: str | None = None
  status: JobStatus
  step: str | None = None
  progress: int = 0
  message: str | None = None
  content_hash: str | None = None
  summary: dict[str, Any] | None = None
  issues: list[IssueResponse] = Field(default_factory=list)
  created_at: str
  updated_at: str
  completed_at: str | None = None

  @classmethod
  def from_record(cls, record: JobRecord) -> CitationJobResponse:
    return cls(
      job_id=record.job_id,
      document_id=record.target_id,
      project_id=record.project_id,
      status=record.status,
      step=record.step,
      progress=record.progress,
      message=record.message,
      content_hash=record.content_hash,
      summary=record.summary,
      issues=[IssueResponse.from_record(issue) for issue in record.issues],
      created_at=record.created_at,
      updated_at=record.updated_at,
      completed_at=record.completed_at,
    )


class IssueResolveRequest(CamelModel):
  resolved: bool = True


class ExtractionTriggerRequest(CamelModel):
  """Options for extracting one paper's PDF."""

  pdf_url: StrictStr | None = None
  extract_text: bool = True
  extract_figures: bool = True
  extract_tables: bool = True
  extract_equations: bool = True
  extract_code: bool = True
  extract_references: bool = True
  use_ocr: bool = True
  async_processing: bool = True


class ExtractionResponse(CamelModel):
  job_id: str | None
  paper_id: str
  status: str
  message: str | None = None


class ExtractionStatusResponse(CamelModel):
  paper_id: str
  status: str | None
  extracted: bool
  job_id: str | None = None
  step: str | None = None
  progress: int | None = None


class BatchExtractionRequest(CamelModel):
  """Trigger extraction for every paper referenced by a LaTeX document."""

  paper_ids: list[StrictStr] = Field(min_length=1, description="Paper UUIDs to extract.")
  async_processing: bool | None = Field(default=None, description="Process asynchronously (defaults to true).")

  @field_validator("paper_ids")
  @classmethod
  def _canonical_uuids(cls, value: list[str]) -> list[str]:
    # Reject malformed ids up front, like the rest of the paper API.
    return [normalize_uuid(item) for item in value]


class BatchItemResponse(CamelModel):
  paper_id: str
  action: BatchAction
  status: str | None = None
  job_id: str | None = None
  message: str | None = None


class BatchExtractionResponse(CamelModel):
  message: str
  total: int
  triggered: int
  skipped_already_extracted: int
  skipped_in_progress: int
  errors: int
  results: list[BatchItemResponse]

  @classmethod
  def from_result(cls, result: BatchResult) -> BatchExtractionResponse:
    return cls(
      message=result.summary,
      total=result.total,
      triggered=result.triggered,
      skipped_already_extracted=result.skipped_done,
      skipped_in_progress=result.skipped_in_progress,
      errors=result.errors,
      results=[BatchItemResponse(paper_id=item.target_id, action=item.action, status=item.status, job_id=item.job_id, message=item.message) for item in result.results],
    )


class GapAnalysisRequest(CamelModel):
  """Start a research-gap analysis for a paper that has been extracted."""

  paper_id: StrictStr = Field(min_length=1, description="Paper to analyse; it needs a finished extraction.")
  config: dict[str, Any] = Field(default_factory=dict, description="Analyzer settings passed through to the worker.")
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class GapAnalysisResponse(CamelModel):
  job_id: str
  paper_id: str
  paper_extraction_id: str | None = None
  retry_of: str | None = None
  status: str
  step: str | None = None
  progress: int = 0
  message: str | None = None
  config: dict[str, Any] = Field(default_factory=dict)
  summary: dict[str, Any] | None = None
  created_at: str
  updated_at: str
  completed_at: str | None = None

  @classmethod
  def from_record(cls, record: JobRecord, status: str) -> GapAnalysisResponse:
    return cls(
      job_id=record.job_id,
      paper_id=record.target_id,
      paper_extraction_id=record.request.get("paperExtractionId"),
      retry_of=record.request.get("retryOf"),
      status=status,
      step=record.step,
      progress=record.progress,
      message=record.message,
      config=dict(record.request.get("config") or {}),
      summary=record.summary,
      created_at=record.created_at,
      updated_at=record.updated_at,
      completed_at=record.completed_at,
    )


class ChatCommandRequest(CamelModel):
  message: StrictStr = Field(min_length=1, max_length=4000, description="Natural-language instruction from the user.")


class ChatCommandResponse(CamelModel):
  command_type: str
  parameters: dict[str, Any] = Field(default_factory=dict)
  response: str
  original_query: str
  timestamp: str
