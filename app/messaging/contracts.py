"""Wire contracts exchanged with the background workers."""

from __future__ import annotations

from typing import Any

import msgspec


class ExtractionRequestMessage(msgspec.Struct, rename="camel", kw_only=True):
  """Asks the extractor to process one paper's PDF."""

  job_id: str
  paper_id: str
  correlation_id: str
  pdf_url: str | None = None
  extract_text: bool = True
  extract_figures: bool = True
  extract_tables: bool = True
  extract_equations: bool = True
  extract_code: bool = True
  extract_references: bool = True
  use_ocr: bool = True
  async_processing: bool = True


class GapAnalysisRequestMessage(msgspec.Struct, rename="camel", kw_only=True):
  """Asks the gap analyzer to look for research gaps in one extracted paper."""

  job_id: str
  paper_id: str
  paper_extraction_id: str
  correlation_id: str
  request_id: str
  config: dict[str, Any] = msgspec.field(default_factory=dict)


class CitationCheckOptions(msgspec.Struct, rename="camel", kw_only=True):
  check_local: bool = True
  check_web: bool = True
  similarity_threshold: float = 0.85
  plagiarism_threshold: float = 0.92
  max_evidence_per_issue: int = 5
  strict_mode: bool = True


class CitationCheckMessage(msgspec.Struct, rename="camel", kw_only=True):
  """Asks the citation worker to check one LaTeX document."""

  job_id: str
  document_id: str
  correlation_id: str
  project_id: str | None = None
  content: str | None = None
  filename: str | None = None
  content_hash: str | None = None
  selected_paper_ids: list[str] = msgspec.field(default_factory=list)
  options: CitationCheckOptions = msgspec.field(default_factory=CitationCheckOptions)


class SuggestionMessage(msgspec.Struct, rename="camel", kw_only=True):
  kind: str
  score: float | None = None
  paper_id: str | None = None
  url: str | None = None
  bibtex: str | None = None
  title: str | None = None
  authors: list[str] = msgspec.field(default_factory=list)
  year: int | None = None
  description: str | None = None


class EvidenceMessage(msgspec.Struct, rename="camel", kw_only=True):
  evidence_id: str | None = None
  source: dict[str, Any] = msgspec.field(default_factory=dict)
  matched_text: str | None = None
  similarity: float | None = None
  support_score: float | None = None
  extracted_context: str | None = None


class IssueMessage(msgspec.Struct, rename="camel", kw_only=True):
  """One finding reported by a worker for a running job."""

  issue_type: str
  severity: str
  message: str
  issue_id: str | None = None
  citation_text: str | None = None
  position: int | None = None
  length: int | None = None
  line_start: int | None = None
  line_end: int | None = None
  cited_keys: list[str] = msgspec.field(default_factory=list)
  suggestions: list[SuggestionMessage] = msgspec.field(default_factory=list)
  evidence: list[EvidenceMessage] = msgspec.field(default_factory=list)


class JobProgressMessage(msgspec.Struct, rename="camel", kw_only=True):
  """Progress callback sent by a worker for one job."""

  job_id: str
  status: str
  step: str | None = None
  progress_percent: int | None = None
  paper_id: str | None = None
  document_id: str | None = None
  correlation_id: str | None = None
  message: str | None = None
  summary: dict[str, Any] | None = None
  issues: list[IssueMessage] = msgspec.field(default_factory=list)
