from app.jobs.models import Evidence, IssueRecord, Suggestion
from app.schema.jobs import Job
from app.storage.postgres_jobs_repo import _issue_from_row, _issue_to_row, _job_from_row


def _issue() -> IssueRecord:
  return IssueRecord(
    issue_id="issue-1",
    job_id="job-1",
    issue_type="missing-citation",
    severity="HIGH",
    message="Claim has no supporting reference",
    created_at="2024-05-01T10:00:00Z",
    citation_text="\\cite{smith2020}",
    position=120,
    length=16,
    line_start=4,
    line_end=4,
    cited_keys=["smith2020"],
    suggestions=[Suggestion(kind="local", score=0.91, paper_id="paper-9", title="Graph Nets", authors=["A. Smith"], year=2020)],
    evidence=[Evidence(evidence_id="ev-1", source={"paperId": "paper-9"}, matched_text="graph networks", similarity=0.88)],
  )


def test_issue_row_keeps_nested_findings() -> None:
  row = _issue_to_row(_issue())

  assert row.cited_keys_json == ["smith2020"]
  assert row.suggestions_json[0]["paper_id"] == "paper-9"
  assert row.evidence_json[0]["source"] == {"paperId": "paper-9"}

  restored = _issue_from_row(row)
  assert restored.suggestions[0] == _issue().suggestions[0]
  assert restored.evidence[0].similarity == 0.88
  assert restored.resolved is False


def test_job_row_maps_to_record() -> None:
  row = Job(
    job_id="job-1",
    job_kind="citation_check",
    target_id="doc-1",
    project_id="proj-1",
    status="RUNNING",
    step="Matching",
    progress=None,
    message=None,
    request_json=None,
    summary_json={"total": 3},
    correlation_id="citation-abc",
    content_hash="sha256:1",
    created_at="2024-05-01T10:00:00Z",
    updated_at="2024-05-01T10:01:00Z",
    completed_at=None,
  )

  record = _job_from_row(row, [_issue_to_row(_issue())])

  assert record.target_id == "doc-1"
  assert record.progress == 0
  assert record.request == {}
  assert record.summary == {"total": 3}
  assert [issue.issue_id for issue in record.issues] == ["issue-1"]
  assert not record.is_terminal
