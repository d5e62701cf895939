from __future__ import annotations

from sqlalchemy import JSON, BigInteger, Boolean, ForeignKey, Identity, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

_JSON = JSON().with_variant(JSONB(), "postgresql")
_UTC_NOW = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class Job(Base):
  __tablename__ = "jobs"
  __table_args__ = (Index("ix_jobs_kind_target_created", "job_kind", "target_id", "created_at", "seq"),)

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  # created_at has one-second resolution; seq orders jobs created in the same second.
  seq: Mapped[int] = mapped_column(BigInteger, Identity(), nullable=False, unique=True)
  job_kind: Mapped[str] = mapped_column(String, nullable=False, index=True)
  target_id: Mapped[str] = mapped_column(String, nullable=False)
  project_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  step: Mapped[str | None] = mapped_column(Text, nullable=True)
  progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  message: Mapped[str | None] = mapped_column(Text, nullable=True)
  request_json: Mapped[dict] = mapped_column(_JSON, nullable=False)
  summary_json: Mapped[dict | None] = mapped_column(_JSON, nullable=True)
  correlation_id: Mapped[str | None] = mapped_column(String, nullable=True)
  content_hash: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)


class JobIssue(Base):
  __tablename__ = "job_issues"

  issue_id: Mapped[str] = mapped_column(String, primary_key=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("jobs.job_id", ondelete="CASCADE"), nullable=False, index=True)
  issue_type: Mapped[str] = mapped_column(String, nullable=False)
  severity: Mapped[str] = mapped_column(String, nullable=False)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  citation_text: Mapped[str | None] = mapped_column(Text, nullable=True)
  position: Mapped[int | None] = mapped_column(Integer, nullable=True)
  length: Mapped[int | None] = mapped_column(Integer, nullable=True)
  line_start: Mapped[int | None] = mapped_column(Integer, nullable=True)
  line_end: Mapped[int | None] = mapped_column(Integer, nullable=True)
  cited_keys_json: Mapped[list] = mapped_column(_JSON, nullable=False)
  suggestions_json: Mapped[list] = mapped_column(_JSON, nullable=False)
  evidence_json: Mapped[list] = mapped_column(_JSON, nullable=False)
  resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)
