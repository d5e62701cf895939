"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_job_id() -> str:
  """Return a new job identifier."""
  return str(uuid.uuid4())


def generate_issue_id() -> str:
  """Return a new citation issue identifier."""
  return str(uuid.uuid4())


def generate_correlation_id(prefix: str) -> str:
  """Return a broker correlation id tagged with the publishing feature."""
  return f"{prefix}-{uuid.uuid4().hex}"


def normalize_uuid(raw: str) -> str:
  """Return the canonical string form of a UUID, raising ValueError when malformed."""
  return str(uuid.UUID(str(raw)))
