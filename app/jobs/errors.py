"""Domain errors raised by the job registry and job-starting services."""

from __future__ import annotations


class JobError(Exception):
  """Base class for job lifecycle errors."""


class JobNotFoundError(JobError):
  """Raised when a job id is unknown."""

  def __init__(self, job_id: str) -> None:
    super().__init__(f"Job {job_id} not found.")
    self.job_id = job_id


class IssueNotFoundError(JobError):
  """Raised when a citation issue id is unknown."""

  def __init__(self, issue_id: str) -> None:
    super().__init__(f"Issue {issue_id} not found.")
    self.issue_id = issue_id


class JobAlreadyFinalizedError(JobError):
  """Raised when an operation targets a job already in DONE or ERROR."""

  def __init__(self, job_id: str, status: str) -> None:
    super().__init__(f"Job {job_id} is already {status} and cannot be changed.")
    self.job_id = job_id
    self.status = status


class JobDispatchError(JobError):
  """Raised when a job was created but could not be handed to its worker."""

  def __init__(self, job_id: str, reason: str) -> None:
    super().__init__(f"Failed to dispatch job {job_id}: {reason}")
    self.job_id = job_id
    self.reason = reason


class PaperNotExtractedError(JobError):
  """Raised when a paper-level analysis needs a finished extraction first."""

  def __init__(self, paper_id: str) -> None:
    super().__init__(f"Paper {paper_id} has not been extracted yet.")
    self.paper_id = paper_id


class JobNotRetryableError(JobError):
  """Raised when retrying a job that has not failed."""

  def __init__(self, job_id: str, status: str) -> None:
    super().__init__(f"Job {job_id} is {status}; only failed jobs can be retried.")
    self.job_id = job_id
    self.status = status
