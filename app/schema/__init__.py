"""ORM tables for persisted jobs."""

from .jobs import Job, JobIssue

__all__ = ["Job", "JobIssue"]
