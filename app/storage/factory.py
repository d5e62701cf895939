import logging

from app.config import Settings
from app.storage.jobs_repo import JobsRepository
from app.storage.memory_jobs_repo import InMemoryJobsRepository
from app.storage.postgres_jobs_repo import PostgresJobsRepository

logger = logging.getLogger(__name__)


def build_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the jobs repository for the configured environment."""

  if settings.pg_dsn:
    return PostgresJobsRepository()

  # Production must not silently lose job state on restart.
  if settings.environment in {"production", "prod"}:
    raise ValueError("SCHOLAR_PG_DSN must be set to enable Postgres persistence in production.")

  logger.warning("SCHOLAR_PG_DSN is not set; job state is kept in process memory.")
  return InMemoryJobsRepository()
