import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from app.core.database import create_tables, dispose_engine
from app.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and the jobs schema, then release the pool on shutdown."""
  settings = app.state.settings
  logger = logging.getLogger("app.core.lifespan")

  initialize_logging(settings)
  logger.info("Starting scholar project service environment=%s broker=%s", settings.environment, settings.broker_provider)

  if settings.pg_dsn:
    logger.info("Using Postgres job store at %s", _redact_dsn(settings.pg_dsn))
    # Fail fast when the database is unreachable or the schema cannot be created.
    await create_tables()

  try:
    yield
  finally:
    await dispose_engine()
    logger.info("Shutdown complete.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
