"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_BROKER_PROVIDERS = {"rabbitmq-http", "memory"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the project service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  broker_provider: str
  broker_url: str | None
  broker_vhost: str
  broker_username: str | None
  broker_password: str | None
  broker_exchange: str
  extraction_routing_key: str
  citation_routing_key: str
  gap_analysis_routing_key: str
  publish_timeout_seconds: float
  task_secret: str | None
  gemini_api_key: str | None
  gemini_model: str
  gemini_timeout_seconds: float
  sse_keep_alive_seconds: float
  sse_session_timeout_seconds: float | None
  sse_max_pending_events: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("SCHOLAR_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("SCHOLAR_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("SCHOLAR_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _session_timeout(raw: str | None) -> float | None:
  """Zero or unset means streams stay open until the job finishes or the client leaves."""
  if raw is None or raw.strip() == "":
    return None
  value = float(raw)
  if value < 0:
    raise ValueError("SCHOLAR_SSE_SESSION_TIMEOUT_SECONDS must be zero or positive.")
  if value == 0:
    return None
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("SCHOLAR_ENV", "development").lower()
  debug = _parse_bool(os.getenv("SCHOLAR_DEBUG"))

  log_max_bytes = _positive_int("SCHOLAR_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("SCHOLAR_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("SCHOLAR_LOG_BACKUP_COUNT must be zero or a positive integer.")

  broker_provider = (os.getenv("SCHOLAR_BROKER_PROVIDER") or "rabbitmq-http").strip().lower()
  if broker_provider not in _BROKER_PROVIDERS:
    raise ValueError(f"SCHOLAR_BROKER_PROVIDER must be one of {sorted(_BROKER_PROVIDERS)}.")

  broker_url = _optional_str(os.getenv("SCHOLAR_BROKER_URL"))
  # The management API is the only way out of the process for rabbitmq-http.
  if broker_provider == "rabbitmq-http" and not broker_url:
    raise ValueError("SCHOLAR_BROKER_URL must be set when SCHOLAR_BROKER_PROVIDER is 'rabbitmq-http'.")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("SCHOLAR_ALLOWED_ORIGINS")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("SCHOLAR_LOG_HTTP_4XX")),
    pg_dsn=_optional_str(os.getenv("SCHOLAR_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL")),
    pg_connect_timeout=_positive_int("SCHOLAR_PG_CONNECT_TIMEOUT", "5"),
    broker_provider=broker_provider,
    broker_url=broker_url,
    broker_vhost=os.getenv("SCHOLAR_BROKER_VHOST", "/"),
    broker_username=_optional_str(os.getenv("SCHOLAR_BROKER_USERNAME")),
    broker_password=_optional_str(os.getenv("SCHOLAR_BROKER_PASSWORD")),
    broker_exchange=os.getenv("SCHOLAR_BROKER_EXCHANGE", "scholarai.exchange"),
    extraction_routing_key=os.getenv("SCHOLAR_EXTRACTION_ROUTING_KEY", "extraction.request"),
    citation_routing_key=os.getenv("SCHOLAR_CITATION_ROUTING_KEY", "citation.check.request"),
    gap_analysis_routing_key=os.getenv("SCHOLAR_GAP_ANALYSIS_ROUTING_KEY", "gap.analysis.request"),
    publish_timeout_seconds=_positive_float("SCHOLAR_PUBLISH_TIMEOUT_SECONDS", "10"),
    task_secret=_optional_str(os.getenv("SCHOLAR_TASK_SECRET")),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    gemini_model=os.getenv("SCHOLAR_GEMINI_MODEL", "gemini-2.5-flash"),
    gemini_timeout_seconds=_positive_float("SCHOLAR_GEMINI_TIMEOUT_SECONDS", "30"),
    sse_keep_alive_seconds=_positive_float("SCHOLAR_SSE_KEEP_ALIVE_SECONDS", "20"),
    sse_session_timeout_seconds=_session_timeout(os.getenv("SCHOLAR_SSE_SESSION_TIMEOUT_SECONDS")),
    sse_max_pending_events=_positive_int("SCHOLAR_SSE_MAX_PENDING_EVENTS", "256"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  debug = _parse_bool(os.getenv("SCHOLAR_DEBUG"))
  pg_connect_timeout = int(os.getenv("SCHOLAR_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("SCHOLAR_PG_CONNECT_TIMEOUT must be a positive integer.")

  pg_dsn = _optional_str(os.getenv("SCHOLAR_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
