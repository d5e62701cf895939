from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.ai.gemini import AIServiceError
from app.api.deps import Services, build_services
from app.api.routes import chat, citations, extraction, gap_analysis, worker
from app.config import Settings, get_settings
from app.core.exceptions import ai_service_exception_handler, global_exception_handler, http_exception_handler, job_exception_handler, request_validation_exception_handler
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.jobs.errors import JobError

SERVICE_VERSION = "0.1.0"


def create_app(settings: Settings | None = None, *, services: Services | None = None) -> FastAPI:
  """Build the API with its services wired on app.state."""
  settings = settings or get_settings()
  app = FastAPI(title="Scholar Project Service", version=SERVICE_VERSION, lifespan=lifespan)
  app.state.settings = settings
  app.state.services = services or build_services(settings)

  app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allowed_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["content-type", "authorization", "last-event-id"],
    expose_headers=["content-length", "x-request-id"],
  )

  app.add_exception_handler(Exception, global_exception_handler)
  app.add_exception_handler(HTTPException, http_exception_handler)
  app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
  app.add_exception_handler(JobError, job_exception_handler)
  app.add_exception_handler(AIServiceError, ai_service_exception_handler)

  app.add_middleware(RequestLoggingMiddleware)
  app.add_middleware(SecurityHeadersMiddleware)

  @app.get("/health", include_in_schema=False)
  async def health_check() -> dict[str, str]:
    """Return a simple health status."""
    return {"status": "ok", "version": SERVICE_VERSION}

  app.include_router(citations.router, prefix="/api/citations", tags=["citations"])
  app.include_router(extraction.router, prefix="/api/v1", tags=["extraction"])
  app.include_router(gap_analysis.router, prefix="/api/v1/gap-analyses", tags=["gap-analysis"])
  app.include_router(chat.router, prefix="/api/v1/chat", tags=["chat"])
  app.include_router(worker.router, prefix="/internal", tags=["worker"])
  return app


app = create_app()
