"""Service wiring shared by the routers."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status

from app.ai.gemini import GeminiClient
from app.config import Settings
from app.jobs.listeners import ListenerRegistry
from app.jobs.registry import JobRegistry
from app.messaging.factory import get_job_publisher
from app.messaging.interface import JobPublisher
from app.services.chat import CommandParserService, TextGenerator
from app.services.citations import CitationService
from app.services.extraction import ExtractionService
from app.services.gap_analysis import GapAnalysisService
from app.services.worker_events import WorkerEventService
from app.storage.factory import build_jobs_repo
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
  """Process-wide collaborators, built once per application."""

  settings: Settings
  jobs: JobRegistry
  listeners: ListenerRegistry
  publisher: JobPublisher
  citations: CitationService
  extraction: ExtractionService
  gap_analysis: GapAnalysisService
  worker_events: WorkerEventService
  command_parser: CommandParserService | None


def build_services(settings: Settings, *, repo: JobsRepository | None = None, publisher: JobPublisher | None = None, generator: TextGenerator | None = None) -> Services:
  """Assemble the service graph; explicit arguments replace the configured defaults."""
  jobs = JobRegistry(repo or build_jobs_repo(settings))
  listeners = ListenerRegistry()
  publisher = publisher or get_job_publisher(settings)
  extraction = ExtractionService(jobs=jobs, publisher=publisher, settings=settings)

  if generator is None and settings.gemini_api_key:
    generator = GeminiClient.from_settings(settings)
  if generator is None:
    logger.warning("GEMINI_API_KEY is not set; chat commands are disabled.")

  return Services(
    settings=settings,
    jobs=jobs,
    listeners=listeners,
    publisher=publisher,
    citations=CitationService(jobs=jobs, listeners=listeners, publisher=publisher, settings=settings),
    extraction=extraction,
    gap_analysis=GapAnalysisService(jobs=jobs, extraction=extraction, publisher=publisher, settings=settings),
    worker_events=WorkerEventService(jobs=jobs, listeners=listeners),
    command_parser=CommandParserService(generator) if generator is not None else None,
  )


def get_services(request: Request) -> Services:
  return request.app.state.services


def get_app_settings(request: Request) -> Settings:
  return request.app.state.settings


def get_citation_service(services: Services = Depends(get_services)) -> CitationService:  # noqa: B008
  return services.citations


def get_extraction_service(services: Services = Depends(get_services)) -> ExtractionService:  # noqa: B008
  return services.extraction


def get_gap_analysis_service(services: Services = Depends(get_services)) -> GapAnalysisService:  # noqa: B008
  return services.gap_analysis


def get_worker_event_service(services: Services = Depends(get_services)) -> WorkerEventService:  # noqa: B008
  return services.worker_events


def get_command_parser(services: Services = Depends(get_services)) -> CommandParserService:  # noqa: B008
  if services.command_parser is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Chat assistant is not configured.")
  return services.command_parser
