import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.ai.gemini import AIServiceError
from app.jobs.errors import IssueNotFoundError, JobAlreadyFinalizedError, JobDispatchError, JobError, JobNotFoundError, JobNotRetryableError, PaperNotExtractedError

logger = logging.getLogger("uvicorn.error")


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  # Exceptions show up in validation contexts; keep only type and message.
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  payload: dict[str, Any] = {"detail": detail}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _log_http_4xx(request: Request) -> bool:
  settings = getattr(request.app.state, "settings", None)
  return bool(settings is not None and settings.log_http_4xx)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx
    sanitized.append(_coerce_json_safe(scrubbed))
  return sanitized


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Catch unhandled errors and answer with a generic 500."""
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=exc)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors without leaking payloads."""
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle HTTPExceptions while hiding 5xx diagnostics from callers."""
  request_id = _request_id(request)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if _log_http_4xx(request):
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)

  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=getattr(exc, "headers", None))


def _job_error_status(exc: JobError) -> int:
  if isinstance(exc, JobNotFoundError | IssueNotFoundError):
    return status.HTTP_404_NOT_FOUND
  if isinstance(exc, JobAlreadyFinalizedError | JobNotRetryableError | PaperNotExtractedError):
    return status.HTTP_409_CONFLICT
  if isinstance(exc, JobDispatchError):
    return status.HTTP_502_BAD_GATEWAY
  return status.HTTP_400_BAD_REQUEST


async def job_exception_handler(request: Request, exc: JobError) -> JSONResponse:
  """Map job lifecycle errors to HTTP statuses."""
  request_id = _request_id(request)
  status_code = _job_error_status(exc)
  if status_code == status.HTTP_502_BAD_GATEWAY:
    logger.error("Job dispatch failed request_id=%s path=%s error=%s", request_id, request.url.path, exc, exc_info=exc)
    # Broker details stay in the logs.
    return JSONResponse(status_code=status_code, content=_error_payload("Background worker is unavailable. Please try again later.", request_id=request_id))

  if _log_http_4xx(request):
    logger.warning("Job error request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, status_code, exc)
  return JSONResponse(status_code=status_code, content=_error_payload(str(exc), request_id=request_id))


async def ai_service_exception_handler(request: Request, exc: AIServiceError) -> JSONResponse:
  """Return a 502 when the language model could not answer."""
  request_id = _request_id(request)
  logger.error("AI service failure request_id=%s path=%s error=%s", request_id, request.url.path, exc, exc_info=exc)
  # Model errors may echo prompts; keep them out of the response.
  return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=_error_payload("The assistant is unavailable. Please try again later.", request_id=request_id))
