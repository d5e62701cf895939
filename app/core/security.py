from __future__ import annotations

import logging
import secrets

from fastapi import Depends, Header, HTTPException, Request, status

from app.api.deps import get_app_settings
from app.config import Settings

logger = logging.getLogger(__name__)


async def require_task_secret(
  request: Request,
  settings: Settings = Depends(get_app_settings),  # noqa: B008
  authorization: str | None = Header(default=None),
  x_scholar_task_secret: str | None = Header(default=None),
) -> None:
  """Allow internal worker callbacks only with the shared task secret."""
  # Secure-by-default: without a configured secret nothing may call internal endpoints.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  expected_auth = f"Bearer {settings.task_secret}"
  shared_secret_valid = secrets.compare_digest((x_scholar_task_secret or ""), settings.task_secret)
  bearer_valid = secrets.compare_digest((authorization or ""), expected_auth)
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to %s", request.url.path)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")
