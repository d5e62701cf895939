"""Text generation through the google-genai SDK."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from google import genai

from app.config import Settings

logger = logging.getLogger(__name__)


class AIServiceError(RuntimeError):
  """Raised when the model call fails, times out or returns no text."""


class GeminiClient:
  """Minimal `generate(prompt) -> text` client bounded by a timeout."""

  def __init__(self, *, model: str, api_key: str | None, timeout_seconds: float = 30.0, client: Any | None = None) -> None:
    self.model = model
    self.timeout_seconds = timeout_seconds
    if client is None:
      if not api_key:
        raise ValueError("GEMINI_API_KEY environment variable is required")
      client = genai.Client(api_key=api_key)
    self._client = client

  @classmethod
  def from_settings(cls, settings: Settings) -> GeminiClient:
    return cls(model=settings.gemini_model, api_key=settings.gemini_api_key, timeout_seconds=settings.gemini_timeout_seconds)

  async def generate(self, prompt: str) -> str:
    try:
      # Use the async client to avoid blocking the asyncio event loop.
      response = await asyncio.wait_for(self._client.aio.models.generate_content(model=self.model, contents=prompt), timeout=self.timeout_seconds)
    except TimeoutError as e:
      raise AIServiceError(f"Gemini did not answer within {self.timeout_seconds:g}s") from e
    except Exception as e:
      raise AIServiceError(f"Gemini request failed: {e}") from e

    text = response.text
    if not text:
      raise AIServiceError("Gemini returned an empty response")
    logger.debug("Gemini response:\n%s", text)
    return text
