"""Lenient JSON parsing helpers for model outputs."""

from __future__ import annotations

import json
import re
from typing import Any

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*|\s*```$")


def strip_json_fences(raw: str) -> str:
  """Remove a surrounding markdown code fence if the model added one."""
  return _FENCE_RE.sub("", raw.strip())


def parse_json_object(raw: str) -> dict[str, Any]:
  """Parse the JSON object embedded in a model reply.

  Raises json.JSONDecodeError when no object can be recovered.
  """
  text = strip_json_fences(raw)
  last_error: json.JSONDecodeError | None = None

  # Prefer strict parsing so valid JSON is preserved without mutation.
  try:
    return _require_object(json.loads(text), text)
  except json.JSONDecodeError as exc:
    last_error = exc

  # Keep the span from the first "{" to the last "}" to drop prose around it.
  candidate = extract_object_span(text)
  if candidate is None:
    raise last_error

  try:
    return _require_object(json.loads(candidate), candidate)
  except json.JSONDecodeError as exc:
    last_error = exc

  # Strip trailing commas that commonly appear in model output.
  try:
    return _require_object(json.loads(_TRAILING_COMMA_RE.sub(r"\1", candidate)), candidate)
  except json.JSONDecodeError as exc:
    last_error = exc

  raise last_error


def extract_object_span(raw: str) -> str | None:
  start = raw.find("{")
  end = raw.rfind("}")
  if start == -1 or end <= start:
    return None
  return raw[start : end + 1]


def _require_object(value: Any, source: str) -> dict[str, Any]:
  if not isinstance(value, dict):
    raise json.JSONDecodeError("Expected a JSON object", source, 0)
  return value
