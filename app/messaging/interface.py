from __future__ import annotations

from typing import Protocol

import msgspec


class PublishError(RuntimeError):
  """Raised when a message could not be handed to the broker."""


class JobPublisher(Protocol):
  """Interface for handing job requests to background workers."""

  async def publish(self, routing_key: str, message: msgspec.Struct) -> None:
    """Publish one message; raises PublishError when the broker rejects it."""
    ...
