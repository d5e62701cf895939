from __future__ import annotations

import logging
from dataclasses import dataclass

import msgspec

from app.messaging.interface import JobPublisher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishedMessage:
  routing_key: str
  message: msgspec.Struct


class InMemoryPublisher(JobPublisher):
  """Keeps published messages in process for development and tests."""

  def __init__(self) -> None:
    self.published: list[PublishedMessage] = []

  async def publish(self, routing_key: str, message: msgspec.Struct) -> None:
    logger.info("Recorded %s for %s (no broker configured)", type(message).__name__, routing_key)
    self.published.append(PublishedMessage(routing_key=routing_key, message=message))

  def for_routing_key(self, routing_key: str) -> list[msgspec.Struct]:
    return [item.message for item in self.published if item.routing_key == routing_key]
