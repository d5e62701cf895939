from __future__ import annotations

from app.config import Settings
from app.messaging.interface import JobPublisher
from app.messaging.memory import InMemoryPublisher
from app.messaging.rabbit_http import RabbitHttpPublisher


def get_job_publisher(settings: Settings) -> JobPublisher:
  """Factory to get the configured job publisher."""
  if settings.broker_provider == "memory":
    return InMemoryPublisher()
  return RabbitHttpPublisher(settings)
