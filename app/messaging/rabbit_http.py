from __future__ import annotations

import base64
import logging
from urllib.parse import quote

import httpx
import msgspec

from app.config import Settings
from app.messaging.interface import JobPublisher, PublishError

logger = logging.getLogger(__name__)


class RabbitHttpPublisher(JobPublisher):
  """Publishes to a RabbitMQ exchange through the management HTTP API."""

  def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
    if not settings.broker_url:
      raise RuntimeError("Broker URL not configured, strictly required for RabbitHttpPublisher.")
    self.settings = settings
    self._transport = transport

  def _publish_url(self) -> str:
    # The default vhost "/" must be sent as %2F.
    vhost = quote(self.settings.broker_vhost, safe="")
    exchange = quote(self.settings.broker_exchange, safe="")
    return f"{self.settings.broker_url.rstrip('/')}/api/exchanges/{vhost}/{exchange}/publish"

  def _build_client(self) -> httpx.AsyncClient:
    auth = None
    if self.settings.broker_username:
      auth = httpx.BasicAuth(self.settings.broker_username, self.settings.broker_password or "")
    # Never trust environment proxy variables for broker traffic.
    return httpx.AsyncClient(transport=self._transport, auth=auth, timeout=self.settings.publish_timeout_seconds, trust_env=False)

  async def publish(self, routing_key: str, message: msgspec.Struct) -> None:
    body = msgspec.json.encode(message)
    payload = {
      "properties": {"content_type": "application/json", "delivery_mode": 2},
      "routing_key": routing_key,
      "payload": base64.b64encode(body).decode("ascii"),
      "payload_encoding": "base64",
    }
    url = self._publish_url()

    try:
      async with self._build_client() as client:
        logger.info("Publishing %s to %s", type(message).__name__, routing_key)
        response = await client.post(url, json=payload)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
      logger.error(f"Broker returned {e.response.status_code} publishing to {routing_key}: {e.response.text}")
      raise PublishError(f"Broker rejected message for {routing_key}") from e
    except httpx.RequestError as e:
      logger.error(f"Failed to reach broker publishing to {routing_key}: {e}")
      raise PublishError(f"Broker unreachable for {routing_key}") from e

    # Unbound routing keys are accepted by the broker and silently dropped.
    if not response.json().get("routed", False):
      logger.error("Message for %s was not routed by exchange %s", routing_key, self.settings.broker_exchange)
      raise PublishError(f"No queue bound for {routing_key}")
