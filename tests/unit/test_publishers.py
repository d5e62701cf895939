import base64
import json
from dataclasses import replace

import httpx
import msgspec
import pytest

from app.config import Settings
from app.messaging.contracts import ExtractionRequestMessage
from app.messaging.factory import get_job_publisher
from app.messaging.interface import PublishError
from app.messaging.memory import InMemoryPublisher
from app.messaging.rabbit_http import RabbitHttpPublisher


def _broker_settings(settings: Settings) -> Settings:
  return replace(settings, broker_provider="rabbitmq-http", broker_url="http://broker:15672/", broker_vhost="/", broker_username="guest", broker_password="secret")


def _message() -> ExtractionRequestMessage:
  return ExtractionRequestMessage(job_id="job-1", paper_id="paper-1", correlation_id="extraction-abc")


@pytest.mark.anyio
async def test_publish_posts_base64_payload_to_exchange(settings: Settings) -> None:
  captured: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    captured.append(request)
    return httpx.Response(200, json={"routed": True})

  publisher = RabbitHttpPublisher(_broker_settings(settings), transport=httpx.MockTransport(handler))
  await publisher.publish("extraction.request", _message())

  request = captured[0]
  assert request.url.raw_path == b"/api/exchanges/%2F/scholarai.exchange/publish"
  assert request.headers["authorization"].startswith("Basic ")
  body = json.loads(request.content)
  assert body["routing_key"] == "extraction.request"
  assert body["payload_encoding"] == "base64"
  assert body["properties"]["delivery_mode"] == 2
  decoded = msgspec.json.decode(base64.b64decode(body["payload"]))
  assert decoded["jobId"] == "job-1"
  assert decoded["paperId"] == "paper-1"


@pytest.mark.anyio
async def test_unrouted_message_is_an_error(settings: Settings) -> None:
  transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"routed": False}))
  publisher = RabbitHttpPublisher(_broker_settings(settings), transport=transport)

  with pytest.raises(PublishError, match="No queue bound"):
    await publisher.publish("extraction.request", _message())


@pytest.mark.anyio
async def test_broker_rejection_is_an_error(settings: Settings) -> None:
  transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
  publisher = RabbitHttpPublisher(_broker_settings(settings), transport=transport)

  with pytest.raises(PublishError, match="rejected"):
    await publisher.publish("extraction.request", _message())


@pytest.mark.anyio
async def test_unreachable_broker_is_an_error(settings: Settings) -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)

  publisher = RabbitHttpPublisher(_broker_settings(settings), transport=httpx.MockTransport(handler))

  with pytest.raises(PublishError, match="unreachable"):
    await publisher.publish("extraction.request", _message())


def test_rabbit_publisher_requires_url(settings: Settings) -> None:
  with pytest.raises(RuntimeError):
    RabbitHttpPublisher(replace(settings, broker_provider="rabbitmq-http", broker_url=None))


@pytest.mark.anyio
async def test_in_memory_publisher_records_by_routing_key() -> None:
  publisher = InMemoryPublisher()
  await publisher.publish("extraction.request", _message())
  await publisher.publish("citation.check.request", _message())

  assert len(publisher.published) == 2
  assert publisher.for_routing_key("extraction.request") == [_message()]


def test_factory_selects_provider(settings: Settings) -> None:
  assert isinstance(get_job_publisher(replace(settings, broker_provider="memory")), InMemoryPublisher)
  assert isinstance(get_job_publisher(_broker_settings(settings)), RabbitHttpPublisher)
