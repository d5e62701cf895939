"""Citation-check jobs over HTTP: create, follow, cancel and review."""

from __future__ import annotations

import json

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.deps import build_services
from app.main import create_app
from app.messaging.contracts import CitationCheckMessage
from app.messaging.interface import PublishError
from app.messaging.memory import InMemoryPublisher


def _events(body: str) -> list[tuple[str, dict]]:
  events = []
  for block in body.strip().split("\n\n"):
    lines = block.splitlines()
    if not lines or lines[0].startswith(":"):
      continue
    payload = json.loads(lines[1].removeprefix("data: "))
    events.append((lines[0].removeprefix("event: "), payload["data"]))
  return events


async def _create(client: AsyncClient, **overrides) -> dict:
  body = {"documentId": "doc-1", "projectId": "proj-1", "content": "\\cite{smith2020}", "contentHash": "sha256:abc"} | overrides
  response = await client.post("/api/citations/jobs", json=body)
  assert response.status_code == 202, response.text
  return response.json()


@pytest.mark.anyio
async def test_health_endpoints(async_client: AsyncClient) -> None:
  response = await async_client.get("/health")
  assert response.json() == {"status": "ok", "version": "0.1.0"}
  assert "x-request-id" in response.headers

  response = await async_client.get("/api/citations/health")
  assert response.json()["status"] == "UP"


@pytest.mark.anyio
async def test_request_id_is_echoed(async_client: AsyncClient) -> None:
  response = await async_client.get("/health", headers={"x-request-id": "trace-123"})
  assert response.headers["x-request-id"] == "trace-123"


@pytest.mark.anyio
async def test_create_job_publishes_check_request(async_client: AsyncClient, publisher: InMemoryPublisher, settings) -> None:
  job = await _create(async_client, selectedPaperIds=["paper-1"], options={"checkWeb": False})

  assert job["status"] == "QUEUED"
  assert job["documentId"] == "doc-1"
  assert job["progress"] == 0

  sent = publisher.for_routing_key(settings.citation_routing_key)
  assert len(sent) == 1
  message = sent[0]
  assert isinstance(message, CitationCheckMessage)
  assert message.job_id == job["jobId"]
  assert message.selected_paper_ids == ["paper-1"]
  assert message.options.check_web is False
  assert message.content == "\\cite{smith2020}"


@pytest.mark.anyio
async def test_unknown_fields_are_rejected(async_client: AsyncClient) -> None:
  response = await async_client.post("/api/citations/jobs", json={"documentId": "doc-1", "unexpected": True})
  assert response.status_code == 422
  assert all("input" not in error for error in response.json()["detail"])


@pytest.mark.anyio
async def test_unchanged_document_reuses_finished_check(async_client: AsyncClient, publisher: InMemoryPublisher, task_headers) -> None:
  first = await _create(async_client)
  await async_client.post("/internal/jobs/events", json={"jobId": first["jobId"], "status": "DONE"}, headers=task_headers)

  again = await _create(async_client)
  forced = await _create(async_client, forceRecheck=True)

  assert again["jobId"] == first["jobId"]
  assert forced["jobId"] != first["jobId"]
  assert len(publisher.published) == 2


@pytest.mark.anyio
async def test_worker_progress_is_visible_on_job(async_client: AsyncClient, task_headers) -> None:
  job = await _create(async_client)
  event = {
    "jobId": job["jobId"],
    "status": "RUNNING",
    "step": "Matching references",
    "progressPercent": 55,
    "issues": [{"issueType": "missing-citation", "severity": "HIGH", "message": "Unsupported claim", "citedKeys": ["smith2020"]}],
  }

  response = await async_client.post("/internal/jobs/events", json=event, headers=task_headers)
  assert response.json() == {"status": "applied", "jobStatus": "RUNNING", "progress": 55}

  response = await async_client.get(f"/api/citations/jobs/{job['jobId']}")
  body = response.json()
  assert body["step"] == "Matching references"
  assert body["issues"][0]["citedKeys"] == ["smith2020"]
  assert body["issues"][0]["resolved"] is False


@pytest.mark.anyio
async def test_events_for_finished_job_replay_final_state(async_client: AsyncClient, task_headers) -> None:
  job = await _create(async_client)
  await async_client.post("/internal/jobs/events", json={"jobId": job["jobId"], "status": "RUNNING", "summary": {"total": 3}}, headers=task_headers)
  await async_client.post("/internal/jobs/events", json={"jobId": job["jobId"], "status": "DONE", "step": "Finished"}, headers=task_headers)

  response = await async_client.get(f"/api/citations/jobs/{job['jobId']}/events")

  assert response.status_code == 200
  assert response.headers["content-type"].startswith("text/event-stream")
  assert response.headers["cache-control"] == "no-cache, no-transform"
  events = _events(response.text)
  assert [name for name, _ in events] == ["status", "summary", "complete"]
  assert events[1][1] == {"summary": {"total": 3}}


@pytest.mark.anyio
async def test_events_for_unknown_job_is_404(async_client: AsyncClient) -> None:
  response = await async_client.get("/api/citations/jobs/missing/events")
  assert response.status_code == 404
  assert "requestId" in response.json()


@pytest.mark.anyio
async def test_cancel_job(async_client: AsyncClient, services) -> None:
  job = await _create(async_client)

  response = await async_client.delete(f"/api/citations/jobs/{job['jobId']}")
  assert response.status_code == 200
  assert response.json()["status"] == "ERROR"
  assert response.json()["message"] == "Job cancelled by user."

  response = await async_client.delete(f"/api/citations/jobs/{job['jobId']}")
  assert response.status_code == 409

  response = await async_client.delete("/api/citations/jobs/missing")
  assert response.status_code == 404
  assert len(services.listeners) == 0


@pytest.mark.anyio
async def test_other_job_kinds_are_not_citation_jobs(async_client: AsyncClient) -> None:
  response = await async_client.post("/api/v1/extraction/papers/paper-1")
  extraction_job_id = response.json()["jobId"]

  assert (await async_client.get(f"/api/citations/jobs/{extraction_job_id}")).status_code == 404
  assert (await async_client.delete(f"/api/citations/jobs/{extraction_job_id}")).status_code == 404
  assert (await async_client.get(f"/api/citations/jobs/{extraction_job_id}/events")).status_code == 404

  response = await async_client.get("/api/v1/extraction/papers/paper-1/status")
  assert response.json()["status"] == "PENDING"


@pytest.mark.anyio
async def test_cancelled_job_streams_error(async_client: AsyncClient) -> None:
  job = await _create(async_client)
  await async_client.delete(f"/api/citations/jobs/{job['jobId']}")

  response = await async_client.get(f"/api/citations/jobs/{job['jobId']}/events")

  assert _events(response.text)[-1] == ("error", {"message": "Job cancelled by user."})


@pytest.mark.anyio
async def test_resolve_issue(async_client: AsyncClient, task_headers) -> None:
  job = await _create(async_client)
  event = {"jobId": job["jobId"], "status": "DONE", "issues": [{"issueId": "issue-1", "issueType": "weak-support", "severity": "LOW", "message": "Weak match"}]}
  await async_client.post("/internal/jobs/events", json=event, headers=task_headers)

  response = await async_client.put("/api/citations/issues/issue-1", json={"resolved": True})
  assert response.status_code == 200
  assert response.json()["resolved"] is True

  response = await async_client.get(f"/api/citations/jobs/{job['jobId']}")
  assert response.json()["issues"][0]["resolved"] is True

  response = await async_client.put("/api/citations/issues/missing", json={"resolved": True})
  assert response.status_code == 404


@pytest.mark.anyio
async def test_document_and_project_lookups(async_client: AsyncClient) -> None:
  first = await _create(async_client, documentId="doc-a")
  second = await _create(async_client, documentId="doc-b")

  response = await async_client.get("/api/citations/documents/doc-b")
  assert response.json()["jobId"] == second["jobId"]

  response = await async_client.get("/api/citations/documents/doc-unknown")
  assert response.status_code == 404

  response = await async_client.get("/api/citations/project/proj-1")
  assert {item["jobId"] for item in response.json()} == {first["jobId"], second["jobId"]}


class FailingPublisher(InMemoryPublisher):
  async def publish(self, routing_key, message) -> None:
    raise PublishError("No queue bound for citation.check.request")


@pytest.mark.anyio
async def test_publish_failure_fails_job_and_returns_502(settings, repo) -> None:
  services = build_services(settings, repo=repo, publisher=FailingPublisher())
  app = create_app(settings, services=services)

  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    response = await client.post("/api/citations/jobs", json={"documentId": "doc-1"})

  assert response.status_code == 502
  assert "queue" not in response.json()["detail"]
  latest = await services.jobs.latest_for_target("citation_check", "doc-1")
  assert latest is not None and latest.status == "ERROR"
