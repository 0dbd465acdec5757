"""
Tests for the export client

The collector is faked with httpx.MockTransport.

Run with: pytest tests/
"""

import asyncio
import json

import httpx
import pytest
from structlog.testing import capture_logs

from xray_sdk import ExportHook, XRayClient, XRaySession


def run(coro):
    return asyncio.run(coro)


def recorded_execution():
    session = XRaySession(name="export-me", tags=["ci"])
    run(session.step("s1", lambda s: s.input({"q": "stand"})))
    run(session.complete())
    return session.get_execution()


def test_send_execution_posts_json():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201, json={"status": "stored"})

    client = XRayClient(
        "http://collector:8000/",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )
    execution = recorded_execution()

    response = run(client.send_execution(execution))

    assert response == {"status": "stored"}
    assert len(requests) == 1
    request = requests[0]
    assert request.method == "POST"
    assert str(request.url) == "http://collector:8000/api/executions"
    assert request.headers["Authorization"] == "Bearer secret"

    body = json.loads(request.content)
    assert body["id"] == execution.id
    assert body["tags"] == ["ci"]
    assert [s["name"] for s in body["steps"]] == ["s1"]
    assert body["steps"][0]["input"] == {"q": "stand"}


def test_no_auth_header_without_api_key():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(204)

    client = XRayClient("http://collector", transport=httpx.MockTransport(handler))

    assert run(client.send_execution(recorded_execution())) == {}
    assert "Authorization" not in requests[0].headers


def test_retries_server_errors():
    statuses = iter([500, 503, 200])

    def handler(request):
        return httpx.Response(next(statuses), json={"ok": True})

    client = XRayClient("http://collector", backoff=0, transport=httpx.MockTransport(handler))

    with capture_logs() as logs:
        response = run(client.send_execution(recorded_execution()))

    assert response == {"ok": True}
    retries = [log for log in logs if log["event"] == "client.send_retry"]
    assert [log["attempt"] for log in retries] == [1, 2]


def test_retries_connection_errors_then_gives_up():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = XRayClient(
        "http://collector", retries=2, backoff=0, transport=httpx.MockTransport(handler)
    )

    with pytest.raises(httpx.ConnectError):
        run(client.send_execution(recorded_execution()))
    assert len(calls) == 2


def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(422, json={"detail": "invalid"})

    client = XRayClient("http://collector", backoff=0, transport=httpx.MockTransport(handler))

    with pytest.raises(httpx.HTTPStatusError):
        run(client.send_execution(recorded_execution()))
    assert len(calls) == 1


def test_export_hook_sends_completed_execution():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={})

    client = XRayClient("http://collector", transport=httpx.MockTransport(handler))
    session = XRaySession(name="pipeline", execution_hooks=[ExportHook(client)])

    async def pipeline():
        await session.step("s1", lambda s: None)
        await session.step("s2", lambda s: None)
        await session.complete()

    run(pipeline())

    assert len(bodies) == 1
    assert bodies[0]["id"] == session.get_id()
    assert bodies[0]["completed_at"] is not None
    assert [s["name"] for s in bodies[0]["steps"]] == ["s1", "s2"]


def test_export_failure_does_not_fail_the_session():
    def handler(request):
        return httpx.Response(400, json={"detail": "rejected"})

    client = XRayClient("http://collector", transport=httpx.MockTransport(handler))
    session = XRaySession(name="pipeline", execution_hooks=[ExportHook(client)])

    with capture_logs() as logs:
        run(session.complete())

    assert session.is_completed
    failures = [log for log in logs if log["event"] == "session.hook_failed"]
    assert failures[0]["hook"] == "on_execution_complete"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
