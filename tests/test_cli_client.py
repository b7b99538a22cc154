"""Tests for the CLI HTTP client"""

import json

import httpx
import pytest

from cli.client.base import DEFAULT_API_URL
from cli.client.endpoints import QueryManagerAPIError, QueryManagerClient


def envelope(data, ok=True):
    return {"ok": ok, "data": data, "message": None}


def make_client(handler) -> QueryManagerClient:
    return QueryManagerClient(
        "http://testserver/", transport=httpx.MockTransport(handler)
    )


def test_default_api_url():
    with QueryManagerClient() as client:
        assert client.base_url == DEFAULT_API_URL

    with QueryManagerClient("http://queue.internal:9000/") as client:
        assert client.base_url == "http://queue.internal:9000"


def test_list_jobs_sends_filters():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = request.url.params
        return httpx.Response(200, json=envelope({"items": [], "total": 0}))

    with make_client(handler) as client:
        data = client.list_jobs(status=["pending", "failed"], type="report", limit=5)

    assert data == {"items": [], "total": 0}
    assert seen["path"] == "/v1/jobs"
    assert seen["params"].get_list("status") == ["pending", "failed"]
    assert seen["params"]["type"] == "report"
    assert seen["params"]["limit"] == "5"


def test_execute_query_async_posts_parameters():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            202, json=envelope({"job_id": "abc", "status": "pending"})
        )

    with make_client(handler) as client:
        data = client.execute_query_async("active-users", {"region": "eu"})

    assert data["job_id"] == "abc"
    assert seen["path"] == "/v1/queries/active-users/execute/async"
    assert seen["body"] == {"region": "eu"}


def test_error_envelope_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            409,
            json={"ok": False, "data": None, "error": {"message": "Job is finished"}},
        )

    with make_client(handler) as client:
        with pytest.raises(QueryManagerAPIError, match="Job is finished") as exc:
            client.cancel_job("abc")

    assert exc.value.status_code == 409


def test_connection_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with make_client(handler) as client:
        with pytest.raises(QueryManagerAPIError, match="Connection failed"):
            client.health_check()


def test_enqueue_and_report_requests():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append((request.url.path, json.loads(request.content)))
        return httpx.Response(
            202, json=envelope({"job_id": "abc", "status": "pending"})
        )

    with make_client(handler) as client:
        client.enqueue_job("query", {"query_id": "q1"}, priority=3)
        client.generate_report_async("monthly")

    assert requests == [
        ("/v1/jobs", {"type": "query", "payload": {"query_id": "q1"}, "priority": 3}),
        ("/v1/reports/monthly/generate/async", {}),
    ]
