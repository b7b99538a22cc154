"""API Endpoint Wrappers - Type-safe API calls"""

from typing import Any

import httpx

from .base import APIClient, QueryManagerAPIError

__all__ = ["QueryManagerClient", "QueryManagerAPIError"]


class QueryManagerClient:
    """High-level client with typed endpoint methods"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: int = 30,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api = APIClient(base_url=base_url, timeout=timeout, transport=transport)

    @property
    def base_url(self) -> str:
        return self.api.base_url

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Jobs Endpoints
    def list_jobs(
        self,
        status: list[str] | None = None,
        type: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        """List jobs with filters, newest first"""
        params: dict[str, Any] = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        if type:
            params["type"] = type
        return self.api.get("/jobs", params)

    def get_job(self, job_id: str) -> dict[str, Any]:
        return self.api.get(f"/jobs/{job_id}")

    def get_job_result(self, job_id: str) -> dict[str, Any]:
        return self.api.get(f"/jobs/{job_id}/result")

    def cancel_job(self, job_id: str) -> dict[str, Any]:
        return self.api.post(f"/jobs/{job_id}/cancel")

    def get_job_stats(self) -> dict[str, Any]:
        return self.api.get("/jobs/stats/overview")

    def enqueue_job(
        self, type: str, payload: dict[str, Any], priority: int = 0
    ) -> dict[str, Any]:
        """Enqueue a job of any registered type"""
        return self.api.post(
            "/jobs", {"type": type, "payload": payload, "priority": priority}
        )

    # Producer Endpoints
    def execute_query_async(
        self, query_id: str, parameters: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        return self.api.post(f"/queries/{query_id}/execute/async", parameters or {})

    def generate_report_async(
        self, report_id: str, parameters: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        return self.api.post(f"/reports/{report_id}/generate/async", parameters or {})
