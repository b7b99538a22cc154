"""Base HTTP Client for the Query Manager API"""

from typing import Any

import httpx
from rich.console import Console
from rich.panel import Panel

console = Console()

DEFAULT_API_URL = "http://localhost:8000"


class QueryManagerAPIError(Exception):
    """Base exception for Query Manager API errors"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class APIClient:
    """HTTP client for the Query Manager API"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: int = 30,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = (base_url or DEFAULT_API_URL).rstrip("/")
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers or {},
            transport=transport,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.client.close()

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        """Unwrap the response envelope or raise with the API error message"""
        try:
            data = response.json()
        except ValueError:
            raise QueryManagerAPIError(
                f"Invalid JSON response: {response.status_code}",
                response.status_code,
            ) from None

        if response.status_code >= 400 or not data.get("ok", True):
            error_msg = data.get("error", {}).get("message", "Unknown error")
            console.print(Panel(f"[red]{error_msg}[/red]", title="API Error"))
            raise QueryManagerAPIError(
                f"API Error {response.status_code}: {error_msg}",
                response.status_code,
            )

        return data.get("data", data)

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self.client.request(method, f"/v1{path}", **kwargs)
        except httpx.RequestError as e:
            raise QueryManagerAPIError(f"Connection failed: {e}") from None
        return self._handle_response(response)

    def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Make GET request"""
        return self._request("GET", path, params=params)

    def post(self, path: str, json: Any = None) -> dict[str, Any]:
        """Make POST request"""
        return self._request("POST", path, json=json)
