"""Shared HTTP plumbing for the BMS backend REST API"""

from typing import Any, Dict, Optional

import httpx

from bms_capital.config import settings
from bms_capital.domain.exceptions import BackendAPIError, NotFoundError
from bms_capital.infrastructure.observability.metrics import backend_latency_histogram


class BackendClient:
    """Base client: auth headers, timeout, envelope unwrapping and error translation"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        token: str | None = None,
        branch_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.token = token if token is not None else settings.api_token
        self.branch_id = branch_id if branch_id is not None else settings.active_branch_id
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token.strip()}"
        if self.branch_id:
            headers["X-Active-Branch-ID"] = str(self.branch_id)
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._headers(),
            transport=self.transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body.

        Raises:
            NotFoundError: On 404
            BackendAPIError: On timeout, other HTTP errors, or a non-JSON body
        """
        query = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
        async with self._client() as client:
            try:
                with backend_latency_histogram.labels(endpoint=path.split("?")[0]).time():
                    response = await client.request(method, path, params=query, json=json)
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                raise BackendAPIError(f"Backend timeout after {self.timeout}s: {method} {path}") from e
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 404:
                    raise NotFoundError(f"Not found: {method} {path}") from e
                raise BackendAPIError(
                    f"Backend error {e.response.status_code}: {_error_message(e.response)}"
                ) from e
            except httpx.RequestError as e:
                raise BackendAPIError(f"Backend unreachable: {e}") from e
            except ValueError as e:
                raise BackendAPIError(f"Invalid JSON from backend: {e}") from e

    async def _get_data(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET and unwrap the {"data": ...} envelope"""
        body = await self._request("GET", path, params=params)
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or response.reason_phrase
    return response.reason_phrase
