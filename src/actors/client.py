from __future__ import annotations

import asyncio
import logging
import os
from typing import Dict, Optional
from urllib.parse import quote

import httpx


logger = logging.getLogger(__name__)

DEFAULT_HTTP_HOST = "http://127.0.0.1"
DEFAULT_HTTP_PORT = "3500"
DEFAULT_TIMEOUT = 60.0
API_VERSION = "v1.0"

# Environment variable names, matching the Dapr sidecar conventions
ENV_HTTP_ENDPOINT = "DAPR_HTTP_ENDPOINT"
ENV_HTTP_PORT = "DAPR_HTTP_PORT"
ENV_API_TOKEN = "DAPR_API_TOKEN"
ENV_TIMEOUT = "DAPR_HTTP_TIMEOUT_SECONDS"

API_TOKEN_HEADER = "dapr-api-token"

_RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


class DaprError(RuntimeError):
    """Base error for the Dapr actor client."""


class DaprApiError(DaprError):
    """Sidecar answered with a non-retryable HTTP status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _segment(value: object) -> str:
    return quote(str(value), safe="")


class DaprActorClient:
    """
    Async client for the Dapr sidecar actor state API.

    Notes
    - `get_actor_state` returns None when the sidecar has no value (204 or empty body).
    - `save_actor_state_transactionally` posts a pre-built JSON operations array.
    - Transport errors and 429/5xx are retried with exponential backoff. This is the
      only retry policy in the state path; callers above do not retry.
    """

    def __init__(
        self,
        base_url: str = f"{DEFAULT_HTTP_HOST}:{DEFAULT_HTTP_PORT}",
        *,
        api_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = 4,
        retry_backoff: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff
        headers: Dict[str, str] = {}
        if api_token:
            headers[API_TOKEN_HEADER] = api_token
        self._headers = headers
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls) -> "DaprActorClient":
        endpoint = _getenv(ENV_HTTP_ENDPOINT)
        if endpoint is None:
            port = _getenv(ENV_HTTP_PORT, DEFAULT_HTTP_PORT)
            if not port.isdigit():
                raise RuntimeError(f"Invalid {ENV_HTTP_PORT}: {port!r}")
            endpoint = f"{DEFAULT_HTTP_HOST}:{port}"

        raw_timeout = _getenv(ENV_TIMEOUT)
        timeout = DEFAULT_TIMEOUT
        if raw_timeout is not None:
            try:
                timeout = float(raw_timeout)
            except ValueError as ex:
                raise RuntimeError(f"Invalid {ENV_TIMEOUT}: {raw_timeout!r}") from ex

        return cls(endpoint, api_token=_getenv(ENV_API_TOKEN), timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "DaprActorClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # -------- Public API --------
    async def get_actor_state(self, actor_type: str, actor_id: str, key: str) -> Optional[bytes]:
        """Fetch raw state bytes for one key; None when the key is not found."""
        path = f"{self._actor_path(actor_type, actor_id)}/state/{_segment(key)}"
        resp = await self._request("GET", path)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.content

    async def save_actor_state_transactionally(self, actor_type: str, actor_id: str, data: bytes) -> None:
        """Submit a JSON array of state operations, applied atomically by the sidecar."""
        path = f"{self._actor_path(actor_type, actor_id)}/state"
        await self._request(
            "POST",
            path,
            content=data,
            headers={"Content-Type": "application/json"},
        )

    # -------- Internal --------
    @staticmethod
    def _actor_path(actor_type: str, actor_id: str) -> str:
        return f"/{API_VERSION}/actors/{_segment(actor_type)}/{_segment(actor_id)}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self._base_url}{path}"
        all_headers = {**self._headers, **(headers or {})}

        attempt = 0
        backoff = self._retry_backoff
        last_exc: Optional[Exception] = None
        while attempt < self._max_attempts:
            try:
                resp = await self._client.request(method, url, content=content, headers=all_headers)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
                logger.warning("Dapr %s %s failed: %s (attempt %d)", method, path, exc, attempt + 1)
            else:
                if 200 <= resp.status_code < 300:
                    return resp
                if resp.status_code not in _RETRYABLE_STATUSES:
                    raise DaprApiError(
                        f"HTTP {resp.status_code} from Dapr: {resp.text[:200]}",
                        status_code=resp.status_code,
                    )
                last_exc = DaprApiError(f"HTTP {resp.status_code} from Dapr", status_code=resp.status_code)
                logger.warning("Dapr %s %s returned %d (attempt %d)", method, path, resp.status_code, attempt + 1)

            attempt += 1
            if attempt < self._max_attempts:
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, 8.0)

        raise DaprError("Failed request after retries") from last_exc


__all__ = [
    "DaprActorClient",
    "DaprApiError",
    "DaprError",
]
