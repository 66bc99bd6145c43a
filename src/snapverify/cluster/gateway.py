"""
Cluster HTTP Gateway.

Thin async transport to the cluster's REST API. It performs exactly one
HTTP request per call and classifies the outcome; retry policy and status
handling live in the RetryingCaller.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from snapverify.config.models import ClusterConfig
from snapverify.errors import ClusterTransportError, TransientTransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiResponse:
    """Status code and decoded body of a cluster reply.

    Attributes:
        status_code: HTTP status
        body: Decoded JSON body, raw text if not JSON, None if empty
    """

    status_code: int
    body: Any = None

    @property
    def ok(self) -> bool:
        """2xx reply."""
        return 200 <= self.status_code < 300

    @property
    def is_client_error(self) -> bool:
        """4xx reply (returned to callers, never raised)."""
        return 400 <= self.status_code < 500

    @property
    def not_found(self) -> bool:
        """404 reply."""
        return self.status_code == 404


class ClusterGateway:
    """Async HTTP transport for the cluster API.

    Example:
        async with ClusterGateway(config.cluster) as gateway:
            response = await gateway.request("GET", "/_cat/master")
    """

    def __init__(
        self,
        config: ClusterConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            config: Cluster connection settings
            transport: Optional httpx transport (used by tests)
        """
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        """Cluster API base URL."""
        return self._config.url

    async def __aenter__(self) -> ClusterGateway:
        """Enter async context."""
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context."""
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        """Create the HTTP client on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.url,
                auth=self._config.basic_auth,
                timeout=self._config.http_timeout_seconds,
                verify=self._config.verify_tls,
                transport=self._transport,
                headers={
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> ApiResponse:
        """Send one request to the cluster.

        Args:
            method: HTTP method
            path: Request path, relative to the base URL
            params: Query string parameters
            body: JSON request body

        Returns:
            ApiResponse for any HTTP status

        Raises:
            TransientTransportError: If the request timed out
            ClusterTransportError: For any other transport failure
        """
        client = self._ensure_client()
        try:
            response = await client.request(method.upper(), path, params=params, json=body)
        except httpx.TimeoutException as e:
            raise TransientTransportError(f"Request Timeout: {method.upper()} {path}: {e}") from e
        except httpx.TransportError as e:
            raise ClusterTransportError(f"Request Failed: {method.upper()} {path}: {e}") from e

        return ApiResponse(status_code=response.status_code, body=_decode_body(response))


def _decode_body(response: httpx.Response) -> Any:
    """Decode a JSON body, falling back to text."""
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text
