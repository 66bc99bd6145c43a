"""
Retrying cluster caller.

Applies the retry and status policy to every cluster call:

- timeouts are retried, up to three attempts in total, without backoff
- any other transport failure, 5xx or unexpected status fails immediately
- 2xx replies are returned
- 4xx replies are returned too, so callers can treat "not found" as an answer
"""

from __future__ import annotations

import logging
from typing import Any

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_none,
)

from snapverify.cluster.gateway import ApiResponse, ClusterGateway
from snapverify.errors import ClusterTransportError, OperationFailed, TransientTransportError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class RetryingCaller:
    """Wraps a ClusterGateway with the bounded-retry policy.

    Example:
        caller = RetryingCaller(gateway)
        response = await caller.call("GET", "/_snapshot/03-2024")
        if response.not_found:
            ...
    """

    def __init__(self, gateway: ClusterGateway, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        """Initialize the caller.

        Args:
            gateway: Transport to the cluster
            max_attempts: Total attempts for a request that keeps timing out
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._gateway = gateway
        self._max_attempts = max_attempts

    @property
    def max_attempts(self) -> int:
        """Total attempts allowed for timed-out requests."""
        return self._max_attempts

    async def call(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> ApiResponse:
        """Issue a cluster call under the retry policy.

        Args:
            method: HTTP method
            path: Request path
            params: Query string parameters
            body: JSON request body

        Returns:
            The 2xx or 4xx response

        Raises:
            OperationFailed: On 5xx/unexpected status, non-timeout transport
                failure, or when every attempt timed out
        """
        diagnostics = _diagnostic_params(params, body)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_none(),
                retry=retry_if_exception_type(TransientTransportError),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    response = await self._gateway.request(method, path, params=params, body=body)
        except TransientTransportError as e:
            raise OperationFailed(
                method,
                path,
                params=diagnostics,
                response_body=str(e),
                reason=f"timed out after {self._max_attempts} attempts",
            ) from e
        except ClusterTransportError as e:
            raise OperationFailed(method, path, params=diagnostics, response_body=str(e)) from e

        if response.ok:
            return response

        if response.is_client_error:
            logger.debug(
                "%s request to %s received %s (params: %r)\nBody:\n%s",
                method.upper(),
                path,
                response.status_code,
                diagnostics,
                response.body,
            )
            return response

        raise OperationFailed(
            method,
            path,
            params=diagnostics,
            status_code=response.status_code,
            response_body=response.body,
        )


def _diagnostic_params(params: dict[str, Any] | None, body: Any) -> dict[str, Any]:
    """Merge query params and body into one dict for error reports."""
    merged: dict[str, Any] = dict(params or {})
    if body is not None:
        merged["body"] = body
    return merged
