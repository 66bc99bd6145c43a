"""
Typed cluster operations.

Each method maps to one REST call made through the RetryingCaller.

Lookups of a single named thing (index, document, repository, shards,
recovery) treat 404 as "does not exist" and return None/False. Reads the
pipeline cannot do without (master, settings, repository list) require a
2xx reply: any other status, 401/403 included, raises OperationFailed.
Mutations return the ApiResponse for the caller to judge.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from snapverify.cluster.caller import RetryingCaller
from snapverify.cluster.gateway import ApiResponse
from snapverify.errors import OperationFailed

logger = logging.getLogger(__name__)


def _seg(name: str) -> str:
    """Quote one path segment."""
    return quote(name, safe="*,")


def _require(
    method: str,
    path: str,
    response: ApiResponse,
    allow_not_found: bool = False,
) -> None:
    """Raise OperationFailed unless the reply is 2xx (or 404 when allowed)."""
    if response.ok or (allow_not_found and response.not_found):
        return
    raise OperationFailed(
        method,
        path,
        status_code=response.status_code,
        response_body=response.body,
    )


class ClusterApi:
    """Cluster operations needed by the verification pipeline."""

    def __init__(self, caller: RetryingCaller) -> None:
        self._caller = caller

    @property
    def caller(self) -> RetryingCaller:
        """Underlying retrying caller."""
        return self._caller

    # ------------------------------------------------------------------
    # Cluster state
    # ------------------------------------------------------------------

    async def master_node(self) -> str | None:
        """Name of the currently elected master node.

        Raises:
            OperationFailed: On any non-2xx reply, so that a credential or
                permission problem is never mistaken for "not master"
        """
        path = "/_cat/master"
        response = await self._caller.call("GET", path, params={"format": "json"})
        _require("GET", path, response)
        if not response.body:
            return None
        return response.body[0].get("node")

    async def cluster_settings(self) -> dict[str, Any]:
        """Persistent and transient cluster settings, flattened.

        Raises:
            OperationFailed: On any non-2xx reply
        """
        path = "/_cluster/settings"
        response = await self._caller.call("GET", path, params={"flat_settings": "true"})
        _require("GET", path, response)
        return response.body if isinstance(response.body, dict) else {}

    # ------------------------------------------------------------------
    # Indices and documents
    # ------------------------------------------------------------------

    async def list_indices(self, pattern: str) -> list[str]:
        """Index names matching a wildcard pattern."""
        path = f"/_cat/indices/{_seg(pattern)}"
        response = await self._caller.call(
            "GET",
            path,
            params={"format": "json", "h": "index", "expand_wildcards": "all"},
        )
        _require("GET", path, response)
        return sorted(row["index"] for row in response.body or [])

    async def index_exists(self, index: str) -> bool:
        """Whether an index exists."""
        path = f"/{_seg(index)}"
        response = await self._caller.call("GET", path)
        _require("GET", path, response, allow_not_found=True)
        return response.ok

    async def create_index(self, index: str) -> ApiResponse:
        """Create an empty index."""
        return await self._caller.call("PUT", f"/{_seg(index)}")

    async def delete_index(self, index: str) -> ApiResponse:
        """Delete an index. A 404 is returned, not raised."""
        return await self._caller.call("DELETE", f"/{_seg(index)}")

    async def refresh_index(self, index: str) -> ApiResponse:
        """Make recent writes searchable."""
        return await self._caller.call("POST", f"/{_seg(index)}/_refresh")

    async def put_document(self, index: str, doc_id: int, document: dict[str, Any]) -> ApiResponse:
        """Index a document by id, creating the index if needed."""
        return await self._caller.call(
            "PUT", f"/{_seg(index)}/_doc/{doc_id}", body=document
        )

    async def get_document(self, index: str, doc_id: int) -> dict[str, Any] | None:
        """Source of a document, or None if it (or the index) is not found."""
        path = f"/{_seg(index)}/_doc/{doc_id}"
        response = await self._caller.call("GET", path)
        _require("GET", path, response, allow_not_found=True)
        if not response.ok or not isinstance(response.body, dict):
            return None
        if not response.body.get("found"):
            return None
        return response.body.get("_source", {})

    async def shard_states(self, index: str) -> list[str] | None:
        """State of every shard copy of an index, None if it does not exist."""
        path = f"/_cat/shards/{_seg(index)}"
        response = await self._caller.call(
            "GET",
            path,
            params={"format": "json", "h": "index,shard,prirep,state"},
        )
        _require("GET", path, response, allow_not_found=True)
        if not response.ok:
            return None
        return [row.get("state", "") for row in response.body or []]

    async def recovery_stages(self, index: str) -> list[str] | None:
        """Recovery stage of every shard of an index, None if it does not exist."""
        path = f"/{_seg(index)}/_recovery"
        response = await self._caller.call("GET", path)
        _require("GET", path, response, allow_not_found=True)
        if not response.ok or not isinstance(response.body, dict):
            return None
        shards = response.body.get(index, {}).get("shards", [])
        return [shard.get("stage", "") for shard in shards]

    # ------------------------------------------------------------------
    # Snapshot repositories
    # ------------------------------------------------------------------

    async def repository_exists(self, repository: str) -> bool:
        """Whether a snapshot repository is registered."""
        path = f"/_snapshot/{_seg(repository)}"
        response = await self._caller.call("GET", path)
        _require("GET", path, response, allow_not_found=True)
        return response.ok

    async def list_repositories(self) -> list[str]:
        """Names of all registered snapshot repositories.

        Raises:
            OperationFailed: On any non-2xx reply
        """
        path = "/_snapshot"
        response = await self._caller.call("GET", path)
        _require("GET", path, response)
        if not isinstance(response.body, dict):
            return []
        return sorted(response.body)

    async def create_repository(self, repository: str, body: dict[str, Any]) -> ApiResponse:
        """Register a snapshot repository."""
        return await self._caller.call("PUT", f"/_snapshot/{_seg(repository)}", body=body)

    async def delete_repository(self, repository: str) -> ApiResponse:
        """Unregister a snapshot repository."""
        return await self._caller.call("DELETE", f"/_snapshot/{_seg(repository)}")

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def create_snapshot(
        self,
        repository: str,
        snapshot: str,
        body: dict[str, Any] | None = None,
    ) -> ApiResponse:
        """Start a snapshot without waiting for completion."""
        return await self._caller.call(
            "PUT",
            f"/_snapshot/{_seg(repository)}/{_seg(snapshot)}",
            params={"wait_for_completion": "false"},
            body=body,
        )

    async def snapshot_status(self, repository: str, snapshot: str) -> ApiResponse:
        """Live status of a snapshot."""
        return await self._caller.call(
            "GET", f"/_snapshot/{_seg(repository)}/{_seg(snapshot)}/_status"
        )

    async def snapshot_info(self, repository: str, snapshot: str) -> dict[str, Any] | None:
        """Stored snapshot metadata (state, shards, failures, duration)."""
        response = await self._caller.call(
            "GET", f"/_snapshot/{_seg(repository)}/{_seg(snapshot)}"
        )
        if not response.ok or not isinstance(response.body, dict):
            return None
        snapshots = response.body.get("snapshots") or []
        return snapshots[0] if snapshots else None

    async def restore_snapshot(
        self,
        repository: str,
        snapshot: str,
        body: dict[str, Any],
    ) -> ApiResponse:
        """Start restoring (part of) a snapshot."""
        return await self._caller.call(
            "POST",
            f"/_snapshot/{_seg(repository)}/{_seg(snapshot)}/_restore",
            params={"wait_for_completion": "false"},
            body=body,
        )
