"""
Snapshot lifecycle: monthly repository, dated snapshot, probe restore.

Snapshot and restore are both started asynchronously on the cluster and
then polled under a deadline. Snapshot completeness is always judged from
the state returned by a single status fetch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from snapverify.cluster.api import ClusterApi
from snapverify.config.models import SnapverifyConfig
from snapverify.errors import OperationFailed, SnapshotFailedError
from snapverify.orchestrator.context import RunContext
from snapverify.orchestrator.polling import ClockFunc, SleepFunc, wait_until

logger = logging.getLogger(__name__)

RUNNING_STATES = frozenset({"INIT", "STARTED", "IN_PROGRESS"})
SUCCESS_STATE = "SUCCESS"
RECOVERY_DONE = "DONE"


@dataclass
class SnapshotSummary:
    """Outcome of a completed snapshot.

    Attributes:
        repository: Repository the snapshot belongs to
        snapshot: Snapshot name
        state: Final state
        shards_total: Shards included
        shards_successful: Shards stored successfully
        shards_failed: Shards that failed
        duration_ms: Time the cluster spent on the snapshot
        failures: Per-shard failure entries
    """

    repository: str
    snapshot: str
    state: str
    shards_total: int = 0
    shards_successful: int = 0
    shards_failed: int = 0
    duration_ms: int | None = None
    failures: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_info(cls, repository: str, snapshot: str, info: dict[str, Any]) -> SnapshotSummary:
        """Build from a GET _snapshot/{repo}/{snap} entry."""
        shards = info.get("shards") or {}
        return cls(
            repository=repository,
            snapshot=snapshot,
            state=str(info.get("state", "UNKNOWN")),
            shards_total=int(shards.get("total", 0)),
            shards_successful=int(shards.get("successful", 0)),
            shards_failed=int(shards.get("failed", 0)),
            duration_ms=info.get("duration_in_millis"),
            failures=list(info.get("failures") or []),
        )

    @property
    def succeeded(self) -> bool:
        """SUCCESS with zero failed shards."""
        return self.state == SUCCESS_STATE and self.shards_failed == 0 and not self.failures

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "repository": self.repository,
            "snapshot": self.snapshot,
            "state": self.state,
            "shards_total": self.shards_total,
            "shards_successful": self.shards_successful,
            "shards_failed": self.shards_failed,
            "duration_ms": self.duration_ms,
        }


class SnapshotLifecycleController:
    """Ensures the repository, takes the snapshot and restores the probe index."""

    def __init__(
        self,
        api: ClusterApi,
        context: RunContext,
        config: SnapverifyConfig,
        sleep: SleepFunc = asyncio.sleep,
        clock: ClockFunc | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            api: Cluster operations
            context: Names for this run
            config: Full configuration (repository, timeouts, cluster name)
            sleep: Async sleep used between polls
            clock: Monotonic clock used for deadlines
        """
        self._api = api
        self._context = context
        self._config = config
        self._timeouts = config.timeouts
        self._sleep = sleep
        self._clock = clock or time.monotonic

    @property
    def snapshot_path(self) -> str:
        """Human-readable repository/snapshot label."""
        return f"{self._context.repository}/{self._context.snapshot}"

    async def ensure_repository(self) -> bool:
        """Create this month's repository unless it already exists.

        Returns:
            True if the repository was created by this call

        Raises:
            OperationFailed: If the cluster rejects the repository
        """
        repository = self._context.repository
        if await self._api.repository_exists(repository):
            logger.debug("Repository %s already exists", repository)
            return False

        base_path = self._config.repository_base_path(repository)
        body = self._config.repository.repository_body(base_path)
        logger.info("Creating a new monthly snapshot repository %s at %s…", repository, base_path)
        response = await self._api.create_repository(repository, body)
        if not response.ok:
            raise OperationFailed(
                "PUT",
                f"/_snapshot/{repository}",
                params={"body": body},
                status_code=response.status_code,
                response_body=response.body,
                reason="was rejected",
            )
        return True

    async def create_snapshot(self) -> SnapshotSummary:
        """Take this run's snapshot and wait for it to finish.

        Returns:
            Summary of the successful snapshot

        Raises:
            OperationFailed: If the snapshot request is rejected
            SnapshotFailedError: If the snapshot is missing, did not reach
                SUCCESS, or any shard failed
            WaitTimeoutError: If it does not finish before the deadline
        """
        repository, snapshot = self._context.repository, self._context.snapshot
        logger.info("Starting a new snapshot (%s)…", self.snapshot_path)

        response = await self._api.create_snapshot(repository, snapshot)
        if not response.ok:
            raise OperationFailed(
                "PUT",
                f"/_snapshot/{repository}/{snapshot}",
                status_code=response.status_code,
                response_body=response.body,
                reason="was rejected",
            )

        # Give the new snapshot time to show up in the status API
        if self._timeouts.snapshot_settle_seconds:
            await self._sleep(self._timeouts.snapshot_settle_seconds)

        final_state = await wait_until(
            self._snapshot_finished,
            description=f"snapshot {self.snapshot_path}",
            timeout=self._timeouts.backup_timeout_seconds,
            interval=self._timeouts.snapshot_poll_interval_seconds,
            sleep=self._sleep,
            clock=self._clock,
        )

        info = await self._api.snapshot_info(repository, snapshot)
        if info is None:
            raise SnapshotFailedError(
                "Could not read back the finished snapshot",
                snapshot=self.snapshot_path,
                state=final_state,
            )

        summary = SnapshotSummary.from_info(repository, snapshot, info)
        if final_state != SUCCESS_STATE or not summary.succeeded:
            raise SnapshotFailedError(
                "Snapshot failed",
                snapshot=self.snapshot_path,
                state=final_state if final_state != SUCCESS_STATE else summary.state,
                failures=summary.failures,
                shards={
                    "total": summary.shards_total,
                    "successful": summary.shards_successful,
                    "failed": summary.shards_failed,
                },
            )

        logger.info(
            "Snapshot %s finished in %sms (%d of %d shards)",
            self.snapshot_path,
            summary.duration_ms if summary.duration_ms is not None else "?",
            summary.shards_successful,
            summary.shards_total,
        )
        return summary

    async def _snapshot_finished(self) -> str | None:
        """One status fetch: terminal state, or None while running.

        Raises:
            SnapshotFailedError: If the snapshot cannot be found
        """
        response = await self._api.snapshot_status(self._context.repository, self._context.snapshot)
        if response.not_found:
            raise SnapshotFailedError(
                "Could not find the snapshot just created",
                snapshot=self.snapshot_path,
            )
        if not response.ok:
            raise OperationFailed(
                "GET",
                f"/_snapshot/{self.snapshot_path}/_status",
                status_code=response.status_code,
                response_body=response.body,
            )
        snapshots = response.body.get("snapshots") if isinstance(response.body, dict) else None
        if not snapshots:
            raise SnapshotFailedError(
                "Could not find the snapshot just created",
                snapshot=self.snapshot_path,
            )

        status = snapshots[0]
        state = str(status.get("state", ""))
        stats = status.get("shards_stats") or {}
        logger.info(
            "Snapshot state: %s (finished shard %s of %s)",
            state,
            stats.get("done", "?"),
            stats.get("total", "?"),
        )
        if state in RUNNING_STATES:
            return None
        return state

    async def restore(self) -> None:
        """Restore only the probe index, renamed to the scratch index.

        Raises:
            OperationFailed: If the restore request is rejected
            SnapshotFailedError: If the restore reports failed shards
            WaitTimeoutError: If recovery does not finish before the deadline
        """
        probe, scratch = self._context.probe_index, self._context.restore_index
        body = {
            "indices": probe,
            "rename_pattern": probe,
            "rename_replacement": scratch,
            "include_global_state": False,
        }
        logger.info("Restoring %s from %s as %s…", probe, self.snapshot_path, scratch)

        response = await self._api.restore_snapshot(
            self._context.repository, self._context.snapshot, body
        )
        if not response.ok:
            raise OperationFailed(
                "POST",
                f"/_snapshot/{self.snapshot_path}/_restore",
                params={"body": body},
                status_code=response.status_code,
                response_body=response.body,
                reason="was rejected",
            )

        # Only present when the cluster waited for completion itself
        restored = response.body.get("snapshot") if isinstance(response.body, dict) else None
        if restored:
            shards = restored.get("shards") or {}
            if int(shards.get("failed", 0)):
                raise SnapshotFailedError(
                    "Restore failed",
                    snapshot=self.snapshot_path,
                    state="PARTIAL",
                    failures=list(restored.get("failures") or []),
                    shards=shards,
                )

        await wait_until(
            self._restore_finished,
            description=f"restore of {scratch}",
            timeout=self._timeouts.backup_timeout_seconds,
            interval=self._timeouts.snapshot_poll_interval_seconds,
            sleep=self._sleep,
            clock=self._clock,
        )
        logger.info("Restore of %s finished", scratch)

    async def _restore_finished(self) -> bool:
        """Whether every shard of the scratch index finished recovering."""
        stages = await self._api.recovery_stages(self._context.restore_index)
        return bool(stages) and all(stage == RECOVERY_DONE for stage in stages)
