"""
Backup Verification Orchestrator.

Runs the verification pipeline end to end:
- Master election and cluster health guards
- Probe data creation (after removing stale probe data)
- Monthly repository, snapshot and probe restore
- Field-by-field verification of the restored probe documents
- Cleanup of this run's indices (always, once probe data may exist)
- Retention pruning of expired monthly repositories

Any failure ends the run. It is logged, escalated exactly once through the
FailureNotifier and re-raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from snapverify.cluster.api import ClusterApi
from snapverify.config.models import SnapverifyConfig
from snapverify.notify.notifier import FailureNotifier
from snapverify.orchestrator.context import RunContext
from snapverify.orchestrator.guards import ClusterHealthPrecondition, MasterElectionGuard
from snapverify.orchestrator.polling import ClockFunc, SleepFunc
from snapverify.orchestrator.probe import ProbeDataManager
from snapverify.orchestrator.retention import RetentionPruner
from snapverify.orchestrator.snapshot import SnapshotLifecycleController, SnapshotSummary
from snapverify.orchestrator.verifier import RestoreVerifier

logger = logging.getLogger(__name__)


class RunOutcome(str, Enum):
    """How a run ended without an error."""

    VERIFIED = "verified"
    NOT_MASTER = "not_master"
    PRUNED = "pruned"


class OrchestratorPhase(str, Enum):
    """Current phase of a run."""

    NOT_STARTED = "not_started"
    MASTER_CHECK = "master_check"
    PRECONDITIONS = "preconditions"
    PROBE_DATA = "probe_data"
    REPOSITORY = "repository"
    SNAPSHOT = "snapshot"
    RESTORE = "restore"
    VERIFY = "verify"
    CLEANUP = "cleanup"
    PRUNE = "prune"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RunReport:
    """Summary of a finished run.

    Attributes:
        context: Names used by the run
        outcome: How the run ended (None until it does)
        phase: Last phase reached
        stale_indices_removed: Probe/scratch indices left by earlier runs
        documents_written: Probe documents written
        repository_created: Whether this run created the monthly repository
        snapshot: Summary of the snapshot taken
        documents_verified: Probe documents verified after restore
        pruned_repositories: Expired repositories removed
        finished_at: When the run ended
    """

    context: RunContext
    outcome: RunOutcome | None = None
    phase: OrchestratorPhase = OrchestratorPhase.NOT_STARTED
    stale_indices_removed: list[str] = field(default_factory=list)
    documents_written: int = 0
    repository_created: bool = False
    snapshot: SnapshotSummary | None = None
    documents_verified: int = 0
    pruned_repositories: list[str] = field(default_factory=list)
    finished_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        """Wall-clock run time."""
        if self.finished_at is None:
            return None
        return (self.finished_at - self.context.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert report to dictionary."""
        return {
            "outcome": self.outcome.value if self.outcome else None,
            "phase": self.phase.value,
            "context": self.context.to_dict(),
            "stale_indices_removed": self.stale_indices_removed,
            "documents_written": self.documents_written,
            "repository_created": self.repository_created,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "documents_verified": self.documents_verified,
            "pruned_repositories": self.pruned_repositories,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
        }


class BackupVerificationOrchestrator:
    """Coordinates one verification run.

    Every component receives the api and the configuration section it
    needs; nothing reads global state.

    Example:
        orchestrator = BackupVerificationOrchestrator(
            config=config,
            context=RunContext.create(),
            api=api,
            notifier=FailureNotifier.from_config(config),
        )
        report = await orchestrator.run()
    """

    def __init__(
        self,
        config: SnapverifyConfig,
        context: RunContext,
        api: ClusterApi,
        notifier: FailureNotifier,
        sleep: SleepFunc = asyncio.sleep,
        clock: ClockFunc | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Validated configuration
            context: Names for this run
            api: Cluster operations
            notifier: Failure escalation
            sleep: Async sleep used by every bounded wait
            clock: Monotonic clock used by every bounded wait
        """
        self._config = config
        self._context = context
        self._api = api
        self._notifier = notifier

        self._guard = MasterElectionGuard(api, config.node_name)
        self._precondition = ClusterHealthPrecondition(api)
        self._probe = ProbeDataManager(api, context, config.probe)
        self._snapshots = SnapshotLifecycleController(
            api, context, config, sleep=sleep, clock=clock
        )
        self._verifier = RestoreVerifier(
            api, context, config.timeouts, sleep=sleep, clock=clock
        )
        self._pruner = RetentionPruner(api, now=context.started_at)

        self._report = RunReport(context=context)

    @property
    def context(self) -> RunContext:
        """Names used by this run."""
        return self._context

    @property
    def report(self) -> RunReport:
        """Report of the run so far."""
        return self._report

    def _enter(self, phase: OrchestratorPhase) -> None:
        self._report.phase = phase
        logger.debug("Phase: %s", phase.value)

    async def run(self) -> RunReport:
        """Run the full verification pipeline.

        Returns:
            RunReport with outcome VERIFIED, or NOT_MASTER when this node
            is not the elected master (no further cluster calls are made)

        Raises:
            BackupVerificationError: Any fatal failure, after notification
        """
        report = self._report
        test_size = self._config.probe.test_size

        async with self._failure_boundary():
            if not await self._check_master():
                return report

            self._enter(OrchestratorPhase.PRECONDITIONS)
            await self._precondition.assert_shard_allocation_enabled()

            self._enter(OrchestratorPhase.PROBE_DATA)
            report.stale_indices_removed = await self._probe.cleanup_stale()
            try:
                report.documents_written = await self._probe.create(test_size)

                self._enter(OrchestratorPhase.REPOSITORY)
                report.repository_created = await self._snapshots.ensure_repository()

                self._enter(OrchestratorPhase.SNAPSHOT)
                report.snapshot = await self._snapshots.create_snapshot()

                self._enter(OrchestratorPhase.RESTORE)
                await self._snapshots.restore()

                self._enter(OrchestratorPhase.VERIFY)
                report.documents_verified = await self._verifier.verify_all(test_size)
            finally:
                logger.info("Cleaning up probe and restore indices…")
                await self._probe.cleanup()

            self._enter(OrchestratorPhase.PRUNE)
            report.pruned_repositories = await self._pruner.prune(self._config.retention.months)

            self._finish(RunOutcome.VERIFIED)
            logger.info(
                "Backup verification succeeded: %d documents verified from %s/%s",
                report.documents_verified,
                self._context.repository,
                self._context.snapshot,
            )
        return report

    async def prune_expired(self, retention_months: int | None = None) -> RunReport:
        """Run retention pruning only.

        Still guarded by the master check, so it can be scheduled on
        every node like a full run.

        Args:
            retention_months: Override for the configured retention window

        Returns:
            RunReport with outcome PRUNED or NOT_MASTER

        Raises:
            PruneFailedError: If any deletion failed, after notification
        """
        months = retention_months or self._config.retention.months

        async with self._failure_boundary():
            if not await self._check_master():
                return self._report

            self._enter(OrchestratorPhase.PRUNE)
            self._report.pruned_repositories = await self._pruner.prune(months)
            self._finish(RunOutcome.PRUNED)
        return self._report

    async def _check_master(self) -> bool:
        """Finish the run as NOT_MASTER unless this node is the master."""
        self._enter(OrchestratorPhase.MASTER_CHECK)
        if await self._guard.is_master():
            return True

        logger.info(
            "This node (%s) is not the currently elected master, exiting.",
            self._config.node_name,
        )
        self._finish(RunOutcome.NOT_MASTER)
        return False

    def _finish(self, outcome: RunOutcome) -> None:
        self._report.outcome = outcome
        self._report.finished_at = datetime.now(timezone.utc)
        if outcome is not RunOutcome.NOT_MASTER:
            self._report.phase = OrchestratorPhase.COMPLETED

    @asynccontextmanager
    async def _failure_boundary(self) -> AsyncIterator[None]:
        """Log and escalate any failure exactly once, then re-raise.

        Cancellation passes through without notification.
        """
        try:
            yield
        except asyncio.CancelledError:
            logger.warning("Run cancelled during %s", self._report.phase.value)
            raise
        except Exception as e:
            failed_in = self._report.phase
            self._report.finished_at = datetime.now(timezone.utc)
            self._report.phase = OrchestratorPhase.FAILED
            logger.critical(
                "Backup verification failed during %s: %s",
                failed_in.value,
                e,
                exc_info=e,
            )
            await self._notifier.notify(e)
            raise
