"""
Snapverify - Orchestrator Module

This module coordinates a backup verification run:

- BackupVerificationOrchestrator: Runs the pipeline and escalates failures
- Guards: master election and shard allocation checks
- ProbeDataManager: probe and scratch index lifecycle
- SnapshotLifecycleController: repository, snapshot and restore
- RestoreVerifier: field-by-field comparison of restored probe documents
- RetentionPruner: removal of expired monthly repositories

Key Workflow:
1. Guards: exit quietly off-master, refuse to run with allocation disabled
2. Probe: remove stale probe data, write fresh probe documents
3. Snapshot: ensure this month's repository, snapshot, restore the probe index
4. Verify: compare every probe document, then clean up and prune

Usage:
    from snapverify.orchestrator import BackupVerificationOrchestrator, RunContext

    orchestrator = BackupVerificationOrchestrator(
        config=config,
        context=RunContext.create(),
        api=api,
        notifier=notifier,
    )

    report = await orchestrator.run()
"""

from snapverify.orchestrator.context import RunContext
from snapverify.orchestrator.guards import ClusterHealthPrecondition, MasterElectionGuard
from snapverify.orchestrator.orchestrator import (
    BackupVerificationOrchestrator,
    OrchestratorPhase,
    RunOutcome,
    RunReport,
)
from snapverify.orchestrator.polling import wait_until
from snapverify.orchestrator.probe import ProbeDataManager, random_probe_value
from snapverify.orchestrator.retention import (
    RetentionPruner,
    parse_repository_month,
    subtract_months,
)
from snapverify.orchestrator.snapshot import SnapshotLifecycleController, SnapshotSummary
from snapverify.orchestrator.verifier import RestoreVerifier

__all__ = [
    # Orchestrator
    "BackupVerificationOrchestrator",
    "OrchestratorPhase",
    "RunOutcome",
    "RunReport",
    "RunContext",
    # Components
    "MasterElectionGuard",
    "ClusterHealthPrecondition",
    "ProbeDataManager",
    "random_probe_value",
    "SnapshotLifecycleController",
    "SnapshotSummary",
    "RestoreVerifier",
    "RetentionPruner",
    "parse_repository_month",
    "subtract_months",
    # Polling
    "wait_until",
]
