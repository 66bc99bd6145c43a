"""
Snapverify: Snapshot Backup Verification for Elasticsearch Clusters.

Proves that a cluster's object-storage snapshots are actually restorable,
rather than trusting that the snapshot API call returned success.

Each run, on the elected master node only:
- Writes a set of random probe documents into a fresh index
- Ensures this month's snapshot repository exists and takes a snapshot
- Restores just the probe index under a scratch name
- Compares every restored probe document with its original
- Prunes monthly repositories older than the retention window

Example:
    from snapverify.orchestrator import BackupVerificationOrchestrator, RunContext

    orchestrator = BackupVerificationOrchestrator(
        config=config,
        context=RunContext.create(),
        api=api,
        notifier=notifier,
    )
    report = await orchestrator.run()
"""

from snapverify.version import __version__

__all__ = [
    "__version__",
]
