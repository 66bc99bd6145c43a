"""
Error taxonomy for backup verification runs.

Every class deriving from BackupVerificationError is fatal: it bubbles to the
orchestrator's run boundary, which notifies on-call once and re-raises.

Transport errors are raised by the ClusterGateway and never leave the
RetryingCaller; they are converted to OperationFailed there.

A 4xx reply from the cluster is not an exception at all. It comes back as an
ApiResponse whose ``is_client_error`` is true, and callers decide what it means
(usually "does not exist").
"""

from __future__ import annotations

from typing import Any


class BackupVerificationError(Exception):
    """Base class for fatal verification failures."""

    pass


class PreconditionFailed(BackupVerificationError):
    """Raised when the cluster is not in a state that allows a safe run."""

    pass


class OperationFailed(BackupVerificationError):
    """Raised when a cluster call fails for good.

    Covers 5xx and unexpected statuses, non-timeout transport failures and
    exhausted timeout retries.

    Attributes:
        method: HTTP method of the failed call
        target: Request path
        params: Query parameters and body sent
        status_code: Last HTTP status, None if no response was received
        response_body: Last response body (or transport error text)
    """

    def __init__(
        self,
        method: str,
        target: str,
        params: dict[str, Any] | None = None,
        status_code: int | None = None,
        response_body: Any = None,
        reason: str = "failed",
    ) -> None:
        self.method = method.upper()
        self.target = target
        self.params = params or {}
        self.status_code = status_code
        self.response_body = response_body
        message = f"{self.method} request to {target} {reason} (params: {self.params!r})\n"
        if status_code is not None:
            message += f"Response code: {status_code}\n"
        message += f"Body:\n{response_body}\n"
        super().__init__(message)


class SnapshotFailedError(BackupVerificationError):
    """Raised when a snapshot or restore reports failed shards.

    Attributes:
        snapshot: Snapshot name
        state: Final state reported by the cluster
        failures: Per-shard failure entries as returned by the cluster
        shards: Shard counters (total/successful/failed)
    """

    def __init__(
        self,
        message: str,
        snapshot: str,
        state: str | None = None,
        failures: list[dict[str, Any]] | None = None,
        shards: dict[str, Any] | None = None,
    ) -> None:
        self.snapshot = snapshot
        self.state = state
        self.failures = failures or []
        self.shards = shards or {}
        detail = [message, f"Snapshot: {snapshot}", f"State: {state}"]
        if self.shards:
            detail.append(f"Shards: {self.shards}")
        for failure in self.failures:
            detail.append(
                f"  - index={failure.get('index')} shard={failure.get('shard_id')} "
                f"node={failure.get('node_id')} reason={failure.get('reason')}"
            )
        super().__init__("\n".join(detail))


class WaitTimeoutError(BackupVerificationError, TimeoutError):
    """Raised when a bounded wait exceeds its deadline.

    Attributes:
        description: What was being waited for
        timeout: Deadline in seconds
    """

    def __init__(self, description: str, timeout: float) -> None:
        self.description = description
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:g}s waiting for {description}")


class VerificationMismatchError(BackupVerificationError):
    """Raised when a restored probe document differs from its original.

    Attributes:
        doc_id: Probe document id
        original: Value in the probe index (None if missing)
        restored: Value in the scratch restore index
    """

    def __init__(self, doc_id: int, original: str | None, restored: str | None) -> None:
        self.doc_id = doc_id
        self.original = original
        self.restored = restored
        super().__init__(
            f"Item {doc_id} in test restore doesn't match.\n"
            f"Original: {original}\n"
            f"Restored: {restored}"
        )


class PruneFailedError(BackupVerificationError):
    """Raised after retention pruning when one or more deletions failed.

    Attributes:
        failures: Repository name -> error message
        deleted: Repositories that were removed before/after the failures
    """

    def __init__(self, failures: dict[str, str], deleted: list[str]) -> None:
        self.failures = failures
        self.deleted = deleted
        names = ", ".join(sorted(failures))
        super().__init__(
            f"Failed to delete {len(failures)} expired repositories: {names}"
        )


class ClusterTransportError(Exception):
    """Raised by the gateway when no HTTP response could be obtained."""

    pass


class TransientTransportError(ClusterTransportError):
    """Raised by the gateway when a request timed out."""

    pass
