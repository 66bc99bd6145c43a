"""
Per-run naming context.

Every name a run touches is derived once, from a single UTC timestamp,
so the probe index, scratch index, repository and snapshot of one run
always agree with each other.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

REPOSITORY_FORMAT = "%m-%Y"
SNAPSHOT_FORMAT = "%m-%d_%H%M"

DEFAULT_PROBE_PREFIX = "backup_test_"
DEFAULT_RESTORE_PREFIX = "restore_test_"


@dataclass(frozen=True)
class RunContext:
    """Immutable values for one verification run.

    Attributes:
        started_at: UTC timestamp the run started at
        probe_index: Index holding this run's probe documents
        restore_index: Scratch index the probe index is restored into
        repository: Monthly repository name (MM-YYYY)
        snapshot: Snapshot name (MM-DD_HHMM)
    """

    started_at: datetime
    probe_index: str
    restore_index: str
    repository: str
    snapshot: str

    @classmethod
    def create(
        cls,
        now: datetime | None = None,
        probe_prefix: str = DEFAULT_PROBE_PREFIX,
        restore_prefix: str = DEFAULT_RESTORE_PREFIX,
    ) -> RunContext:
        """Derive a run context from a timestamp.

        Args:
            now: Run start time (defaults to the current time). Naive
                datetimes are taken to be UTC.
            probe_prefix: Probe index name prefix
            restore_prefix: Scratch restore index name prefix

        Returns:
            RunContext with all names derived
        """
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        else:
            now = now.astimezone(timezone.utc)

        stamp = int(now.timestamp())
        return cls(
            started_at=now,
            probe_index=f"{probe_prefix}{stamp}",
            restore_index=f"{restore_prefix}{stamp}",
            repository=now.strftime(REPOSITORY_FORMAT),
            snapshot=now.strftime(SNAPSHOT_FORMAT),
        )

    def to_dict(self) -> dict[str, str]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "started_at": self.started_at.isoformat(),
            "probe_index": self.probe_index,
            "restore_index": self.restore_index,
            "repository": self.repository,
            "snapshot": self.snapshot,
        }
