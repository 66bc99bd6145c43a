"""
Retention pruning of monthly snapshot repositories.

Repositories are named MM-YYYY. Each one is dated to the first day of its
month and removed once that date falls strictly before the cutoff.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timezone

from snapverify.cluster.api import ClusterApi
from snapverify.errors import BackupVerificationError, PruneFailedError

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_MONTHS = 3


def subtract_months(day: date, months: int) -> date:
    """Go back a number of calendar months, clamping the day of month.

    Example:
        >>> subtract_months(date(2024, 5, 31), 3)
        datetime.date(2024, 2, 29)
    """
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def parse_repository_month(name: str) -> date | None:
    """Date of a MM-YYYY repository name, None if it does not parse.

    The month must be zero-padded: this tool only ever creates names that
    way, so "3-2024" is not one of its repositories and is never pruned.
    """
    month, sep, year = name.partition("-")
    if not sep or len(month) != 2 or len(year) != 4:
        return None
    if not (month.isdigit() and year.isdigit()):
        return None
    if not 1 <= int(month) <= 12:
        return None
    return date(int(year), int(month), 1)


class RetentionPruner:
    """Deletes monthly repositories older than the retention window."""

    def __init__(self, api: ClusterApi, now: datetime | None = None) -> None:
        """Initialize the pruner.

        Args:
            api: Cluster operations
            now: Reference time for the cutoff (defaults to the current time)
        """
        self._api = api
        self._now = now

    def cutoff(self, retention_months: int) -> date:
        """First date that is still retained."""
        now = self._now or datetime.now(timezone.utc)
        return subtract_months(now.date(), retention_months)

    async def prune(self, retention_months: int = DEFAULT_RETENTION_MONTHS) -> list[str]:
        """Delete every expired repository.

        Names that are not MM-YYYY are left alone. Every deletion is
        attempted even when an earlier one fails.

        Args:
            retention_months: Months of repositories to keep

        Returns:
            Names of the repositories removed

        Raises:
            PruneFailedError: If one or more deletions failed
        """
        if retention_months < 1:
            raise ValueError("retention_months must be at least 1")

        cutoff = self.cutoff(retention_months)
        deleted: list[str] = []
        failures: dict[str, str] = {}

        for name in await self._api.list_repositories():
            repository_date = parse_repository_month(name)
            if repository_date is None:
                logger.debug("Skipping repository %s (not a monthly repository)", name)
                continue
            if repository_date >= cutoff:
                continue

            logger.info("Removing expired backup repository %s (cutoff %s)…", name, cutoff)
            try:
                response = await self._api.delete_repository(name)
            except BackupVerificationError as e:
                logger.error("Failed to delete repository %s: %s", name, e)
                failures[name] = str(e)
                continue

            if response.ok or response.not_found:
                deleted.append(name)
            else:
                message = f"status {response.status_code}: {response.body}"
                logger.error("Failed to delete repository %s (%s)", name, message)
                failures[name] = message

        if failures:
            raise PruneFailedError(failures, deleted)
        if deleted:
            logger.info("Removed %d expired repositories: %s", len(deleted), ", ".join(deleted))
        return deleted
