"""
Probe dataset lifecycle.

Probe documents are small random records written fresh on every run.
Their only purpose is to be snapshotted, restored and compared.
"""

import logging
import secrets
from collections.abc import Callable

from snapverify.cluster.api import ClusterApi
from snapverify.config.models import ProbeConfig
from snapverify.errors import BackupVerificationError, OperationFailed
from snapverify.orchestrator.context import RunContext

logger = logging.getLogger(__name__)

PROBE_ID_FIELD = "id"
PROBE_VALUE_FIELD = "value"


def random_probe_value() -> str:
    """Random, hash-like probe value."""
    return secrets.token_urlsafe(24)


class ProbeDataManager:
    """Creates and removes the probe and scratch indices."""

    def __init__(
        self,
        api: ClusterApi,
        context: RunContext,
        config: ProbeConfig,
        value_factory: Callable[[], str] = random_probe_value,
    ) -> None:
        """Initialize the manager.

        Args:
            api: Cluster operations
            context: Names for this run
            config: Probe settings (prefixes used for stale cleanup)
            value_factory: Generator for probe values
        """
        self._api = api
        self._context = context
        self._config = config
        self._value_factory = value_factory

    async def cleanup_stale(self) -> list[str]:
        """Delete probe and scratch indices left behind by earlier runs.

        A run that crashed between creating its probe data and cleaning
        up leaves orphaned indices; they are removed before new probe
        data is written.

        Returns:
            Names of the deleted indices
        """
        deleted: list[str] = []
        for prefix in (self._config.index_prefix, self._config.restore_prefix):
            for index in await self._api.list_indices(f"{prefix}*"):
                logger.info("Deleting stale index: %s", index)
                await self._api.delete_index(index)
                deleted.append(index)
        return deleted

    async def create(self, test_size: int) -> int:
        """Write ``test_size`` probe documents into this run's probe index.

        The index is created implicitly by the first write, or explicitly
        when there is nothing to write, so it is always part of the snapshot.

        Args:
            test_size: Number of documents (ids 0..test_size-1)

        Returns:
            Number of documents written

        Raises:
            OperationFailed: If the cluster rejects the index or a write
        """
        index = self._context.probe_index
        logger.info("Writing %d probe documents to %s…", test_size, index)

        if test_size == 0:
            response = await self._api.create_index(index)
            if not response.ok:
                raise OperationFailed(
                    "PUT",
                    f"/{index}",
                    status_code=response.status_code,
                    response_body=response.body,
                    reason="was rejected",
                )
            return 0

        for doc_id in range(test_size):
            document = {PROBE_ID_FIELD: doc_id, PROBE_VALUE_FIELD: self._value_factory()}
            response = await self._api.put_document(index, doc_id, document)
            if not response.ok:
                raise OperationFailed(
                    "PUT",
                    f"/{index}/_doc/{doc_id}",
                    params={"body": document},
                    status_code=response.status_code,
                    response_body=response.body,
                    reason="was rejected",
                )

        await self._api.refresh_index(index)
        return test_size

    async def cleanup(self) -> None:
        """Delete this run's probe and scratch indices, best-effort.

        Failures are logged and swallowed: the verification result, good
        or bad, has already been decided by the time this runs.
        """
        for index in (self._context.restore_index, self._context.probe_index):
            try:
                response = await self._api.delete_index(index)
            except BackupVerificationError as e:
                logger.warning("Could not delete index %s: %s", index, e)
                continue
            if response.ok:
                logger.info("Deleted index: %s", index)
            elif not response.not_found:
                logger.warning(
                    "Could not delete index %s (status %s): %s",
                    index,
                    response.status_code,
                    response.body,
                )
