"""
Restore verification.

Waits for the scratch index to come online, then compares every probe
document with its restored copy. The first mismatch ends the run.
"""

import asyncio
import logging
import time

from snapverify.cluster.api import ClusterApi
from snapverify.config.models import TimeoutsConfig
from snapverify.errors import VerificationMismatchError
from snapverify.orchestrator.context import RunContext
from snapverify.orchestrator.polling import ClockFunc, SleepFunc, wait_until
from snapverify.orchestrator.probe import PROBE_VALUE_FIELD

logger = logging.getLogger(__name__)

SHARD_STARTED = "STARTED"


class RestoreVerifier:
    """Compares the restored probe index with the original."""

    def __init__(
        self,
        api: ClusterApi,
        context: RunContext,
        timeouts: TimeoutsConfig,
        sleep: SleepFunc = asyncio.sleep,
        clock: ClockFunc | None = None,
    ) -> None:
        self._api = api
        self._context = context
        self._timeouts = timeouts
        self._sleep = sleep
        self._clock = clock or time.monotonic

    async def wait_for_index_online(self, index: str) -> None:
        """Block until every shard copy of ``index`` is STARTED.

        A missing index counts as not online yet.

        Raises:
            WaitTimeoutError: If the shards do not start before the deadline
        """

        async def online() -> bool:
            states = await self._api.shard_states(index)
            return bool(states) and all(state == SHARD_STARTED for state in states)

        await wait_until(
            online,
            description=f"index {index} to come online",
            timeout=self._timeouts.index_online_timeout_seconds,
            interval=self._timeouts.index_poll_interval_seconds,
            sleep=self._sleep,
            clock=self._clock,
        )

    async def compare_document(self, doc_id: int) -> str:
        """Compare one probe document with its restored copy.

        Restore completion does not guarantee the copy is immediately
        readable, so the restored side is polled until it is found.

        Args:
            doc_id: Probe document id

        Returns:
            The verified value

        Raises:
            VerificationMismatchError: If the values differ or the original is gone
            WaitTimeoutError: If the restored copy never becomes visible
        """
        restored = await wait_until(
            lambda: self._api.get_document(self._context.restore_index, doc_id),
            description=f"restored document {doc_id}",
            timeout=self._timeouts.document_visibility_timeout_seconds,
            interval=self._timeouts.index_poll_interval_seconds,
            sleep=self._sleep,
            clock=self._clock,
        )
        original = await self._api.get_document(self._context.probe_index, doc_id)

        original_value = original.get(PROBE_VALUE_FIELD) if original else None
        restored_value = restored.get(PROBE_VALUE_FIELD)
        if original_value is None or original_value != restored_value:
            raise VerificationMismatchError(doc_id, original_value, restored_value)
        return restored_value

    async def verify_all(self, test_size: int) -> int:
        """Verify probe documents 0..test_size-1, stopping at the first mismatch.

        Returns:
            Number of documents verified
        """
        logger.info("Verifying the newly-restored %s…", self._context.restore_index)
        await self.wait_for_index_online(self._context.restore_index)

        for doc_id in range(test_size):
            await self.compare_document(doc_id)

        logger.info("Successfully verified %d probe documents", test_size)
        return test_size
